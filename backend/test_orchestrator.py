"""
Tests for completion decoding and the chart orchestrator.

The chat model is replaced by a fake exposing `ainvoke`, so no provider is
contacted.
"""

import asyncio
import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from app.llm import (
    as_text_from_response,
    decode_completion,
    decode_first_balanced,
    decode_strict,
    first_balanced_object,
    to_chart_result,
)
from core.models import (
    ChartResult,
    ChartSpec,
    ChatRole,
    CompletionErrorKind,
    CompletionFailure,
    ConversationMessage,
    TabularDataset,
)
from core.storage import HistoryStore, JsonFileBlob
from server.orchestrator import InputError, generate_chart, generate_or_adjust_chart


class FakeChatModel:
    """Records the messages it is sent and replies with a canned completion."""

    def __init__(self, reply=None, exc=None):
        self.reply = reply
        self.exc = exc
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.exc is not None:
            raise self.exc
        if isinstance(self.reply, AIMessage):
            return self.reply
        return AIMessage(content=self.reply or "")


def run(coro):
    return asyncio.run(coro)


BAR_REPLY = json.dumps({
    "charts": [{
        "type": "bar",
        "title": "Sales by Product",
        "data": [{"name": "Product A", "value": 1200}, {"name": "Product B", "value": 1900}],
        "xAxisLabel": "Product",
        "yAxisLabel": "Sales",
        "colors": ["#3b82f6", "#10b981"],
    }],
    "isAdjustment": False,
    "explanation": "Created a bar chart.",
})

BLUE_REPLY = json.dumps({
    "charts": [{
        "type": "bar",
        "title": "Sales by Product",
        "data": [{"name": "Product A", "value": 1200}, {"name": "Product B", "value": 1900}],
        "colors": ["#2563eb", "#2563eb"],
    }],
    "isAdjustment": True,
    "explanation": "Changed the bars to blue.",
})


def _msg(role, content, ts):
    return ConversationMessage(role=role, content=content, timestamp=ts)


class TestDecoding:
    """Two-stage decoding returns values, never raises."""

    def test_strict_success(self):
        res = decode_strict('{"charts": [], "isAdjustment": true}')
        assert res.ok and res.stage == "strict"
        assert res.payload == {"charts": [], "isAdjustment": True}

    def test_strict_rejects_non_object(self):
        res = decode_strict("[1, 2]")
        assert not res.ok
        assert res.payload is None

    def test_recovery_from_prose(self):
        res = decode_completion('Here is the result: {"charts": [], "isAdjustment": false}')
        assert res.ok
        assert res.stage == "recovery"
        assert res.payload == {"charts": [], "isAdjustment": False}

    def test_recovery_from_code_fence(self):
        res = decode_completion('```json\n{"charts": []}\n```')
        assert res.ok
        assert res.payload == {"charts": []}

    def test_first_balanced_ignores_braces_in_strings(self):
        text = 'x {"title": "a } b", "n": {"k": 1}} trailing {"other": 2}'
        assert first_balanced_object(text) == '{"title": "a } b", "n": {"k": 1}}'

    @pytest.mark.parametrize("text", ["no json here", "{unterminated", "{'single': 'quotes'}"])
    def test_unrecoverable(self, text):
        res = decode_first_balanced(text)
        assert not res.ok
        assert res.error

    def test_defaults_applied(self):
        outcome = to_chart_result({"explanation": "nothing"})
        assert isinstance(outcome, ChartResult)
        assert outcome.charts == []
        assert outcome.isAdjustment is False
        assert outcome.explanation == "nothing"

    @pytest.mark.parametrize("flag", ["false", "true", 1, None])
    def test_adjustment_flag_requires_boolean_true(self, flag):
        outcome = to_chart_result({"charts": [], "isAdjustment": flag})
        assert outcome.isAdjustment is False

    def test_error_passes_through(self):
        outcome = to_chart_result({"charts": [], "error": "No values given"})
        assert outcome.error == "No values given"

    def test_invalid_chart_type_is_unparsable(self):
        outcome = to_chart_result({"charts": [{"type": "radar", "title": "x", "data": []}]})
        assert isinstance(outcome, CompletionFailure)
        assert outcome.reason == CompletionErrorKind.unparsable_response

    def test_non_hex_colors_dropped(self):
        chart = ChartSpec.model_validate(
            {"type": "pie", "title": "t", "data": [{"name": 2020, "value": "3"}], "colors": ["blue", "#fff"]}
        )
        assert chart.colors == ["#fff"]
        assert chart.data[0].name == "2020"
        assert chart.data[0].value == 3

    def test_text_from_chunk_list_and_extras(self):
        assert as_text_from_response(AIMessage(content=[{"type": "text", "text": "{}"}])) == "{}"
        msg = AIMessage(content="", additional_kwargs={"reasoning_content": '{"charts": []}'})
        assert as_text_from_response(msg) == '{"charts": []}'


class TestOrchestrator:
    """generate_or_adjust_chart: message assembly and failure typing."""

    def test_message_order_and_history_window(self):
        history = [
            _msg(ChatRole.user if i % 2 == 0 else ChatRole.assistant, f"turn {i}", i)
            for i in range(7)
        ]
        llm = FakeChatModel(BAR_REPLY)
        run(generate_or_adjust_chart("next", history, llm=llm))

        sent = llm.calls[0]
        assert isinstance(sent[0], SystemMessage)
        assert [m.content for m in sent[1:-1]] == ["turn 2", "turn 3", "turn 4", "turn 5", "turn 6"]
        assert isinstance(sent[1], HumanMessage)
        assert isinstance(sent[2], AIMessage)
        assert isinstance(sent[-1], HumanMessage)
        assert sent[-1].content == "next"

    def test_dataset_summary_is_capped(self):
        dataset = TabularDataset(
            filename="big.csv",
            columns=["k", "v"],
            data=[{"k": f"row{i}", "v": i} for i in range(40)],
        )
        llm = FakeChatModel(BAR_REPLY)
        run(generate_or_adjust_chart("", [], dataset=dataset, llm=llm))

        system = llm.calls[0][0].content
        assert "Total rows: 40" in system
        assert '"row14"' in system
        assert '"row15"' not in system
        assert "... and 25 more rows" in system

    def test_active_charts_switch_prompt_mode(self):
        llm = FakeChatModel(BLUE_REPLY)
        current = [ChartSpec.model_validate(json.loads(BAR_REPLY)["charts"][0])]
        run(generate_or_adjust_chart("make it blue", [], current, llm=llm))
        assert "MODE: ADJUST OR NEW" in llm.calls[0][0].content

    def test_blank_input_rejected_before_call(self):
        llm = FakeChatModel(BAR_REPLY)
        with pytest.raises(InputError):
            run(generate_or_adjust_chart("   ", [], llm=llm))
        assert llm.calls == []

    @pytest.mark.parametrize("reply", ["", "   ", AIMessage(content=[])])
    def test_empty_response(self, reply):
        outcome = run(generate_or_adjust_chart("chart", [], llm=FakeChatModel(reply)))
        assert isinstance(outcome, CompletionFailure)
        assert outcome.reason == CompletionErrorKind.empty_response

    def test_unparsable_response(self):
        outcome = run(generate_or_adjust_chart("chart", [], llm=FakeChatModel("I cannot do that.")))
        assert isinstance(outcome, CompletionFailure)
        assert outcome.reason == CompletionErrorKind.unparsable_response

    @pytest.mark.parametrize("exc", [ConnectionError("reset"), TimeoutError(), RuntimeError("429")])
    def test_transport_failure(self, exc):
        outcome = run(generate_or_adjust_chart("chart", [], llm=FakeChatModel(exc=exc)))
        assert isinstance(outcome, CompletionFailure)
        assert outcome.reason == CompletionErrorKind.transport_failure
        assert outcome.detail

    def test_recovered_prose_reply(self):
        llm = FakeChatModel('Here is the result: {"charts": [], "isAdjustment": false}')
        outcome = run(generate_or_adjust_chart("anything", [], llm=llm))
        assert isinstance(outcome, ChartResult)
        assert outcome.charts == []
        assert outcome.isAdjustment is False

    def test_single_call_no_retry(self):
        llm = FakeChatModel("garbage")
        run(generate_or_adjust_chart("chart", [], llm=llm))
        assert len(llm.calls) == 1

    def test_simple_mode(self):
        llm = FakeChatModel(BAR_REPLY)
        outcome = run(generate_chart("bar chart please", llm=llm))
        assert isinstance(outcome, ChartResult)
        assert len(llm.calls[0]) == 2
        assert "MODE: NEW CHART" in llm.calls[0][0].content


class TestEndToEnd:
    """Generation followed by history recording."""

    @pytest.fixture
    def store(self, tmp_path):
        return HistoryStore(JsonFileBlob(tmp_path / "history.json"))

    def test_new_chart_then_adjustment(self, store):
        request = "bar chart with Product A (1200) and Product B (1900)"
        first = run(generate_or_adjust_chart(request, [], llm=FakeChatModel(BAR_REPLY)))

        assert isinstance(first, ChartResult)
        assert first.isAdjustment is False
        assert len(first.charts) == 1
        chart = first.charts[0]
        assert chart.type.value == "bar"
        assert [p.value for p in chart.data] == [1200, 1900]

        session_id = store.create_session(request, first.charts)
        session = store.get(session_id)
        assert len(session.versions) == 1
        assert session.versions[0].isAdjustment is False

        history = [
            _msg(ChatRole.user, request, 1),
            _msg(ChatRole.assistant, first.explanation, 2),
        ]
        second = run(
            generate_or_adjust_chart("make it blue", history, first.charts, llm=FakeChatModel(BLUE_REPLY))
        )
        assert isinstance(second, ChartResult)
        assert second.isAdjustment is True

        store.append_version(session_id, "make it blue", second.charts, second.isAdjustment)
        session = store.get(session_id)
        assert len(session.versions) == 2
        assert session.versions[1].isAdjustment is True
        assert session.versions[1].versionId == f"{session_id}-v2"
