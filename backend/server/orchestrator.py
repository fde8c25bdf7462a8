"""
Chart orchestrator — one chat turn against the completion service.

dataset summary -> system prompt -> bounded message list -> single model call
-> two-stage decode -> ChartResult | CompletionFailure

The model call is the only await point. There is no retry and no timeout
here; callers that need bounded latency wrap the coroutine themselves.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence, Union

from langchain_core.language_models.chat_models import BaseChatModel

from app.llm import as_text_from_response, build_messages, decode_completion, to_chart_result
from app.llm_loader import get_chat_model
from app.prompts import build_contextual_prompt, resolve_prompt_mode
from core.models import (
    ChartResult,
    ChartSpec,
    CompletionErrorKind,
    CompletionFailure,
    ConversationMessage,
    TabularDataset,
)
from skills.summary import summarize_dataset

logger = logging.getLogger("uvicorn.error")

# Records of an uploaded dataset embedded in the prompt
DATASET_SUMMARY_ROWS = 15

# Prior chat turns sent along with the new message
HISTORY_WINDOW = 5

TurnOutcome = Union[ChartResult, CompletionFailure]


class InputError(ValueError):
    """Raised for requests that can be rejected before calling the model."""


async def generate_or_adjust_chart(
    user_message: str,
    chat_history: Sequence[ConversationMessage],
    current_charts: Optional[Sequence[ChartSpec]] = None,
    dataset: Optional[TabularDataset] = None,
    *,
    llm: Optional[BaseChatModel] = None,
) -> TurnOutcome:
    """
    Generate a new chart set or adjust the active one.

    Raises:
        InputError: blank message and no dataset.
        LLMConfigError: provider or credential missing.

    Every failure of the call itself, or of decoding its output, is returned
    as a CompletionFailure.
    """
    message = (user_message or "").strip()
    if not message and dataset is None:
        raise InputError("Empty request. Describe the chart you want or upload a file.")

    has_active = bool(current_charts)
    summary = summarize_dataset(dataset, DATASET_SUMMARY_ROWS) if dataset is not None else None
    system_prompt = build_contextual_prompt(
        dataset is not None,
        summary,
        has_active,
        list(current_charts) if has_active else None,
    )
    messages = build_messages(system_prompt, chat_history or [], message, HISTORY_WINDOW)

    if llm is None:
        llm = get_chat_model()

    mode = resolve_prompt_mode(dataset is not None, has_active)
    logger.info(
        "Chart turn: mode=%s history=%d sent=%d",
        mode.value,
        len(chat_history or []),
        len(messages),
    )

    t0 = time.perf_counter()
    try:
        resp = await llm.ainvoke(messages)
    except Exception as e:
        logger.warning("Completion call failed: %s", e)
        return CompletionFailure(
            reason=CompletionErrorKind.transport_failure,
            detail=str(e)[:200] or e.__class__.__name__,
        )
    dt_ms = int((time.perf_counter() - t0) * 1000)

    text = as_text_from_response(resp)
    if not text.strip():
        logger.warning("Completion returned no content (%d ms)", dt_ms)
        return CompletionFailure(reason=CompletionErrorKind.empty_response)

    decoded = decode_completion(text)
    if not decoded.ok:
        logger.warning("Could not decode completion (%d ms): %s", dt_ms, decoded.error)
        return CompletionFailure(
            reason=CompletionErrorKind.unparsable_response,
            detail=decoded.error,
        )

    outcome = to_chart_result(decoded.payload or {})
    if isinstance(outcome, ChartResult):
        logger.info(
            "Chart turn done in %d ms: charts=%d adjustment=%s decode=%s",
            dt_ms,
            len(outcome.charts),
            outcome.isAdjustment,
            decoded.stage,
        )
    else:
        logger.warning("Completion payload rejected: %s", outcome.detail)
    return outcome


async def generate_chart(user_request: str, *, llm: Optional[BaseChatModel] = None) -> TurnOutcome:
    """One-shot generation: no history, no active charts, no dataset."""
    return await generate_or_adjust_chart(user_request, [], None, None, llm=llm)
