import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, ValidationError

from core.models import (
    ChartResult,
    ChartSpec,
    ChatRole,
    CompletionErrorKind,
    CompletionFailure,
    ConversationMessage,
)

logger = logging.getLogger("uvicorn.error")


# ---------- helpers for reading provider responses ----------


def _as_text_from_content(content: Any) -> str:
    """Normalize LC content (str | list[chunk] | dict | AIMessage)."""
    if content is None:
        return ""
    if isinstance(content, AIMessage):
        return _as_text_from_content(content.content)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for p in content:
            if isinstance(p, str):
                parts.append(p)
            elif isinstance(p, dict):
                t = p.get("text")
                if isinstance(t, str):
                    parts.append(t)
            else:
                parts.append(str(p))
        return "".join(parts)
    if isinstance(content, dict):
        if isinstance(content.get("text"), str):
            return content["text"]
        if isinstance(content.get("content"), str):
            return content["content"]
        return ""
    return str(content)


def as_text_from_response(resp: Any) -> str:
    """
    Try the places providers may stash text:
      - resp.content (usual)
      - resp.additional_kwargs.reasoning_content (NVIDIA)
      - resp.additional_kwargs.content
    """
    text = _as_text_from_content(getattr(resp, "content", None))
    if text.strip():
        return text

    extras = getattr(resp, "additional_kwargs", {}) or {}
    if isinstance(extras, dict):
        for key in ("reasoning_content", "content"):
            val = extras.get(key)
            if isinstance(val, str) and val.strip():
                return val

    if isinstance(resp, str):
        return resp
    return ""


# ---------- two-stage decoding ----------


class DecodeResult(BaseModel):
    """Outcome of one decoding stage; `payload` is set only when `ok`."""

    ok: bool
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    stage: str = ""


def decode_strict(text: str) -> DecodeResult:
    """Parse the whole text as one JSON object."""
    try:
        obj = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        return DecodeResult(ok=False, error=f"strict: {e}", stage="strict")
    if not isinstance(obj, dict):
        return DecodeResult(ok=False, error=f"strict: top-level {type(obj).__name__}", stage="strict")
    return DecodeResult(ok=True, payload=obj, stage="strict")


def first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} substring, ignoring braces inside JSON strings."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for j in range(start, len(text)):
        ch = text[j]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : j + 1]
    return None


def decode_first_balanced(text: str) -> DecodeResult:
    """Salvage the first balanced brace-delimited block from surrounding prose."""
    block = first_balanced_object(text or "")
    if block is None:
        return DecodeResult(ok=False, error="recovery: no balanced JSON object", stage="recovery")
    result = decode_strict(block)
    if not result.ok:
        teaser = block[:200].replace("\n", "\\n")
        return DecodeResult(ok=False, error=f"recovery: {result.error}; teaser={teaser}", stage="recovery")
    return DecodeResult(ok=True, payload=result.payload, stage="recovery")


def decode_completion(text: str) -> DecodeResult:
    strict = decode_strict(text)
    if strict.ok:
        return strict
    logger.debug("Strict decode failed (%s), trying recovery", strict.error)
    return decode_first_balanced(text)


def to_chart_result(payload: Dict[str, Any]) -> ChartResult | CompletionFailure:
    """Fill defaults (no charts, not an adjustment) and validate the chart list."""
    charts_raw = payload.get("charts")
    if charts_raw is None:
        charts_raw = []
    if not isinstance(charts_raw, list):
        return CompletionFailure(
            reason=CompletionErrorKind.unparsable_response,
            detail="'charts' is not a list",
        )
    try:
        charts = [ChartSpec.model_validate(c) for c in charts_raw]
    except ValidationError as e:
        return CompletionFailure(
            reason=CompletionErrorKind.unparsable_response,
            detail=f"invalid chart spec: {e.error_count()} error(s)",
        )

    explanation = payload.get("explanation")
    error = payload.get("error")
    return ChartResult(
        charts=charts,
        isAdjustment=payload.get("isAdjustment") is True,
        explanation=explanation if isinstance(explanation, str) else None,
        error=error if isinstance(error, str) and error else None,
    )


# ---------- message assembly ----------


def build_messages(
    system_prompt: str,
    history: Sequence[ConversationMessage],
    user_message: str,
    history_window: int = 5,
) -> List[BaseMessage]:
    """System instruction, then the last `history_window` turns in order, then the user message."""
    messages: List[BaseMessage] = [SystemMessage(system_prompt)]
    recent = list(history)[-history_window:] if history_window > 0 else []
    for msg in recent:
        if msg.role == ChatRole.user:
            messages.append(HumanMessage(msg.content))
        else:
            messages.append(AIMessage(msg.content))
    messages.append(HumanMessage(user_message))
    return messages
