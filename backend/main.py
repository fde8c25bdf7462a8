from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from app.config import cors_origins
from app.llm_loader import LLMConfigError
from app.models import (
    ChartResponse,
    ChatRequest,
    ChatResponse,
    GenerateChartRequest,
    UploadResponse,
)
from core.models import (
    ChartResult,
    ChatRole,
    CompletionErrorKind,
    CompletionFailure,
    ConversationMessage,
)
from core.storage import HistoryStore, get_history_store, now_ms
from server.api import router as history_router
from server.orchestrator import InputError, generate_chart, generate_or_adjust_chart
from skills.ingest import DatasetError, ingest
from skills.summary import preview_dataset
from skills.validate import ensure_chartable
import logging
import json
import time

logger = logging.getLogger("uvicorn.error")
app = FastAPI(title="Chart Chat", description="Turn prompts and uploaded data into charts")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(history_router)


FAILURE_MESSAGES = {
    CompletionErrorKind.empty_response: "The model returned an empty response.",
    CompletionErrorKind.unparsable_response: "Could not read a chart from the model's response.",
    CompletionErrorKind.transport_failure: "Could not reach the completion service.",
}


def _log_response(ctx: str, payload) -> None:
    """Pretty-print JSON-able payloads; fall back to str()."""
    try:
        logger.info("%s response: %s", ctx, json.dumps(payload, indent=2, default=str))
    except Exception:
        logger.info("%s response (non-serializable): %s", ctx, str(payload))


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError):
    return _error(400, str(exc))


@app.exception_handler(DatasetError)
async def dataset_error_handler(request: Request, exc: DatasetError):
    return _error(400, exc.message, kind=exc.kind.value)


@app.exception_handler(LLMConfigError)
async def config_error_handler(request: Request, exc: LLMConfigError):
    logger.error("LLM not configured: %s", exc)
    return _error(503, f"Chart service is not configured: {exc}")


def _failure_response(failure: CompletionFailure) -> JSONResponse:
    return _error(502, FAILURE_MESSAGES[failure.reason], reason=failure.reason.value)


@app.post("/upload", response_model=UploadResponse)
async def upload(file: UploadFile = File(...)):
    content = await file.read()
    filename = file.filename or "upload"
    declared = None if "." in filename else file.content_type

    dataset = ensure_chartable(ingest(content, declared, filename))
    resp = UploadResponse(
        dataset=dataset,
        preview=preview_dataset(dataset),
        rows=len(dataset.data),
        columns=dataset.columns,
    )
    _log_response("UPLOAD", {"file": filename, "rows": resp.rows, "columns": resp.columns})
    return resp


@app.post("/api/generate-chart", response_model=ChartResponse, response_model_exclude_none=True)
async def api_generate_chart(body: GenerateChartRequest):
    t0 = time.perf_counter()
    outcome = await generate_chart(body.request)
    dt_ms = int((time.perf_counter() - t0) * 1000)
    logger.info("GENERATE meta: %s", json.dumps({"request": body.request, "duration_ms": dt_ms}))

    if isinstance(outcome, CompletionFailure):
        return _failure_response(outcome)
    if outcome.error:
        return _error(400, outcome.error)
    return ChartResponse(charts=outcome.charts)


def _record_turn(
    store: HistoryStore,
    body: ChatRequest,
    result: ChartResult,
    messages: list,
) -> str:
    """Append to the conversation's session when adjusting it, otherwise start a new session."""
    if result.isAdjustment and body.historyId:
        store.append_version(body.historyId, body.message, result.charts, True, messages)
        return body.historyId
    return store.create_session(body.message, result.charts, messages)


@app.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def api_chat(body: ChatRequest, store: HistoryStore = Depends(get_history_store)):
    t0 = time.perf_counter()
    user_msg = ConversationMessage(role=ChatRole.user, content=body.message, timestamp=now_ms())

    outcome = await generate_or_adjust_chart(
        body.message,
        body.chatHistory,
        body.currentCharts,
        body.fileData,
    )
    dt_ms = int((time.perf_counter() - t0) * 1000)
    meta = {
        "message": body.message,
        "history": len(body.chatHistory),
        "active_charts": len(body.currentCharts or []),
        "dataset": body.fileData.filename if body.fileData else None,
        "duration_ms": dt_ms,
    }
    logger.info("CHAT meta: %s", json.dumps(meta))

    if isinstance(outcome, CompletionFailure):
        return _failure_response(outcome)
    if outcome.error:
        return _error(400, outcome.error)

    assistant_msg = ConversationMessage(
        role=ChatRole.assistant,
        content=outcome.explanation or ("Chart adjusted!" if outcome.isAdjustment else "Chart created!"),
        timestamp=now_ms(),
        chartData=outcome.charts,
    )
    messages = [*body.chatHistory, user_msg, assistant_msg]
    history_id = _record_turn(store, body, outcome, messages)

    resp = ChatResponse(
        charts=outcome.charts,
        isAdjustment=outcome.isAdjustment,
        explanation=outcome.explanation,
        historyId=history_id,
        messages=messages,
    )
    _log_response("CHAT", {"historyId": history_id, "charts": len(resp.charts), "isAdjustment": resp.isAdjustment})
    return resp
