"""
History API routes — mounted as a sub-router on the main FastAPI app.

GET    /api/history                 list sessions (most recent first)
GET    /api/history/{id}            one session with all versions
PUT    /api/history/{id}/messages   replace the stored transcript
DELETE /api/history/{id}            remove one session
DELETE /api/history                 clear all sessions
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.models import HistoryListResponse, MessagesUpdate
from core.models import ChartSession
from core.storage import HistoryStore, get_history_store

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("", response_model=HistoryListResponse, response_model_exclude_none=True)
async def list_history(store: HistoryStore = Depends(get_history_store)):
    return {"history": store.sessions}


@router.get("/{session_id}", response_model=ChartSession, response_model_exclude_none=True)
async def get_history_item(session_id: str, store: HistoryStore = Depends(get_history_store)):
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"History item '{session_id}' not found.")
    return session


@router.put("/{session_id}/messages")
async def update_history_messages(
    session_id: str,
    body: MessagesUpdate,
    store: HistoryStore = Depends(get_history_store),
):
    if store.get(session_id) is None:
        raise HTTPException(status_code=404, detail=f"History item '{session_id}' not found.")
    store.update_messages(session_id, body.messages)
    return {"ok": True}


@router.delete("/{session_id}")
async def remove_history_item(session_id: str, store: HistoryStore = Depends(get_history_store)):
    store.remove(session_id)
    return {"ok": True}


@router.delete("")
async def clear_history(store: HistoryStore = Depends(get_history_store)):
    store.clear()
    logger.info("History cleared via API")
    return {"ok": True}
