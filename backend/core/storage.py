"""
Durable chart history.

Sessions are kept most-recent-first in memory and the whole list is written
to a single JSON blob after every mutation. The in-memory list is
authoritative: write failures are logged, never raised.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from app.config import CHART_HISTORY_PATH, CHART_MAX_HISTORY
from .models import (
    CURRENT_SCHEMA_VERSION,
    ChartSession,
    ChartSpec,
    ChartVersion,
    ConversationMessage,
)

logger = logging.getLogger("uvicorn.error")


def now_ms() -> int:
    return int(time.time() * 1000)


class PersistenceError(RuntimeError):
    """Raised by a blob when the history cannot be written."""


# ---------------------------------------------------------------------------
# Blob backend
# ---------------------------------------------------------------------------

class JsonFileBlob:
    """A single JSON document on disk, replaced atomically on write."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def read(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, text: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".history-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"cannot write {self.path}: {exc}") from exc

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"cannot delete {self.path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Schema migration
# ---------------------------------------------------------------------------

class SchemaVersion(str, Enum):
    unversioned = "unversioned"  # {id, request, charts, timestamp}
    v1 = "v1"                    # ChartSession


def detect_schema_version(entry: Dict[str, Any]) -> SchemaVersion:
    """Explicit tag first; untagged entries are v1 iff they carry a versions list."""
    tag = entry.get("schemaVersion")
    if tag == CURRENT_SCHEMA_VERSION:
        return SchemaVersion.v1
    if isinstance(entry.get("versions"), list):
        return SchemaVersion.v1
    return SchemaVersion.unversioned


def migrate_unversioned_to_v1(entry: Dict[str, Any], *, clock: Callable[[], int] = now_ms) -> Dict[str, Any]:
    """Map a legacy single-chart entry to a session holding one version."""
    timestamp = entry.get("timestamp") or clock()
    request = entry.get("request") or ""
    charts = entry.get("charts") or []
    return {
        "id": entry.get("id"),
        "originalRequest": request,
        "timestamp": timestamp,
        "versions": [
            {
                "versionId": f"{entry.get('id')}-v1",
                "timestamp": timestamp,
                "request": request,
                "charts": charts,
                "isAdjustment": False,
            }
        ],
        "messages": [],
    }


def migrate_entry(entry: Dict[str, Any], *, clock: Callable[[], int] = now_ms) -> Dict[str, Any]:
    """Bring one persisted entry to the current schema; current entries pass through unchanged."""
    if detect_schema_version(entry) == SchemaVersion.v1:
        return entry
    return migrate_unversioned_to_v1(entry, clock=clock)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class HistoryStore:
    def __init__(
        self,
        blob: JsonFileBlob,
        *,
        max_sessions: int = CHART_MAX_HISTORY,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.blob = blob
        self.max_sessions = max_sessions
        self._clock = clock
        self._new_id = id_factory
        self._sessions: List[ChartSession] = []

    @property
    def sessions(self) -> List[ChartSession]:
        """Most-recent-first copy of the stored sessions."""
        return list(self._sessions)

    def load(self) -> List[ChartSession]:
        """
        Read and migrate the persisted blob.

        An unparsable blob resets history to empty and deletes it. Entries
        that fail validation are dropped one by one and the remaining
        sessions are written back.
        """
        self._sessions = []
        raw = self.blob.read()
        if raw is None:
            return self.sessions
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Discarding corrupted chart history: %s", e)
            try:
                self.blob.delete()
            except PersistenceError as exc:
                logger.warning("Could not delete corrupted history: %s", exc)
            return self.sessions
        if not isinstance(parsed, list):
            logger.warning("History blob is not a list; starting empty")
            return self.sessions

        dropped = 0
        for entry in parsed:
            try:
                self._sessions.append(
                    ChartSession.model_validate(migrate_entry(entry, clock=self._clock))
                )
            except (ValidationError, TypeError, AttributeError) as e:
                dropped += 1
                logger.warning("Dropping invalid chart history entry: %s", e)
        if dropped:
            self._persist()
        return self.sessions

    def get(self, session_id: str) -> Optional[ChartSession]:
        return next((s for s in self._sessions if s.id == session_id), None)

    def _index(self, session_id: str) -> Optional[int]:
        for i, s in enumerate(self._sessions):
            if s.id == session_id:
                return i
        return None

    def _persist(self) -> None:
        try:
            payload = [s.model_dump(mode="json", exclude_none=True) for s in self._sessions]
            self.blob.write(json.dumps(payload, ensure_ascii=False))
        except (PersistenceError, TypeError, ValueError) as e:
            logger.warning("Failed to save chart history: %s", e)

    # -- mutations ---------------------------------------------------------

    def create_session(
        self,
        request: str,
        charts: Sequence[ChartSpec],
        messages: Optional[Sequence[ConversationMessage]] = None,
    ) -> str:
        """Start a session with one (non-adjustment) version; oldest sessions beyond the bound are dropped."""
        timestamp = self._clock()
        session_id = self._new_id()
        session = ChartSession(
            id=session_id,
            originalRequest=request,
            timestamp=timestamp,
            versions=[
                ChartVersion(
                    versionId=f"{session_id}-v1",
                    timestamp=timestamp,
                    request=request,
                    charts=list(charts),
                    isAdjustment=False,
                )
            ],
            messages=list(messages or []),
        )
        self._sessions = [session, *self._sessions][: self.max_sessions]
        self._persist()
        logger.info("History: created session %s (%d stored)", session_id, len(self._sessions))
        return session_id

    def append_version(
        self,
        session_id: str,
        request: str,
        charts: Sequence[ChartSpec],
        is_adjustment: bool = True,
        messages: Optional[Sequence[ConversationMessage]] = None,
    ) -> None:
        """Add a version to an existing session. Unknown ids are ignored."""
        idx = self._index(session_id)
        if idx is None:
            logger.info("History: append to unknown session %s ignored", session_id)
            return
        session = self._sessions[idx]
        timestamp = self._clock()
        version = ChartVersion(
            versionId=f"{session_id}-v{len(session.versions) + 1}",
            timestamp=timestamp,
            request=request,
            charts=list(charts),
            isAdjustment=is_adjustment,
        )
        # position in the list is creation order; only the timestamp moves
        self._sessions[idx] = session.model_copy(
            update={
                "versions": [*session.versions, version],
                "timestamp": timestamp,
                "messages": list(messages) if messages is not None else session.messages,
            }
        )
        self._persist()

    def update_messages(self, session_id: str, messages: Sequence[ConversationMessage]) -> None:
        idx = self._index(session_id)
        if idx is None:
            return
        self._sessions[idx] = self._sessions[idx].model_copy(update={"messages": list(messages)})
        self._persist()

    def remove(self, session_id: str) -> None:
        self._sessions = [s for s in self._sessions if s.id != session_id]
        self._persist()

    def clear(self) -> None:
        self._sessions = []
        self._persist()

    def purge_storage(self) -> None:
        """Administrative wipe: drop every session and delete the persisted blob."""
        self._sessions = []
        try:
            self.blob.delete()
        except PersistenceError as e:
            logger.warning("Failed to delete chart history: %s", e)
        logger.info("History: storage purged (%s)", getattr(self.blob, "path", "?"))


_store: Optional[HistoryStore] = None


def get_history_store() -> HistoryStore:
    """Process-wide store backed by CHART_HISTORY_PATH, loaded on first use."""
    global _store
    if _store is None:
        _store = HistoryStore(JsonFileBlob(CHART_HISTORY_PATH))
        _store.load()
    return _store
