"""Process-local registry of schema edit sessions served over HTTP."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable

from table_studio.services.table_editor import TableEditOrchestrator

logger = logging.getLogger(__name__)


class EditSessionRegistry:
    """Maps opaque session ids to orchestrators; each session is independent."""

    def __init__(self, factory: Callable[[], TableEditOrchestrator], *, max_sessions: int = 256) -> None:
        self._factory = factory
        self._max_sessions = max_sessions
        self._lock = threading.Lock()
        self._sessions: dict[str, TableEditOrchestrator] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def open(self, table_name: str, *, create: bool = False) -> tuple[str, TableEditOrchestrator]:
        """Load ``table_name`` (or start creating it) in a fresh session."""

        orchestrator = self._factory()
        if create:
            orchestrator.start_new_table(table_name)
        else:
            orchestrator.load(table_name)
        session_id = uuid.uuid4().hex
        with self._lock:
            if len(self._sessions) >= self._max_sessions:
                # Oldest session first; dicts keep insertion order.
                evicted = next(iter(self._sessions))
                self._sessions.pop(evicted)
                logger.warning("edit_sessions.evicted session=%s", evicted)
            self._sessions[session_id] = orchestrator
        logger.info("edit_sessions.opened session=%s table=%s create=%s", session_id, table_name, create)
        return session_id, orchestrator

    def get(self, session_id: str) -> TableEditOrchestrator | None:
        with self._lock:
            return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        with self._lock:
            orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            return False
        orchestrator.cancel()
        logger.info("edit_sessions.discarded session=%s", session_id)
        return True
