from __future__ import annotations

import copy
import threading
from typing import Dict, Optional

from pmsim.domain.models.session import SimulationSession
from pmsim.domain.repositories import SessionRepository, StaleSessionError


class InMemorySessionRepository(SessionRepository):
    """Keeps private deep copies so callers never share a live metrics dict."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SimulationSession] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SimulationSession]:
        with self._lock:
            stored = self._sessions.get(str(session_id))
            return copy.deepcopy(stored) if stored is not None else None

    def create(self, session: SimulationSession) -> SimulationSession:
        with self._lock:
            if str(session.id) in self._sessions:
                raise ValueError(f"Simulation session already exists: {session.id}")
            session.version = 1
            self._sessions[str(session.id)] = copy.deepcopy(session)
        return session

    def save(self, session: SimulationSession, *, expected_version: int) -> None:
        with self._lock:
            stored = self._sessions.get(str(session.id))
            actual = int(stored.version) if stored is not None else None
            if actual != int(expected_version):
                raise StaleSessionError(str(session.id), int(expected_version), actual)
            snapshot = copy.deepcopy(session)
            snapshot.version = int(expected_version) + 1
            self._sessions[str(session.id)] = snapshot
            session.version = snapshot.version

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)
