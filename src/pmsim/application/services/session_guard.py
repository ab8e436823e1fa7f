from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

from pmsim.domain.models.session import SimulationSession
from pmsim.domain.repositories import SessionRepository, SessionWriteConflictError, StaleSessionError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionGuard:
    """Serializes read-modify-write cycles on one session's metrics record.

    In-process writers queue on a per-session lock; writers in other processes
    are caught by the repository's version check and the mutation is replayed
    against a fresh copy.
    """

    def __init__(self, repository: SessionRepository, *, retries: int = 3) -> None:
        self.repository = repository
        self._retries = max(0, int(retries))
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def lock_for(self, session_id: str) -> threading.Lock:
        key = str(session_id)
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def mutate(
        self,
        session_id: str,
        mutation: Callable[[SimulationSession], T],
    ) -> tuple[T, SimulationSession]:
        attempts = self._retries + 1
        with self.lock_for(session_id):
            for attempt_index in range(attempts):
                session = self.repository.require(session_id)
                loaded_version = int(session.version)
                result = mutation(session)
                try:
                    self.repository.save(session, expected_version=loaded_version)
                except StaleSessionError as exc:
                    is_last_attempt = attempt_index >= attempts - 1
                    logger.warning(
                        "Session write lost a version race",
                        extra={
                            "session_id": str(session_id),
                            "attempt": attempt_index + 1,
                            "expected_version": exc.expected_version,
                            "actual_version": exc.actual_version,
                        },
                    )
                    if is_last_attempt:
                        raise SessionWriteConflictError(
                            f"Gave up writing session {session_id} after {attempts} attempts"
                        ) from exc
                    continue
                return result, session
        raise SessionWriteConflictError(f"No write attempts made for session {session_id}")

    def read(self, session_id: str, reader: Callable[[SimulationSession], T]) -> T:
        with self.lock_for(session_id):
            return reader(self.repository.require(session_id))
