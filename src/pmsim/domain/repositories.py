from abc import ABC, abstractmethod
from typing import Optional

from pmsim.domain.models.session import SimulationSession


class SessionNotFoundError(LookupError):
    pass


class StaleSessionError(RuntimeError):
    """Another writer saved the session after it was loaded."""

    def __init__(self, session_id: str, expected_version: int, actual_version: int | None) -> None:
        super().__init__(
            f"Session {session_id} changed concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class SessionWriteConflictError(RuntimeError):
    pass


class SessionRepository(ABC):
    @abstractmethod
    def get(self, session_id: str) -> Optional[SimulationSession]:
        raise NotImplementedError

    @abstractmethod
    def create(self, session: SimulationSession) -> SimulationSession:
        raise NotImplementedError

    @abstractmethod
    def save(self, session: SimulationSession, *, expected_version: int) -> None:
        """Persist the whole session if the stored version still equals ``expected_version``.

        On success ``session.version`` is bumped; otherwise ``StaleSessionError`` is raised
        and nothing is written.
        """
        raise NotImplementedError

    def require(self, session_id: str) -> SimulationSession:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Simulation session not found: {session_id}")
        return session
