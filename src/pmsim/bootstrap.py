import os
import socket
from urllib.parse import urlparse

from pmsim.application.services.coaching_service import CoachingService
from pmsim.application.services.event_bus import EventBus
from pmsim.application.services.progression_engine import ProgressionEngine
from pmsim.domain.repositories import SessionRepository
from pmsim.infrastructure.chat_completion_client import ChatCompletionClient
from pmsim.infrastructure.inmemory.session_repo import InMemorySessionRepository


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


def _looks_like_local_mysql_unreachable(database_url: str) -> bool:
    if not database_url:
        return False

    parsed = urlparse(database_url)
    if not parsed.scheme.startswith("mysql"):
        return False

    host = (parsed.hostname or "").strip().lower()
    if host not in {"localhost", "127.0.0.1", "::1"}:
        return False

    port = parsed.port or 3306
    timeout = float(os.getenv("PMSIM_DB_CONNECT_PROBE_TIMEOUT_S", "0.35"))

    try:
        with socket.create_connection((host, port), timeout=timeout):
            return False
    except OSError:
        return True


def _build_coaching_service() -> CoachingService:
    api_key = os.getenv("PMSIM_LLM_API_KEY", "").strip()
    if not _env_flag("PMSIM_LLM_ENABLED", "1") or not api_key:
        return CoachingService()

    client = ChatCompletionClient(
        api_key=api_key,
        base_url=os.getenv("PMSIM_LLM_BASE_URL", ChatCompletionClient.BASE_URL),
        model=os.getenv("PMSIM_LLM_MODEL", ChatCompletionClient.DEFAULT_MODEL),
        timeout=float(os.getenv("PMSIM_LLM_TIMEOUT_S", "4")),
        retries=int(os.getenv("PMSIM_LLM_RETRIES", "0")),
        backoff_seconds=float(os.getenv("PMSIM_LLM_BACKOFF_S", "0.2")),
    )
    return CoachingService(client)


def _build_sql_repository(database_url: str) -> SessionRepository:
    from pmsim.infrastructure.db.sql.connection import build_engine, build_session_factory
    from pmsim.infrastructure.db.sql.schema import ensure_schema
    from pmsim.infrastructure.db.sql.session_repo import SqlSessionRepository

    engine = build_engine(database_url)
    try:
        ensure_schema(engine)
    except Exception as exc:
        raise RuntimeError(f"Session database bootstrap probe failed: {exc}") from exc
    return SqlSessionRepository(build_session_factory(engine))


def create_session_repository() -> SessionRepository:
    database_url = os.getenv("PMSIM_DATABASE_URL", "").strip()
    if database_url:
        if _looks_like_local_mysql_unreachable(database_url):
            print("MySQL appears unreachable, falling back to in-memory sessions.")
            return InMemorySessionRepository()
        return _build_sql_repository(database_url)
    return InMemorySessionRepository()


def create_progression_engine(
    repository: SessionRepository | None = None,
    *,
    event_bus: EventBus | None = None,
) -> ProgressionEngine:
    return ProgressionEngine(
        repository or create_session_repository(),
        event_bus=event_bus or EventBus(),
        coaching=_build_coaching_service(),
        apply_trigger_effects=_env_flag("PMSIM_APPLY_RISK_EFFECTS", "0"),
        write_retries=int(os.getenv("PMSIM_SESSION_WRITE_RETRIES", "3")),
    )
