import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})
MAX_RETRY_AFTER_SECONDS = 30.0


class CircuitOpenError(RuntimeError):
    pass


def _env_truthy(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass
class CircuitBreaker:
    """Consecutive-failure breaker for one upstream base URL."""

    key: str
    failures: int = 0
    open_until: float = 0.0

    @staticmethod
    def enabled() -> bool:
        return _env_truthy("PMSIM_HTTP_CIRCUIT_BREAKER_ENABLED", "1")

    @staticmethod
    def threshold() -> int:
        return max(1, int(os.getenv("PMSIM_HTTP_CIRCUIT_FAILURE_THRESHOLD", "3")))

    @staticmethod
    def cooldown_seconds() -> float:
        return max(0.0, float(os.getenv("PMSIM_HTTP_CIRCUIT_RESET_SECONDS", "60")))

    def check(self, now: float) -> None:
        if self.open_until > now:
            raise CircuitOpenError(f"HTTP circuit open for {self.key} until {int(self.open_until)}")
        if self.open_until > 0:
            # half-open: the cooldown passed, let one attempt through
            self.failures = 0
            self.open_until = 0.0

    def record_success(self) -> None:
        self.failures = 0
        self.open_until = 0.0

    def record_failure(self, now: float) -> None:
        self.failures += 1
        if self.failures >= self.threshold():
            self.open_until = now + self.cooldown_seconds()
            logger.warning(
                "HTTP circuit opened",
                extra={"upstream": self.key, "failures": self.failures, "open_until": int(self.open_until)},
            )


_BREAKERS: dict[str, CircuitBreaker] = {}
_BREAKERS_LOCK = threading.Lock()


def _breaker_for(client: httpx.Client) -> CircuitBreaker | None:
    if not CircuitBreaker.enabled():
        return None
    key = str(getattr(client, "base_url", "") or "unknown")
    with _BREAKERS_LOCK:
        breaker = _BREAKERS.get(key)
        if breaker is None:
            breaker = CircuitBreaker(key=key)
            _BREAKERS[key] = breaker
        return breaker


def reset_circuit_breakers() -> None:
    with _BREAKERS_LOCK:
        _BREAKERS.clear()


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))


def _retry_after_seconds(exc: Exception) -> float | None:
    if not isinstance(exc, httpx.HTTPStatusError):
        return None
    raw = exc.response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return min(MAX_RETRY_AFTER_SECONDS, max(0.0, float(raw)))
    except ValueError:
        return None


def post_json_with_retry(
    client: httpx.Client,
    path: str,
    *,
    json_body: dict[str, Any],
    headers: dict[str, str] | None = None,
    retries: int = 0,
    backoff_seconds: float = 0.2,
) -> dict[str, Any]:
    """POST ``json_body`` to ``client`` and decode a JSON reply, retrying transient failures.

    Timeouts, connection errors and the statuses in ``RETRYABLE_STATUS_CODES``
    are retried with exponential backoff, or after the server's ``Retry-After``
    when it sends one. A list body is wrapped as ``{"results": [...]}``.
    """

    attempts = max(0, int(retries)) + 1
    breaker = _breaker_for(client)

    for attempt_index in range(attempts):
        try:
            if breaker is not None:
                breaker.check(time.time())
            response = client.post(path, json=json_body, headers=headers)
            if response.status_code in RETRYABLE_STATUS_CODES:
                raise httpx.HTTPStatusError(
                    f"Retryable HTTP status: {response.status_code}",
                    request=response.request,
                    response=response,
                )
            response.raise_for_status()
            payload = response.json()
        except CircuitOpenError:
            raise
        except Exception as exc:
            if not _should_retry(exc):
                raise
            if breaker is not None:
                breaker.record_failure(time.time())
            if attempt_index >= attempts - 1:
                raise
            delay = _retry_after_seconds(exc)
            if delay is None:
                delay = max(0.0, backoff_seconds) * (2 ** attempt_index)
            logger.debug(
                "Retrying HTTP call",
                extra={"path": path, "attempt": attempt_index + 1, "delay_s": delay, "error": str(exc)},
            )
            if delay > 0:
                time.sleep(delay)
            continue

        if breaker is not None:
            breaker.record_success()
        return payload if isinstance(payload, dict) else {"results": payload}

    return {}
