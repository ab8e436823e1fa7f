from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping, Protocol

from pmsim.application.services.balance_tables import (
    COACH_ALIGNMENT_THRESHOLD,
    COACH_BUDGET_UTILIZATION_THRESHOLD,
    COACH_MORALE_THRESHOLD,
    COACH_TIP_LIMIT,
    COACH_TIP_MAX_CHARS,
    budget_utilization,
)
from pmsim.domain.models.metrics import ai_alignment_pct, as_number, ensure_metrics, safe_int


logger = logging.getLogger(__name__)


MORALE_TIP = "Run a morale workshop or 1:1s; morale trending low."
BUDGET_TIP = "Budget nearly exhausted; trim scope or secure funds."
ALIGNMENT_TIP = "Low alignment; prioritize tasks matching core requirements."
CADENCE_TIP = "Maintain cadence; monitor risks & capacity tomorrow."

COACH_SYSTEM_PROMPT = (
    "You are an elite agile program coach. Return STRICT JSON of the form "
    '{"tips": ["..."]} where "tips" is an array of at most 5 concise imperatives, '
    f"each at most {COACH_TIP_MAX_CHARS} characters. Focus on tactical, data-driven suggestions."
)


class ChatJsonClient(Protocol):
    def chat_json(self, messages: list[dict[str, str]], *, temperature: float = 0.4) -> Any:
        ...


def fallback_tips(snapshot: Mapping[str, Any]) -> list[str]:
    tips: list[str] = []
    morale = as_number(snapshot.get("morale"))
    if (morale if morale is not None else 0.0) < COACH_MORALE_THRESHOLD:
        tips.append(MORALE_TIP)
    utilization = budget_utilization(
        as_number(snapshot.get("budget_used")) or 0.0,
        as_number(snapshot.get("budget_total")) or 0.0,
    )
    if utilization > COACH_BUDGET_UTILIZATION_THRESHOLD:
        tips.append(BUDGET_TIP)
    alignment = as_number(snapshot.get("ai_alignment"))
    if alignment is not None and alignment < COACH_ALIGNMENT_THRESHOLD:
        tips.append(ALIGNMENT_TIP)
    if not tips:
        tips.append(CADENCE_TIP)
    return tips[:COACH_TIP_LIMIT]


def filter_tips(payload: Any) -> list[str] | None:
    """Valid tips from an LLM payload, or ``None`` when the payload is unusable."""

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return None
    if not isinstance(payload, Mapping):
        return None
    raw_tips = payload.get("tips")
    if not isinstance(raw_tips, list):
        return None
    tips = [
        tip.strip()
        for tip in raw_tips
        if isinstance(tip, str) and tip.strip() and len(tip.strip()) <= COACH_TIP_MAX_CHARS
    ]
    return tips[:COACH_TIP_LIMIT]


class CoachingService:
    def __init__(
        self,
        chat_client: ChatJsonClient | None = None,
        *,
        context_provider: Callable[[Any], Mapping[str, Any]] | None = None,
        temperature: float = 0.4,
    ) -> None:
        self._chat_client = chat_client
        self._context_provider = context_provider
        self._temperature = float(temperature)

    def build_snapshot(self, session) -> dict[str, Any]:
        metrics = ensure_metrics(session)
        snapshot: dict[str, Any] = {
            "day": int(getattr(session, "current_day", 0) or 0),
            "budget_total": getattr(session, "budget_total", 0) or 0,
            "budget_used": getattr(session, "budget_used", 0) or 0,
            "morale": metrics.get("morale", 0),
            "level": safe_int(metrics.get("level", 1), 1),
            "ai_alignment": ai_alignment_pct(metrics),
        }
        if self._context_provider is not None:
            try:
                extra = self._context_provider(session)
            except Exception:
                logger.exception("Coaching context provider failed", extra={"session_id": getattr(session, "id", None)})
                extra = None
            if isinstance(extra, Mapping):
                for key, value in extra.items():
                    snapshot.setdefault(str(key), value)
        return snapshot

    def generate_tips(self, session) -> list[str]:
        snapshot = self.build_snapshot(session)
        if self._chat_client is None:
            return fallback_tips(snapshot)

        try:
            payload = self._chat_client.chat_json(
                [
                    {"role": "system", "content": COACH_SYSTEM_PROMPT},
                    {"role": "user", "content": json.dumps(snapshot, default=str)},
                ],
                temperature=self._temperature,
            )
        except Exception as exc:
            logger.debug(
                "AI coach fallback",
                extra={"session_id": getattr(session, "id", None), "error": str(exc)},
            )
            return fallback_tips(snapshot)

        tips = filter_tips(payload)
        if not tips:
            logger.debug(
                "AI coach returned no usable tips; using fallback",
                extra={"session_id": getattr(session, "id", None)},
            )
            return fallback_tips(snapshot)
        return tips
