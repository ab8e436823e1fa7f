from __future__ import annotations

import logging
import random
import uuid
from types import MappingProxyType
from typing import Mapping

from pmsim.application.services.balance_tables import (
    RISK_DECK_ACTIVE_LIMIT,
    RISK_DEADLINE_MAX_DAYS,
    RISK_DEADLINE_MIN_DAYS,
)
from pmsim.domain.models.metrics import ensure_dict, ensure_metrics, ensure_risk_deck, safe_int
from pmsim.domain.models.risk import RiskCard, RiskCardState, RiskCardTemplate


logger = logging.getLogger(__name__)


RISK_CATALOG: Mapping[str, RiskCardTemplate] = MappingProxyType(
    {
        "vendor_cert_delay": RiskCardTemplate(
            key="vendor_cert_delay",
            title="Vendor Certification Delay",
            description="External vendor requires additional compliance checks.",
            mitigation="Allocate a compliance review task early.",
            on_trigger=MappingProxyType({"create_event": "vendor_delay"}),
        ),
        "compliance_audit": RiskCardTemplate(
            key="compliance_audit",
            title="Surprise Compliance Audit",
            description="Regulatory body schedules short-notice audit.",
            mitigation="Prepare documentation pack.",
            on_trigger=MappingProxyType({"morale": -5}),
        ),
        "infra_cost_spike": RiskCardTemplate(
            key="infra_cost_spike",
            title="Infrastructure Cost Spike",
            description="Cloud usage surges unexpectedly due to load tests.",
            mitigation="Optimize resource usage and caching.",
            on_trigger=MappingProxyType({"budget_cut_flat": 1200}),
        ),
        "key_person_risk": RiskCardTemplate(
            key="key_person_risk",
            title="Key Person Dependency",
            description="A single engineer holds critical deployment knowledge.",
            mitigation="Schedule knowledge sharing session.",
            on_trigger=MappingProxyType({"slowdown_factor": 0.1}),
        ),
    }
)


def _bump_stat(metrics: dict, name: str) -> None:
    stats = ensure_dict(metrics, "risk_stats")
    stats[name] = safe_int(stats.get(name, 0)) + 1


class RiskDeck:
    """Pending risk cards that resolve as mitigated or triggered, never both."""

    def __init__(
        self,
        catalog: Mapping[str, RiskCardTemplate] | None = None,
        rng: random.Random | None = None,
        active_limit: int = RISK_DECK_ACTIVE_LIMIT,
    ) -> None:
        self._catalog = catalog if catalog is not None else RISK_CATALOG
        self._rng = rng or random.Random()
        self._active_limit = max(1, int(active_limit))

    def active_cards(self, session) -> list[RiskCard]:
        deck = ensure_risk_deck(ensure_metrics(session))
        return [RiskCard.from_dict(row) for row in deck["active"] if isinstance(row, dict)]

    def history_cards(self, session) -> list[RiskCard]:
        deck = ensure_risk_deck(ensure_metrics(session))
        return [RiskCard.from_dict(row) for row in deck["history"] if isinstance(row, dict)]

    def draw(self, session, rng: random.Random | None = None) -> RiskCard | None:
        source = rng or self._rng
        deck = ensure_risk_deck(ensure_metrics(session))
        if len(deck["active"]) >= self._active_limit or not self._catalog:
            return None

        template = self._catalog[source.choice(sorted(self._catalog))]
        current_day = int(getattr(session, "current_day", 0) or 0)
        taken = {str(row.get("id")) for lane in ("active", "history") for row in deck[lane] if isinstance(row, dict)}
        card_id = str(uuid.UUID(int=source.getrandbits(128), version=4))
        while card_id in taken:
            card_id = str(uuid.UUID(int=source.getrandbits(128), version=4))
        card = RiskCard(
            id=card_id,
            key=template.key,
            title=template.title,
            description=template.description,
            mitigation=template.mitigation,
            day_drawn=current_day,
            deadline_day=current_day + source.randint(RISK_DEADLINE_MIN_DAYS, RISK_DEADLINE_MAX_DAYS),
            state=RiskCardState.PENDING,
            on_trigger=dict(template.on_trigger),
        )
        deck["active"].append(card.to_dict())
        _bump_stat(ensure_metrics(session), "drawn")
        logger.info(
            "Risk card drawn",
            extra={"session_id": getattr(session, "id", None), "card_key": card.key, "deadline_day": card.deadline_day},
        )
        return card

    def mitigate(self, session, card_id: str) -> bool:
        metrics = ensure_metrics(session)
        deck = ensure_risk_deck(metrics)
        for index, row in enumerate(deck["active"]):
            if not isinstance(row, dict) or str(row.get("id")) != str(card_id):
                continue
            card = RiskCard.from_dict(row)
            if not card.is_pending:
                return False
            card.state = RiskCardState.MITIGATED
            deck["history"].append(card.to_dict())
            del deck["active"][index]
            _bump_stat(metrics, "neutralized")
            return True
        return False

    def process_triggers(self, session) -> list[RiskCard]:
        metrics = ensure_metrics(session)
        deck = ensure_risk_deck(metrics)
        current_day = int(getattr(session, "current_day", 0) or 0)
        triggered: list[RiskCard] = []
        remaining: list[dict] = []
        for row in deck["active"]:
            if not isinstance(row, dict):
                continue
            card = RiskCard.from_dict(row)
            if not card.is_overdue(current_day):
                remaining.append(row)
                continue
            card.state = RiskCardState.TRIGGERED
            deck["history"].append(card.to_dict())
            _bump_stat(metrics, "triggered")
            triggered.append(card)
        deck["active"] = remaining
        return triggered
