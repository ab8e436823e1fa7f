from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from pmsim.application.services.balance_tables import MORALE_DEFAULT, RISK_SLOWDOWN_DURATION_DAYS, clamp_morale
from pmsim.application.services.buff_ledger import BuffLedger
from pmsim.domain.models.metrics import as_number, ensure_list, ensure_metrics, ensure_risk_deck
from pmsim.domain.models.modifier import EFFECT_SLOWDOWN, BuffSpec
from pmsim.domain.models.risk import RiskCard, RiskCardState


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedEffect:
    card_id: str
    kind: str
    amount: float | str


class RiskEffectApplier:
    """Turns a triggered card's ``on_trigger`` payload into session changes."""

    def __init__(self, buff_ledger: BuffLedger | None = None) -> None:
        self._buffs = buff_ledger or BuffLedger()

    def apply(self, session, cards: Iterable[RiskCard]) -> list[AppliedEffect]:
        metrics = ensure_metrics(session)
        history = ensure_risk_deck(metrics)["history"]
        applied: list[AppliedEffect] = []

        for card in cards:
            if card.state != RiskCardState.TRIGGERED:
                continue
            record = next(
                (row for row in history if isinstance(row, dict) and str(row.get("id")) == card.id),
                None,
            )
            if record is None or record.get("effects_applied") is True:
                continue
            applied.extend(self._apply_payload(session, card))
            record["effects_applied"] = True
        return applied

    def _apply_payload(self, session, card: RiskCard) -> list[AppliedEffect]:
        metrics = ensure_metrics(session)
        current_day = int(getattr(session, "current_day", 0) or 0)
        rows: list[AppliedEffect] = []

        for kind, raw_amount in card.on_trigger.items():
            if kind == "morale":
                delta = as_number(raw_amount)
                if delta is None:
                    continue
                before = as_number(metrics.get("morale"))
                metrics["morale"] = clamp_morale((MORALE_DEFAULT if before is None else before) + delta)
                rows.append(AppliedEffect(card_id=card.id, kind=kind, amount=delta))
            elif kind == "budget_cut_flat":
                cut = as_number(raw_amount)
                if cut is None:
                    continue
                total = float(getattr(session, "budget_total", 0) or 0)
                used = float(getattr(session, "budget_used", 0) or 0)
                session.budget_total = max(used, total - cut)
                rows.append(AppliedEffect(card_id=card.id, kind=kind, amount=cut))
            elif kind == "slowdown_factor":
                factor = as_number(raw_amount)
                if factor is None:
                    continue
                self._buffs.add_buff(
                    session,
                    f"risk_{card.key}",
                    BuffSpec(
                        type="debuff",
                        effect=EFFECT_SLOWDOWN,
                        value=factor,
                        expires_day=current_day + RISK_SLOWDOWN_DURATION_DAYS,
                        label=card.title,
                        description=f"Triggered risk: {card.title}",
                    ),
                )
                rows.append(AppliedEffect(card_id=card.id, kind=kind, amount=factor))
            elif kind == "create_event":
                ensure_list(metrics, "pending_events").append(
                    {"event": str(raw_amount), "card_id": card.id, "day": current_day}
                )
                rows.append(AppliedEffect(card_id=card.id, kind=kind, amount=str(raw_amount)))
            else:
                logger.warning(
                    "Unknown risk trigger effect ignored",
                    extra={"session_id": getattr(session, "id", None), "card_key": card.key, "effect_kind": kind},
                )
        return rows
