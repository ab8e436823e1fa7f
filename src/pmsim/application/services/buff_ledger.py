from __future__ import annotations

import logging
from typing import Any, Mapping

from pmsim.application.services.balance_tables import DEFAULT_MAX_STACKS, task_hours_after_modifiers
from pmsim.domain.models.metrics import ensure_list, ensure_metrics
from pmsim.domain.models.modifier import EFFECT_SLOWDOWN, EFFECT_THROUGHPUT, BuffSpec, Modifier


logger = logging.getLogger(__name__)


class BuffLedger:
    """Time-boxed modifiers stored in ``metrics["buffs"]``, one entry per key."""

    def add_buff(self, session, key: str, spec: BuffSpec | Mapping[str, Any]) -> Modifier:
        if not isinstance(spec, BuffSpec):
            spec = BuffSpec.from_mapping(spec)
        metrics = ensure_metrics(session)
        rows = ensure_list(metrics, "buffs")
        current_day = int(getattr(session, "current_day", 0) or 0)
        buff_key = str(key)

        for index, row in enumerate(rows):
            if not isinstance(row, dict) or str(row.get("key")) != buff_key:
                continue
            existing = Modifier.from_dict(row)
            if spec.stackable:
                cap = int(spec.max_stacks) if spec.max_stacks is not None else DEFAULT_MAX_STACKS
                existing.stacks = min(max(1, cap), existing.stacks + 1)
                if spec.expires_day is not None:
                    existing.expires_day = max(existing.expires_day, int(spec.expires_day))
                rows[index] = existing.to_dict()
            return existing

        modifier = Modifier(
            key=buff_key,
            type=spec.type,
            effect=spec.effect,
            value=float(spec.value),
            stacks=int(spec.stacks) if spec.stacks is not None else 1,
            expires_day=int(spec.expires_day) if spec.expires_day is not None else current_day + 1,
            label=spec.label or buff_key.replace("_", " ").capitalize(),
            description=spec.description,
        )
        rows.append(modifier.to_dict())
        return modifier

    def live_modifiers(self, session) -> list[Modifier]:
        metrics = ensure_metrics(session)
        current_day = int(getattr(session, "current_day", 0) or 0)
        modifiers = [Modifier.from_dict(row) for row in ensure_list(metrics, "buffs") if isinstance(row, dict)]
        return [modifier for modifier in modifiers if modifier.is_live(current_day)]

    def cleanup(self, session) -> list[Modifier]:
        """Drop modifiers whose ``expires_day`` is not after the current day."""

        metrics = ensure_metrics(session)
        current_day = int(getattr(session, "current_day", 0) or 0)
        kept: list[dict] = []
        expired: list[Modifier] = []
        for row in ensure_list(metrics, "buffs"):
            if not isinstance(row, dict):
                continue
            modifier = Modifier.from_dict(row)
            if modifier.is_live(current_day):
                kept.append(row)
            else:
                expired.append(modifier)
        metrics["buffs"] = kept
        if expired:
            logger.debug(
                "Expired modifiers removed",
                extra={"session_id": getattr(session, "id", None), "buff_keys": [row.key for row in expired]},
            )
        return expired

    def throughput_multiplier(self, session) -> float:
        multiplier = 1.0
        for modifier in self.live_modifiers(session):
            if modifier.effect == EFFECT_THROUGHPUT:
                multiplier += modifier.value * modifier.stacks
            elif modifier.effect == EFFECT_SLOWDOWN:
                multiplier -= modifier.value * modifier.stacks
        return multiplier

    def modify_task_throughput(self, session, base_hours: int) -> int:
        return task_hours_after_modifiers(int(base_hours), self.throughput_multiplier(session))
