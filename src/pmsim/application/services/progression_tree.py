from __future__ import annotations

from pmsim.domain.models.modifier import (
    EFFECT_MORALE_CAP,
    EFFECT_RISK_PREVIEW,
    EFFECT_THROUGHPUT,
    BuffSpec,
)
from pmsim.domain.models.perk import FlatBonus, Perk, TimedBuff


LEVEL_PERKS: dict[int, tuple[Perk, ...]] = {
    2: (
        Perk(
            key="focus_sprint",
            label="Focus Sprint",
            effect=TimedBuff(
                spec=BuffSpec(
                    type="buff",
                    effect=EFFECT_THROUGHPUT,
                    value=0.05,
                    label="Focus Sprint",
                    description="Team output +5% per stack.",
                    stackable=True,
                    max_stacks=3,
                ),
                duration_days=3,
            ),
        ),
    ),
    3: (
        Perk(
            key="morale_reserve",
            label="Morale Reserve",
            effect=FlatBonus(metric=EFFECT_MORALE_CAP, amount=5),
        ),
    ),
    4: (
        Perk(
            key="risk_radar",
            label="Risk Radar",
            effect=TimedBuff(
                spec=BuffSpec(
                    type="buff",
                    effect=EFFECT_RISK_PREVIEW,
                    value=1,
                    label="Risk Radar",
                    description="Preview the next risk card before it lands.",
                ),
                duration_days=5,
            ),
        ),
    ),
    5: (
        Perk(
            key="delivery_cadence",
            label="Delivery Cadence",
            effect=TimedBuff(
                spec=BuffSpec(
                    type="buff",
                    effect=EFFECT_THROUGHPUT,
                    value=0.10,
                    label="Delivery Cadence",
                    description="Team output +10% per stack.",
                    stackable=True,
                    max_stacks=2,
                ),
                duration_days=4,
            ),
        ),
        Perk(
            key="steady_hand",
            label="Steady Hand",
            effect=FlatBonus(metric=EFFECT_MORALE_CAP, amount=5),
        ),
    ),
}


def perks_for_level(level: int) -> tuple[Perk, ...]:
    return LEVEL_PERKS.get(int(level or 0), ())


def perks_between(from_level: int, to_level: int) -> list[Perk]:
    """Perks unlocked when moving from ``from_level`` (exclusive) to ``to_level`` (inclusive)."""

    start = max(0, int(from_level or 0))
    end = int(to_level or 0)
    rows: list[Perk] = []
    for level in range(start + 1, end + 1):
        rows.extend(perks_for_level(level))
    return rows
