from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from pmsim.domain.models.modifier import BuffSpec


@dataclass(frozen=True)
class FlatBonus:
    metric: str
    amount: float


@dataclass(frozen=True)
class TimedBuff:
    spec: BuffSpec
    duration_days: int = 3


PerkEffect = Union[TimedBuff, FlatBonus]


@dataclass(frozen=True)
class Perk:
    key: str
    label: str
    effect: PerkEffect
