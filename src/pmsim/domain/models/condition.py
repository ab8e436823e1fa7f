from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Mapping, Union


class ConditionKind(str, Enum):
    ACTION_COUNT = "action_count"
    LEVEL_REACHED = "level_reached"
    AI_ALIGNMENT = "ai_alignment"
    FINAL_METRIC = "final_metric"
    METRIC_MIN_THRESHOLD = "metric_min_threshold"
    COMBO_ACTIONS = "combo_actions"
    RISK_NEUTRALIZED = "risk_neutralized"
    PERFECT_CAPACITY_DAY = "perfect_capacity_day"
    SICKNESS_RESPONSE_FAST = "sickness_response_fast"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ActionCountCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.ACTION_COUNT
    action: str
    count: int


@dataclass(frozen=True)
class LevelReachedCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.LEVEL_REACHED
    level: int


@dataclass(frozen=True)
class AiAlignmentCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.AI_ALIGNMENT
    gte: float


@dataclass(frozen=True)
class FinalMetricCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.FINAL_METRIC
    path: str
    gte: float | None = None
    lte: float | None = None


@dataclass(frozen=True)
class MetricMinThresholdCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.METRIC_MIN_THRESHOLD
    metric: str
    min: float


@dataclass(frozen=True)
class ComboActionsCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.COMBO_ACTIONS
    count: int
    window_minutes: int = 15


@dataclass(frozen=True)
class RiskNeutralizedCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.RISK_NEUTRALIZED
    count: int


@dataclass(frozen=True)
class PerfectCapacityDayCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.PERFECT_CAPACITY_DAY


@dataclass(frozen=True)
class SicknessResponseFastCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.SICKNESS_RESPONSE_FAST
    minutes: int = 10


@dataclass(frozen=True)
class UnknownCondition:
    kind: ClassVar[ConditionKind] = ConditionKind.UNKNOWN
    raw_type: str = ""


Condition = Union[
    ActionCountCondition,
    LevelReachedCondition,
    AiAlignmentCondition,
    FinalMetricCondition,
    MetricMinThresholdCondition,
    ComboActionsCondition,
    RiskNeutralizedCondition,
    PerfectCapacityDayCondition,
    SicknessResponseFastCondition,
    UnknownCondition,
]


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_condition(raw: Mapping[str, Any] | None) -> Condition:
    """Build a condition from a catalog mapping such as ``{"type": "action_count", ...}``.

    Malformed entries become ``UnknownCondition`` so they never unlock.
    """

    if not isinstance(raw, Mapping):
        return UnknownCondition()
    raw_type = str(raw.get("type", "") or "").strip().lower()
    try:
        if raw_type == ConditionKind.ACTION_COUNT.value:
            return ActionCountCondition(action=str(raw["action"]), count=int(raw["count"]))
        if raw_type == ConditionKind.LEVEL_REACHED.value:
            return LevelReachedCondition(level=int(raw["level"]))
        if raw_type == ConditionKind.AI_ALIGNMENT.value:
            return AiAlignmentCondition(gte=float(raw["gte"]))
        if raw_type == ConditionKind.FINAL_METRIC.value:
            return FinalMetricCondition(
                path=str(raw["path"]),
                gte=_optional_float(raw.get("gte")),
                lte=_optional_float(raw.get("lte")),
            )
        if raw_type == ConditionKind.METRIC_MIN_THRESHOLD.value:
            return MetricMinThresholdCondition(metric=str(raw["metric"]), min=float(raw["min"]))
        if raw_type == ConditionKind.COMBO_ACTIONS.value:
            return ComboActionsCondition(
                count=int(raw["count"]),
                window_minutes=int(raw.get("window_minutes", 15) or 15),
            )
        if raw_type == ConditionKind.RISK_NEUTRALIZED.value:
            return RiskNeutralizedCondition(count=int(raw["count"]))
        if raw_type == ConditionKind.PERFECT_CAPACITY_DAY.value:
            return PerfectCapacityDayCondition()
        if raw_type == ConditionKind.SICKNESS_RESPONSE_FAST.value:
            return SicknessResponseFastCondition(minutes=int(raw.get("minutes", 10) or 10))
    except (KeyError, TypeError, ValueError):
        return UnknownCondition(raw_type=raw_type)
    return UnknownCondition(raw_type=raw_type)
