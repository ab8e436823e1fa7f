from __future__ import annotations

from typing import Any, Mapping

from pmsim.domain.models.condition import (
    ActionCountCondition,
    AiAlignmentCondition,
    ComboActionsCondition,
    Condition,
    FinalMetricCondition,
    LevelReachedCondition,
    MetricMinThresholdCondition,
    PerfectCapacityDayCondition,
    RiskNeutralizedCondition,
    SicknessResponseFastCondition,
    parse_condition,
)
from pmsim.domain.models.metrics import ai_alignment_pct, as_number, lookup_number, safe_int


STRATEGIC_ACTION_TYPES: frozenset[str] = frozenset(
    {
        "schedule_workshop",
        "allocate_overtime",
        "ack_budget_cut",
    }
)


def current_level(metrics: Mapping[str, Any]) -> int:
    return safe_int(metrics.get("level", 1), 1)


def neutralized_risk_count(metrics: Mapping[str, Any]) -> int:
    stats = metrics.get("risk_stats", {})
    if not isinstance(stats, Mapping):
        return 0
    return safe_int(stats.get("neutralized", 0), 0)


def strategic_combo_count(metrics: Mapping[str, Any]) -> int:
    window = metrics.get("combo_window", [])
    if not isinstance(window, list):
        return 0
    return sum(
        1
        for entry in window
        if isinstance(entry, Mapping) and str(entry.get("action_type", "")) in STRATEGIC_ACTION_TYPES
    )


def _morale_never_below(metrics: Mapping[str, Any], floor: float) -> bool:
    history = metrics.get("morale_history", [])
    if not isinstance(history, list) or not history:
        return False
    for sample in history:
        value = as_number(sample.get("v")) if isinstance(sample, Mapping) else None
        if value is None or value < floor:
            return False
    return True


def evaluate(
    condition: Condition | Mapping[str, Any] | None,
    metrics: Mapping[str, Any] | None,
    action_counts: Mapping[str, int] | None = None,
) -> bool:
    if isinstance(condition, Mapping) or condition is None:
        condition = parse_condition(condition)
    snapshot: Mapping[str, Any] = metrics if isinstance(metrics, Mapping) else {}
    counters = action_counts if isinstance(action_counts, Mapping) else {}

    if isinstance(condition, ActionCountCondition):
        return safe_int(counters.get(condition.action, 0), 0) >= int(condition.count)

    if isinstance(condition, LevelReachedCondition):
        return current_level(snapshot) >= int(condition.level)

    if isinstance(condition, AiAlignmentCondition):
        alignment = ai_alignment_pct(snapshot)
        return alignment is not None and alignment >= float(condition.gte)

    if isinstance(condition, FinalMetricCondition):
        value = lookup_number(snapshot, condition.path)
        if value is None:
            return False
        if condition.gte is not None and value < float(condition.gte):
            return False
        if condition.lte is not None and value > float(condition.lte):
            return False
        return True

    if isinstance(condition, MetricMinThresholdCondition):
        if str(condition.metric) != "morale":
            return False
        return _morale_never_below(snapshot, float(condition.min))

    if isinstance(condition, ComboActionsCondition):
        return strategic_combo_count(snapshot) >= int(condition.count)

    if isinstance(condition, RiskNeutralizedCondition):
        return neutralized_risk_count(snapshot) >= int(condition.count)

    if isinstance(condition, PerfectCapacityDayCondition):
        return snapshot.get("last_day_capacity_perfect") is True

    if isinstance(condition, SicknessResponseFastCondition):
        # Placeholder: sickness/response timestamps are not tracked yet.
        return False

    return False
