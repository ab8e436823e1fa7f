from __future__ import annotations


COMBO_WINDOW_SECONDS = 15 * 60

RISK_DRAW_CHANCE_PCT = 35
RISK_DECK_ACTIVE_LIMIT = 3
RISK_DEADLINE_MIN_DAYS = 1
RISK_DEADLINE_MAX_DAYS = 2
RISK_SLOWDOWN_DURATION_DAYS = 2

DEFAULT_MAX_STACKS = 3
THROUGHPUT_FLOOR_HOURS = 1

MORALE_DEFAULT = 70
MORALE_MIN = 0
MORALE_MAX = 100

NOTIFICATIONS_MAX = 50

COACH_TIP_LIMIT = 5
COACH_TIP_MAX_CHARS = 140
COACH_MORALE_THRESHOLD = 70
COACH_BUDGET_UTILIZATION_THRESHOLD = 0.8
COACH_ALIGNMENT_THRESHOLD = 60


def round_half_up(value: float) -> int:
    """Nearest-integer rounding with .5 going away from zero."""

    magnitude = int(abs(float(value)) + 0.5)
    return magnitude if value >= 0 else -magnitude


def task_hours_after_modifiers(base_hours: int, multiplier: float) -> int:
    return max(THROUGHPUT_FLOOR_HOURS, round_half_up(float(base_hours) * float(multiplier)))


def clamp_morale(value: float) -> int:
    return int(max(MORALE_MIN, min(MORALE_MAX, round_half_up(value))))


def budget_utilization(budget_used: float, budget_total: float) -> float:
    return float(budget_used or 0) / max(1.0, float(budget_total or 0))
