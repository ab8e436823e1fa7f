from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from pmsim.domain.models.achievement import AchievementDefinition, QuestStepKind, QuestStepTemplate, QuestTemplate
from pmsim.domain.models.condition import (
    ActionCountCondition,
    AiAlignmentCondition,
    ComboActionsCondition,
    FinalMetricCondition,
    LevelReachedCondition,
    MetricMinThresholdCondition,
    PerfectCapacityDayCondition,
    RiskNeutralizedCondition,
    SicknessResponseFastCondition,
)


_ACHIEVEMENTS = (
    AchievementDefinition(
        key="first_assign",
        title="First Delegation",
        description="Assign your first task to a team member.",
        points=25,
        category="onboarding",
        condition=ActionCountCondition(action="assign_task", count=1),
    ),
    AchievementDefinition(
        key="five_assign",
        title="Delegation Cadence",
        description="Assign 5 tasks.",
        points=40,
        category="progression",
        condition=ActionCountCondition(action="assign_task", count=5),
    ),
    AchievementDefinition(
        key="budget_guardian",
        title="Budget Guardian",
        description="Finish with 30%+ of original budget unspent.",
        points=120,
        category="efficiency",
        condition=FinalMetricCondition(path="evaluation.raw.budget_remaining_ratio", gte=0.30),
    ),
    AchievementDefinition(
        key="scope_tamer",
        title="Scope Tamer",
        description="Keep scope growth under 5%.",
        points=140,
        category="efficiency",
        condition=FinalMetricCondition(path="evaluation.raw.scope_growth_pct", lte=5),
    ),
    AchievementDefinition(
        key="all_tasks_done",
        title="Zero Backlog",
        description="Complete 100% of baseline hours (timebox).",
        points=200,
        category="mastery",
        condition=FinalMetricCondition(path="evaluation.progress_pct", gte=100),
    ),
    AchievementDefinition(
        key="morale_keeper",
        title="Morale Keeper",
        description="Never let morale drop below 70.",
        points=110,
        category="wellbeing",
        condition=MetricMinThresholdCondition(metric="morale", min=70),
    ),
    AchievementDefinition(
        key="event_responder",
        title="Crisis Responder",
        description="Respond to 5 events in one simulation.",
        points=90,
        category="responsiveness",
        condition=ActionCountCondition(action="respond_event", count=5),
    ),
    AchievementDefinition(
        key="sickness_support",
        title="Empathetic Lead",
        description="Check in on a sick team member immediately (same day).",
        points=60,
        secret=True,
        category="wellbeing",
        condition=SicknessResponseFastCondition(minutes=10),
    ),
    AchievementDefinition(
        key="level_5",
        title="Level 5 Unlocked",
        description="Reach level 5 in one simulation.",
        points=150,
        category="progression",
        condition=LevelReachedCondition(level=5),
    ),
    AchievementDefinition(
        key="risk_mitigator",
        title="Risk Mitigator",
        description="Neutralize 3 risk cards before they trigger.",
        points=130,
        category="risk",
        condition=RiskNeutralizedCondition(count=3),
    ),
    AchievementDefinition(
        key="combo_planner",
        title="Combo Planner",
        description="Chain 3 strategic actions in one cycle.",
        points=160,
        secret=True,
        category="strategy",
        condition=ComboActionsCondition(count=3, window_minutes=15),
    ),
    AchievementDefinition(
        key="lean_allocator",
        title="Lean Allocator",
        description="Assign tasks spending less than 60% of budget used.",
        points=100,
        category="efficiency",
        condition=FinalMetricCondition(path="evaluation.raw.budget_used_ratio", lte=0.60),
    ),
    AchievementDefinition(
        key="perfect_day",
        title="Perfect Day",
        description="Advance a day with 0 idle capacity (members fully utilized).",
        points=75,
        secret=True,
        category="optimization",
        condition=PerfectCapacityDayCondition(),
    ),
    AchievementDefinition(
        key="ai_alignment",
        title="AI Aligned",
        description="Achieve AI scope alignment >= 85%.",
        points=170,
        category="ai",
        condition=AiAlignmentCondition(gte=85),
    ),
)

_QUESTS = (
    QuestTemplate(
        key="starter_path",
        title="Starter Path",
        steps=(
            QuestStepTemplate(do=QuestStepKind.ASSIGN_TASK.value, count=1, label="Assign any task"),
            QuestStepTemplate(do=QuestStepKind.RESPOND_EVENT.value, count=1, label="Respond to one event"),
            QuestStepTemplate(do=QuestStepKind.REACH_LEVEL.value, level=2, label="Reach Level 2"),
        ),
        reward_xp=80,
    ),
    QuestTemplate(
        key="risk_route",
        title="Risk Route",
        steps=(
            QuestStepTemplate(do=QuestStepKind.NEUTRALIZE_RISK.value, count=1, label="Neutralize a risk card"),
            QuestStepTemplate(do=QuestStepKind.NEUTRALIZE_RISK.value, count=3, label="Neutralize 3 total risks"),
            QuestStepTemplate(do=QuestStepKind.REACH_ALIGNMENT.value, pct=70, label="Reach 70% AI scope alignment"),
        ),
        reward_xp=120,
    ),
)

ACHIEVEMENTS: Mapping[str, AchievementDefinition] = MappingProxyType({row.key: row for row in _ACHIEVEMENTS})
QUESTS: Mapping[str, QuestTemplate] = MappingProxyType({row.key: row for row in _QUESTS})


def visible_achievements(earned_keys: set[str] | None = None) -> list[AchievementDefinition]:
    """Catalog rows a player may see: secret entries stay hidden until earned."""

    earned = set(earned_keys or ())
    return [row for row in ACHIEVEMENTS.values() if not row.secret or row.key in earned]
