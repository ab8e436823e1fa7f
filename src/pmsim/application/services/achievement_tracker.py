from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from pmsim.application.services.achievement_catalog import ACHIEVEMENTS, QUESTS
from pmsim.domain.models.achievement import AchievementDefinition, QuestStepKind, QuestTemplate
from pmsim.domain.models.metrics import ai_alignment_pct, ensure_dict, ensure_list, ensure_metrics, safe_int
from pmsim.domain.services.condition_evaluator import current_level, evaluate, neutralized_risk_count


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def quest_step_satisfied(step: Mapping[str, Any], metrics: Mapping[str, Any], action_counts: Mapping[str, int]) -> bool:
    kind = str(step.get("do", "") or "")
    if kind == QuestStepKind.ASSIGN_TASK.value:
        return safe_int(action_counts.get("assign_task", 0)) >= safe_int(step.get("count"), 999)
    if kind == QuestStepKind.RESPOND_EVENT.value:
        return safe_int(action_counts.get("respond_event", 0)) >= safe_int(step.get("count"), 999)
    if kind == QuestStepKind.REACH_LEVEL.value:
        return current_level(metrics) >= safe_int(step.get("level"), 99)
    if kind == QuestStepKind.NEUTRALIZE_RISK.value:
        return neutralized_risk_count(metrics) >= safe_int(step.get("count"), 999)
    if kind == QuestStepKind.REACH_ALIGNMENT.value:
        alignment = ai_alignment_pct(metrics)
        try:
            target = float(step.get("pct", 999))
        except (TypeError, ValueError):
            return False
        return alignment is not None and alignment >= target
    return False


class AchievementTracker:
    def __init__(
        self,
        achievements: Mapping[str, AchievementDefinition] | None = None,
        quests: Mapping[str, QuestTemplate] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._achievements = achievements if achievements is not None else ACHIEVEMENTS
        self._quests = quests if quests is not None else QUESTS
        self._clock = clock or _utc_now

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def evaluate_achievements(self, session) -> list[str]:
        """Award every catalog achievement whose condition now holds; returns new keys."""

        metrics = ensure_metrics(session)
        earned = ensure_dict(metrics, "achievements")
        counters = ensure_dict(metrics, "action_counts")
        newly_earned: list[str] = []

        for key, definition in self._achievements.items():
            if key in earned:
                continue
            if not evaluate(definition.condition, metrics, counters):
                continue
            stamp = self._now_iso()
            earned[key] = {"earned_at": stamp, "points": int(definition.points)}
            metrics["xp"] = safe_int(metrics.get("xp", 0)) + int(definition.points)
            ensure_list(metrics, "achievement_feed").append(
                {"key": key, "ts": stamp, "points": int(definition.points)}
            )
            newly_earned.append(key)
            logger.info(
                "Achievement earned",
                extra={"session_id": getattr(session, "id", None), "achievement": key, "points": definition.points},
            )
        return newly_earned

    def bootstrap_quests(self, session) -> dict:
        metrics = ensure_metrics(session)
        quests = ensure_dict(metrics, "quests")
        for key, template in self._quests.items():
            if key not in quests or not isinstance(quests.get(key), dict):
                quests[key] = copy.deepcopy(template.to_instance())
        return quests

    def update_quests(self, session) -> list[str]:
        """Advance quest steps monotonically; returns keys of quests completed by this call."""

        metrics = ensure_metrics(session)
        quests = self.bootstrap_quests(session)
        counters = ensure_dict(metrics, "action_counts")
        completed_now: list[str] = []

        for key, quest in quests.items():
            steps = quest.get("steps")
            if not isinstance(steps, list):
                continue
            for step in steps:
                if not isinstance(step, dict) or step.get("done") is True:
                    continue
                if quest_step_satisfied(step, metrics, counters):
                    step["done"] = True

            if quest.get("completed") is True:
                continue
            if not steps or not all(isinstance(step, dict) and step.get("done") is True for step in steps):
                continue
            quest["completed"] = True
            reward = safe_int(quest.get("reward_xp", 0))
            metrics["xp"] = safe_int(metrics.get("xp", 0)) + reward
            ensure_list(metrics, "achievement_feed").append(
                {"quest": key, "ts": self._now_iso(), "reward_xp": reward}
            )
            completed_now.append(key)
            logger.info(
                "Quest completed",
                extra={"session_id": getattr(session, "id", None), "quest": key, "reward_xp": reward},
            )
        return completed_now
