from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pmsim.domain.models.condition import Condition


class QuestStepKind(str, Enum):
    ASSIGN_TASK = "assign_task"
    RESPOND_EVENT = "respond_event"
    REACH_LEVEL = "reach_level"
    NEUTRALIZE_RISK = "neutralize_risk"
    REACH_ALIGNMENT = "reach_alignment"


@dataclass(frozen=True)
class AchievementDefinition:
    key: str
    title: str
    description: str
    points: int
    condition: Condition
    secret: bool = False
    category: str = "general"


@dataclass(frozen=True)
class QuestStepTemplate:
    do: str
    label: str
    count: int | None = None
    level: int | None = None
    pct: float | None = None

    def to_instance(self) -> dict:
        row: dict[str, object] = {"do": self.do, "label": self.label, "done": False}
        if self.count is not None:
            row["count"] = int(self.count)
        if self.level is not None:
            row["level"] = int(self.level)
        if self.pct is not None:
            row["pct"] = float(self.pct)
        return row


@dataclass(frozen=True)
class QuestTemplate:
    key: str
    title: str
    steps: tuple[QuestStepTemplate, ...]
    reward_xp: int = 0

    def to_instance(self) -> dict:
        """Fresh, independently mutable quest state for one session."""

        return {
            "title": self.title,
            "steps": [step.to_instance() for step in self.steps],
            "completed": False,
            "reward_xp": int(self.reward_xp),
        }
