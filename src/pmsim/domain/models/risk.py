from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class RiskCardState(str, Enum):
    PENDING = "pending"
    MITIGATED = "mitigated"
    TRIGGERED = "triggered"


@dataclass(frozen=True)
class RiskCardTemplate:
    key: str
    title: str
    description: str
    mitigation: str
    on_trigger: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class RiskCard:
    id: str
    key: str
    title: str
    description: str
    mitigation: str
    day_drawn: int
    deadline_day: int
    state: RiskCardState = RiskCardState.PENDING
    on_trigger: dict[str, Any] = field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.state == RiskCardState.PENDING

    def is_overdue(self, current_day: int) -> bool:
        return self.is_pending and int(current_day) > int(self.deadline_day)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "title": self.title,
            "description": self.description,
            "mitigation": self.mitigation,
            "day_drawn": int(self.day_drawn),
            "deadline_day": int(self.deadline_day),
            "state": self.state.value,
            "on_trigger": dict(self.on_trigger),
        }

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "RiskCard":
        raw_state = str(row.get("state", RiskCardState.PENDING.value) or RiskCardState.PENDING.value)
        try:
            state = RiskCardState(raw_state)
        except ValueError:
            state = RiskCardState.PENDING
        on_trigger = row.get("on_trigger", {})
        return cls(
            id=str(row.get("id", "")),
            key=str(row.get("key", "")),
            title=str(row.get("title", "")),
            description=str(row.get("description", "")),
            mitigation=str(row.get("mitigation", "")),
            day_drawn=int(row.get("day_drawn", 0) or 0),
            deadline_day=int(row.get("deadline_day", 0) or 0),
            state=state,
            on_trigger=dict(on_trigger) if isinstance(on_trigger, Mapping) else {},
        )
