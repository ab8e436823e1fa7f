from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping

EFFECT_THROUGHPUT = "throughput"
EFFECT_SLOWDOWN = "slowdown"
EFFECT_MORALE_CAP = "morale_cap"
EFFECT_RISK_PREVIEW = "risk_preview"


@dataclass(frozen=True)
class BuffSpec:
    type: str = "modifier"
    effect: str = "unknown"
    value: float = 0.0
    stacks: int | None = None
    expires_day: int | None = None
    label: str | None = None
    description: str = ""
    stackable: bool = False
    max_stacks: int | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "BuffSpec":
        data = dict(raw or {})

        def _opt_int(name: str) -> int | None:
            value = data.get(name)
            if value is None:
                return None
            try:
                return int(value)
            except (TypeError, ValueError):
                return None

        try:
            value = float(data.get("value", 0) or 0)
        except (TypeError, ValueError):
            value = 0.0
        return cls(
            type=str(data.get("type", "modifier") or "modifier"),
            effect=str(data.get("effect", "unknown") or "unknown"),
            value=value,
            stacks=_opt_int("stacks"),
            expires_day=_opt_int("expires_day"),
            label=(str(data["label"]) if data.get("label") else None),
            description=str(data.get("description", "") or ""),
            stackable=bool(data.get("stackable", False)),
            max_stacks=_opt_int("max_stacks"),
        )


@dataclass
class Modifier:
    key: str
    type: str
    effect: str
    value: float
    stacks: int
    expires_day: int
    label: str
    description: str = ""

    def is_live(self, current_day: int) -> bool:
        return int(self.expires_day) > int(current_day)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Modifier":
        key = str(row.get("key", ""))
        try:
            value = float(row.get("value", 0) or 0)
        except (TypeError, ValueError):
            value = 0.0
        try:
            stacks = int(row.get("stacks", 1) or 1)
        except (TypeError, ValueError):
            stacks = 1
        try:
            expires_day = int(row.get("expires_day", 0) or 0)
        except (TypeError, ValueError):
            expires_day = 0
        return cls(
            key=key,
            type=str(row.get("type", "modifier") or "modifier"),
            effect=str(row.get("effect", "unknown") or "unknown"),
            value=value,
            stacks=stacks,
            expires_day=expires_day,
            label=str(row.get("label", "") or key.replace("_", " ").capitalize()),
            description=str(row.get("description", "") or ""),
        )
