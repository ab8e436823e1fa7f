from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass
class SimulationSession:
    id: str
    user_id: int | None = None
    current_day: int = 1
    budget_total: float = 0.0
    budget_used: float = 0.0
    rng_seed: int = 1
    metrics: Dict[str, Any] = field(default_factory=dict)
    version: int = 0

    def advance_day(self, days: int = 1) -> int:
        """Move the simulated calendar forward; the day never goes backwards."""

        self.current_day = int(self.current_day) + max(0, int(days))
        return self.current_day


@dataclass
class SimulationAction:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    day_performed: int | None = None
    performed_at: datetime | None = None
