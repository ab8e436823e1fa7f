from dataclasses import dataclass, field
from typing import List, Optional

from pmsim.application.services.risk_effects import AppliedEffect
from pmsim.domain.models.modifier import Modifier
from pmsim.domain.models.risk import RiskCard
from pmsim.domain.models.session import SimulationSession


@dataclass
class ActionOutcome:
    session: SimulationSession
    action_type: str
    count_after: int
    earned_achievements: List[str] = field(default_factory=list)
    completed_quests: List[str] = field(default_factory=list)


@dataclass
class DailyCycleOutcome:
    session: SimulationSession
    day: int
    drawn_card: Optional[RiskCard] = None
    triggered_cards: List[RiskCard] = field(default_factory=list)
    applied_effects: List[AppliedEffect] = field(default_factory=list)
    expired_buffs: List[Modifier] = field(default_factory=list)
    earned_achievements: List[str] = field(default_factory=list)
    completed_quests: List[str] = field(default_factory=list)


@dataclass
class PerkUnlockOutcome:
    session: SimulationSession
    unlocked_perks: List[str] = field(default_factory=list)
    buffs_added: List[str] = field(default_factory=list)
    flat_bonuses: dict = field(default_factory=dict)
