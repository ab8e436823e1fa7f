from dataclasses import dataclass, field


@dataclass
class ActionRecorded:
    session_id: str
    action_type: str
    count_after: int
    day: int


@dataclass
class AchievementEarned:
    session_id: str
    achievement_key: str
    points: int
    xp_after: int


@dataclass
class QuestCompleted:
    session_id: str
    quest_key: str
    reward_xp: int
    xp_after: int


@dataclass
class RiskCardDrawn:
    session_id: str
    card_id: str
    card_key: str
    day_drawn: int
    deadline_day: int


@dataclass
class RiskCardsTriggered:
    session_id: str
    day: int
    card_ids: list[str] = field(default_factory=list)


@dataclass
class DailyCycleCompleted:
    session_id: str
    day: int
    drew_card: bool
    triggered_count: int
    expired_buff_keys: list[str] = field(default_factory=list)
