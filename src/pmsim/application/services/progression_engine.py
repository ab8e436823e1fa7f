from __future__ import annotations

import dataclasses
import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from pmsim.application.dtos import ActionOutcome, DailyCycleOutcome, PerkUnlockOutcome
from pmsim.application.services.achievement_tracker import AchievementTracker
from pmsim.application.services.balance_tables import COMBO_WINDOW_SECONDS, NOTIFICATIONS_MAX, RISK_DRAW_CHANCE_PCT
from pmsim.application.services.buff_ledger import BuffLedger
from pmsim.application.services.coaching_service import CoachingService
from pmsim.application.services.event_bus import EventBus
from pmsim.application.services.progression_tree import perks_for_level
from pmsim.application.services.risk_deck import RiskDeck
from pmsim.application.services.risk_effects import AppliedEffect, RiskEffectApplier
from pmsim.application.services.seed_policy import session_day_rng
from pmsim.application.services.session_guard import SessionGuard
from pmsim.domain.events import (
    AchievementEarned,
    ActionRecorded,
    DailyCycleCompleted,
    QuestCompleted,
    RiskCardDrawn,
    RiskCardsTriggered,
)
from pmsim.domain.models.metrics import as_number, ensure_dict, ensure_list, ensure_metrics, ensure_risk_deck, safe_int
from pmsim.domain.models.modifier import BuffSpec, Modifier
from pmsim.domain.models.perk import FlatBonus, TimedBuff
from pmsim.domain.models.risk import RiskCard, RiskCardState
from pmsim.domain.models.session import SimulationAction, SimulationSession
from pmsim.domain.repositories import SessionRepository


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProgressionEngine:
    """Runs the progression rules for one simulation session at a time.

    The ``apply_*``/``run_*`` methods mutate a session object in memory and
    return the events they produced. The id-keyed methods wrap them in a
    ``SessionGuard`` cycle and publish those events once the write landed.
    """

    def __init__(
        self,
        repository: SessionRepository,
        *,
        event_bus: EventBus | None = None,
        buff_ledger: BuffLedger | None = None,
        risk_deck: RiskDeck | None = None,
        tracker: AchievementTracker | None = None,
        effect_applier: RiskEffectApplier | None = None,
        coaching: CoachingService | None = None,
        clock: Callable[[], datetime] | None = None,
        rng_factory: Callable[[SimulationSession], random.Random] | None = None,
        apply_trigger_effects: bool = False,
        write_retries: int = 3,
    ) -> None:
        self.repository = repository
        self.event_bus = event_bus or EventBus()
        self.buffs = buff_ledger or BuffLedger()
        self.risk_deck = risk_deck or RiskDeck()
        self._clock = clock or _utc_now
        self.tracker = tracker or AchievementTracker(clock=self._clock)
        self.effects = effect_applier or RiskEffectApplier(self.buffs)
        self.coaching = coaching or CoachingService()
        self._rng_factory = rng_factory or session_day_rng
        self._apply_trigger_effects = bool(apply_trigger_effects)
        self.guard = SessionGuard(repository, retries=write_retries)

    # -- in-memory steps -------------------------------------------------

    def _evaluate(self, session: SimulationSession, events: list[object]) -> tuple[list[str], list[str]]:
        metrics = ensure_metrics(session)
        earned = self.tracker.evaluate_achievements(session)
        earned_rows = ensure_dict(metrics, "achievements")
        for key in earned:
            events.append(
                AchievementEarned(
                    session_id=session.id,
                    achievement_key=key,
                    points=safe_int(earned_rows.get(key, {}).get("points", 0)),
                    xp_after=safe_int(metrics.get("xp", 0)),
                )
            )
        completed = self.tracker.update_quests(session)
        quests = ensure_dict(metrics, "quests")
        for key in completed:
            events.append(
                QuestCompleted(
                    session_id=session.id,
                    quest_key=key,
                    reward_xp=safe_int(quests.get(key, {}).get("reward_xp", 0)),
                    xp_after=safe_int(metrics.get("xp", 0)),
                )
            )
        return earned, completed

    def apply_action(self, session: SimulationSession, action: SimulationAction) -> tuple[ActionOutcome, list[object]]:
        events: list[object] = []
        metrics = ensure_metrics(session)
        action_type = str(action.type)

        counters = ensure_dict(metrics, "action_counts")
        counters[action_type] = safe_int(counters.get(action_type, 0)) + 1

        performed_at = action.performed_at or self._clock()
        now_ts = int(performed_at.timestamp())
        window = ensure_list(metrics, "combo_window")
        window.append({"timestamp": now_ts, "action_type": action_type})
        metrics["combo_window"] = [
            entry
            for entry in window
            if isinstance(entry, dict) and now_ts - safe_int(entry.get("timestamp"), now_ts) <= COMBO_WINDOW_SECONDS
        ]
        events.append(
            ActionRecorded(
                session_id=session.id,
                action_type=action_type,
                count_after=counters[action_type],
                day=int(session.current_day),
            )
        )

        earned, completed = self._evaluate(session, events)
        outcome = ActionOutcome(
            session=session,
            action_type=action_type,
            count_after=counters[action_type],
            earned_achievements=earned,
            completed_quests=completed,
        )
        return outcome, events

    def run_daily_cycle(
        self,
        session: SimulationSession,
        rng: random.Random | None = None,
    ) -> tuple[DailyCycleOutcome, list[object]]:
        events: list[object] = []
        metrics = ensure_metrics(session)
        source = rng or self._rng_factory(session)
        day = int(session.current_day)
        outcome = DailyCycleOutcome(session=session, day=day)

        if source.randint(1, 100) <= RISK_DRAW_CHANCE_PCT:
            drawn = self.risk_deck.draw(session, rng=source)
            if drawn is not None:
                outcome.drawn_card = drawn
                self._notify(metrics, {"type": "risk_draw", "card": drawn.to_dict(), "day": day})
                events.append(
                    RiskCardDrawn(
                        session_id=session.id,
                        card_id=drawn.id,
                        card_key=drawn.key,
                        day_drawn=drawn.day_drawn,
                        deadline_day=drawn.deadline_day,
                    )
                )

        triggered = self.risk_deck.process_triggers(session)
        if triggered:
            outcome.triggered_cards = triggered
            self._notify(
                metrics,
                {"type": "risk_trigger", "cards": [card.to_dict() for card in triggered], "day": day},
            )
            events.append(RiskCardsTriggered(session_id=session.id, day=day, card_ids=[card.id for card in triggered]))
            if self._apply_trigger_effects:
                outcome.applied_effects = self.effects.apply(session, triggered)

        outcome.expired_buffs = self.buffs.cleanup(session)
        outcome.earned_achievements, outcome.completed_quests = self._evaluate(session, events)
        events.append(
            DailyCycleCompleted(
                session_id=session.id,
                day=day,
                drew_card=outcome.drawn_card is not None,
                triggered_count=len(triggered),
                expired_buff_keys=[row.key for row in outcome.expired_buffs],
            )
        )
        return outcome, events

    @staticmethod
    def _notify(metrics: dict, row: dict) -> None:
        feed = ensure_list(metrics, "notifications")
        feed.append(row)
        if len(feed) > NOTIFICATIONS_MAX:
            del feed[:-NOTIFICATIONS_MAX]

    @staticmethod
    def _sample_morale(session: SimulationSession) -> None:
        metrics = ensure_metrics(session)
        morale = as_number(metrics.get("morale"))
        if morale is None:
            return
        ensure_list(metrics, "morale_history").append({"v": morale, "day": int(session.current_day)})

    # -- serialized operations -------------------------------------------

    def _commit(self, session_id: str, step: Callable[[SimulationSession], tuple[Any, list[object]]]) -> Any:
        (result, events), _ = self.guard.mutate(session_id, step)
        self.event_bus.publish_all(events)
        return result

    def record_action(self, session_id: str, action: SimulationAction) -> ActionOutcome:
        return self._commit(session_id, lambda session: self.apply_action(session, action))

    def daily_cycle(self, session_id: str, rng: random.Random | None = None) -> DailyCycleOutcome:
        return self._commit(session_id, lambda session: self.run_daily_cycle(session, rng=rng))

    def advance_day(
        self,
        session_id: str,
        *,
        perfect_capacity: bool | None = None,
        rng: random.Random | None = None,
    ) -> DailyCycleOutcome:
        def _step(session: SimulationSession):
            session.advance_day()
            if perfect_capacity is not None:
                ensure_metrics(session)["last_day_capacity_perfect"] = bool(perfect_capacity)
            self._sample_morale(session)
            return self.run_daily_cycle(session, rng=rng)

        return self._commit(session_id, _step)

    def evaluate_progress(self, session_id: str) -> tuple[list[str], list[str]]:
        """Re-check achievements and quests after a collaborator changed metrics (e.g. level)."""

        def _step(session: SimulationSession):
            events: list[object] = []
            return self._evaluate(session, events), events

        return self._commit(session_id, _step)

    def add_buff(self, session_id: str, key: str, spec: BuffSpec | Mapping[str, Any]) -> Modifier:
        return self._commit(session_id, lambda session: (self.buffs.add_buff(session, key, spec), []))

    def mitigate(self, session_id: str, card_id: str) -> bool:
        return bool(self._commit(session_id, lambda session: (self.risk_deck.mitigate(session, card_id), [])))

    def apply_risk_effects(self, session_id: str, card_ids: Iterable[str]) -> list[AppliedEffect]:
        wanted = {str(card_id) for card_id in card_ids}

        def _step(session: SimulationSession):
            history = ensure_risk_deck(ensure_metrics(session))["history"]
            cards = [
                RiskCard.from_dict(row)
                for row in history
                if isinstance(row, dict) and str(row.get("id")) in wanted
            ]
            triggered = [card for card in cards if card.state == RiskCardState.TRIGGERED]
            return self.effects.apply(session, triggered), []

        return self._commit(session_id, _step)

    def unlock_perks(self, session_id: str, from_level: int, to_level: int) -> PerkUnlockOutcome:
        def _step(session: SimulationSession):
            metrics = ensure_metrics(session)
            unlocks = ensure_dict(metrics, "perk_unlocks")
            bonuses = ensure_dict(metrics, "perk_bonuses")
            outcome = PerkUnlockOutcome(session=session)
            day = int(session.current_day)
            for level in range(max(0, int(from_level)) + 1, int(to_level) + 1):
                for perk in perks_for_level(level):
                    if perk.key in unlocks:
                        continue
                    if isinstance(perk.effect, TimedBuff):
                        spec = dataclasses.replace(perk.effect.spec, expires_day=day + int(perk.effect.duration_days))
                        self.buffs.add_buff(session, perk.key, spec)
                        outcome.buffs_added.append(perk.key)
                    elif isinstance(perk.effect, FlatBonus):
                        metric = str(perk.effect.metric)
                        bonuses[metric] = (as_number(bonuses.get(metric)) or 0.0) + float(perk.effect.amount)
                        outcome.flat_bonuses[metric] = bonuses[metric]
                    unlocks[perk.key] = {"level": level, "day": day}
                    outcome.unlocked_perks.append(perk.key)
            return outcome, []

        return self._commit(session_id, _step)

    def modify_task_throughput(self, session_id: str, base_hours: int) -> int:
        return self.guard.read(session_id, lambda session: self.buffs.modify_task_throughput(session, base_hours))

    def generate_tips(self, session_id: str) -> list[str]:
        session = self.guard.read(session_id, lambda row: row)
        return self.coaching.generate_tips(session)
