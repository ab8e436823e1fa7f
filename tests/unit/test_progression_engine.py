import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from pmsim.application.services.coaching_service import BUDGET_TIP, MORALE_TIP
from pmsim.application.services.event_bus import EventBus
from pmsim.application.services.progression_engine import ProgressionEngine
from pmsim.application.services.risk_deck import RISK_CATALOG
from pmsim.application.services.seed_policy import session_day_rng
from pmsim.domain.events import ActionRecorded, DailyCycleCompleted, RiskCardDrawn
from pmsim.domain.models.modifier import EFFECT_THROUGHPUT, BuffSpec
from pmsim.domain.models.risk import RiskCard
from pmsim.domain.models.session import SimulationAction, SimulationSession
from pmsim.domain.repositories import SessionNotFoundError, SessionWriteConflictError, StaleSessionError
from pmsim.infrastructure.inmemory.session_repo import InMemorySessionRepository


_T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


class _AlwaysDrawRng(random.Random):
    def randint(self, a, b):
        return a


class _NeverDrawRng(random.Random):
    def randint(self, a, b):
        return b


class _FlakyRepository(InMemorySessionRepository):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.save_calls = 0

    def save(self, session, *, expected_version):
        self.save_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise StaleSessionError(str(session.id), int(expected_version), int(expected_version) + 1)
        super().save(session, expected_version=expected_version)


def _overdue_card(card_id: str, key: str = "compliance_audit") -> dict:
    template = RISK_CATALOG[key]
    return RiskCard(
        id=card_id,
        key=template.key,
        title=template.title,
        description=template.description,
        mitigation=template.mitigation,
        day_drawn=1,
        deadline_day=1,
        on_trigger=dict(template.on_trigger),
    ).to_dict()


def _engine(repository=None, **kwargs) -> ProgressionEngine:
    kwargs.setdefault("clock", lambda: _T0)
    return ProgressionEngine(repository or InMemorySessionRepository(), **kwargs)


def _create(engine: ProgressionEngine, **fields) -> SimulationSession:
    fields.setdefault("id", "s1")
    return engine.repository.create(SimulationSession(**fields))


class RecordActionTests(unittest.TestCase):
    def test_record_action_counts_and_awards(self) -> None:
        engine = _engine()
        _create(engine)

        outcome = engine.record_action("s1", SimulationAction(type="assign_task", performed_at=_T0))

        self.assertEqual(1, outcome.count_after)
        self.assertEqual(["first_assign"], outcome.earned_achievements)
        stored = engine.repository.require("s1")
        self.assertEqual({"assign_task": 1}, stored.metrics["action_counts"])
        self.assertEqual(25, stored.metrics["xp"])
        self.assertEqual(2, stored.version)

    def test_combo_window_drops_entries_older_than_fifteen_minutes(self) -> None:
        engine = _engine()
        _create(engine)

        for minutes in (0, 10, 20):
            engine.record_action(
                "s1",
                SimulationAction(type="schedule_workshop", performed_at=_T0 + timedelta(minutes=minutes)),
            )

        window = engine.repository.require("s1").metrics["combo_window"]
        self.assertEqual(2, len(window))
        self.assertEqual(int((_T0 + timedelta(minutes=10)).timestamp()), window[0]["timestamp"])

    def test_three_strategic_actions_inside_window_earn_combo(self) -> None:
        engine = _engine()
        _create(engine)
        earned: list[str] = []

        for offset, action_type in enumerate(("schedule_workshop", "allocate_overtime", "ack_budget_cut")):
            outcome = engine.record_action(
                "s1",
                SimulationAction(type=action_type, performed_at=_T0 + timedelta(minutes=4 * offset)),
            )
            earned.extend(outcome.earned_achievements)

        self.assertEqual(["combo_planner"], earned)

    def test_five_assignments_award_five_assign_once(self) -> None:
        engine = _engine()
        _create(engine)
        earned: list[str] = []

        for offset in range(6):
            outcome = engine.record_action(
                "s1",
                SimulationAction(type="assign_task", performed_at=_T0 + timedelta(hours=offset)),
            )
            earned.extend(outcome.earned_achievements)

        self.assertEqual(["first_assign", "five_assign"], earned)
        self.assertEqual(65, engine.repository.require("s1").metrics["xp"])

    def test_events_are_published_after_the_write(self) -> None:
        bus = EventBus()
        engine = _engine(event_bus=bus)
        _create(engine)
        observed: list[int] = []
        bus.subscribe(
            ActionRecorded,
            lambda event: observed.append(engine.repository.require(event.session_id).metrics["action_counts"]["assign_task"]),
        )

        engine.record_action("s1", SimulationAction(type="assign_task", performed_at=_T0))

        self.assertEqual([1], observed)


class DailyCycleTests(unittest.TestCase):
    def test_cycle_draws_then_triggers_then_cleans_up(self) -> None:
        engine = _engine()
        _create(
            engine,
            current_day=2,
            metrics={
                "risk_deck": {"active": [_overdue_card("old")], "history": []},
                "buffs": [
                    {"key": "stale", "type": "buff", "effect": EFFECT_THROUGHPUT, "value": 0.1, "stacks": 1,
                     "expires_day": 2, "label": "Stale"},
                ],
            },
        )

        outcome = engine.daily_cycle("s1", rng=_AlwaysDrawRng(5))

        self.assertIsNotNone(outcome.drawn_card)
        self.assertEqual(3, outcome.drawn_card.deadline_day)
        self.assertEqual(["old"], [card.id for card in outcome.triggered_cards])
        self.assertEqual(["stale"], [row.key for row in outcome.expired_buffs])
        stored = engine.repository.require("s1")
        self.assertEqual(["risk_draw", "risk_trigger"], [row["type"] for row in stored.metrics["notifications"]])
        self.assertEqual([outcome.drawn_card.id], [row["id"] for row in stored.metrics["risk_deck"]["active"]])
        self.assertEqual([], stored.metrics["buffs"])
        self.assertEqual([], outcome.applied_effects)

    def test_cycle_without_draw_leaves_deck_alone(self) -> None:
        engine = _engine()
        _create(engine)

        outcome = engine.daily_cycle("s1", rng=_NeverDrawRng(5))

        self.assertIsNone(outcome.drawn_card)
        stored = engine.repository.require("s1")
        self.assertEqual([], stored.metrics["risk_deck"]["active"])
        self.assertEqual([], stored.metrics.get("notifications", []))

    def test_notifications_are_capped(self) -> None:
        engine = _engine()
        _create(engine, metrics={"notifications": [{"type": "old", "n": index} for index in range(50)]})

        engine.daily_cycle("s1", rng=_AlwaysDrawRng(1))

        feed = engine.repository.require("s1").metrics["notifications"]
        self.assertEqual(50, len(feed))
        self.assertEqual(1, feed[0]["n"])
        self.assertEqual("risk_draw", feed[-1]["type"])

    def test_trigger_effects_apply_when_enabled(self) -> None:
        engine = _engine(apply_trigger_effects=True)
        _create(engine, current_day=2, metrics={"morale": 80, "risk_deck": {"active": [_overdue_card("c1")], "history": []}})

        outcome = engine.daily_cycle("s1", rng=_NeverDrawRng(1))

        self.assertEqual(["morale"], [row.kind for row in outcome.applied_effects])
        self.assertEqual(75, engine.repository.require("s1").metrics["morale"])

    def test_trigger_effects_stay_off_by_default_and_can_be_applied_later(self) -> None:
        engine = _engine()
        _create(engine, current_day=2, metrics={"morale": 80, "risk_deck": {"active": [_overdue_card("c1")], "history": []}})

        engine.daily_cycle("s1", rng=_NeverDrawRng(1))
        self.assertEqual(80, engine.repository.require("s1").metrics["morale"])

        applied = engine.apply_risk_effects("s1", ["c1"])
        again = engine.apply_risk_effects("s1", ["c1"])

        self.assertEqual(1, len(applied))
        self.assertEqual([], again)
        self.assertEqual(75, engine.repository.require("s1").metrics["morale"])

    def test_cycle_publishes_draw_and_completion_events(self) -> None:
        bus = EventBus()
        engine = _engine(event_bus=bus)
        _create(engine)
        seen: list[str] = []
        bus.subscribe(RiskCardDrawn, lambda event: seen.append("drawn"))
        bus.subscribe(DailyCycleCompleted, lambda event: seen.append(f"done:{event.day}"))

        engine.daily_cycle("s1", rng=_AlwaysDrawRng(1))

        self.assertEqual(["drawn", "done:1"], seen)

    def test_default_rng_replays_for_same_session_day(self) -> None:
        first = _engine()
        second = _engine()
        _create(first, rng_seed=42, current_day=3)
        _create(second, rng_seed=42, current_day=3)

        outcome_a = first.daily_cycle("s1")
        outcome_b = second.daily_cycle("s1")

        self.assertEqual(
            outcome_a.drawn_card.to_dict() if outcome_a.drawn_card else None,
            outcome_b.drawn_card.to_dict() if outcome_b.drawn_card else None,
        )

    def test_second_cycle_on_same_day_draws_a_fresh_card(self) -> None:
        engine = _engine(rng_factory=lambda session: _AlwaysDrawRng(session_day_rng(session).getrandbits(64)))
        _create(engine, rng_seed=42, current_day=3)

        first = engine.daily_cycle("s1").drawn_card
        second = engine.daily_cycle("s1").drawn_card

        stored = engine.repository.require("s1")
        ids = [row["id"] for row in stored.metrics["risk_deck"]["active"]]
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(2, len(set(ids)))
        self.assertEqual(2, stored.metrics["risk_stats"]["drawn"])


class AdvanceDayTests(unittest.TestCase):
    def test_advance_day_moves_calendar_samples_morale_and_flags_capacity(self) -> None:
        engine = _engine()
        _create(engine, metrics={"morale": 74})

        outcome = engine.advance_day("s1", perfect_capacity=True, rng=_NeverDrawRng(1))

        stored = engine.repository.require("s1")
        self.assertEqual(2, outcome.day)
        self.assertEqual(2, stored.current_day)
        self.assertEqual([{"v": 74.0, "day": 2}], stored.metrics["morale_history"])
        self.assertIn("perfect_day", outcome.earned_achievements)
        self.assertIn("morale_keeper", outcome.earned_achievements)

    def test_advance_day_without_morale_skips_sample(self) -> None:
        engine = _engine()
        _create(engine)

        engine.advance_day("s1", rng=_NeverDrawRng(1))

        stored = engine.repository.require("s1")
        self.assertNotIn("morale_history", stored.metrics)
        self.assertNotIn("last_day_capacity_perfect", stored.metrics)


class SerializedWriteTests(unittest.TestCase):
    def test_lost_version_race_is_replayed(self) -> None:
        repository = _FlakyRepository(failures=1)
        engine = _engine(repository)
        _create(engine)

        outcome = engine.record_action("s1", SimulationAction(type="assign_task", performed_at=_T0))

        self.assertEqual(1, outcome.count_after)
        self.assertEqual(2, repository.save_calls)
        self.assertEqual({"assign_task": 1}, repository.require("s1").metrics["action_counts"])

    def test_persistent_conflict_raises_and_publishes_nothing(self) -> None:
        bus = EventBus()
        repository = _FlakyRepository(failures=10)
        engine = _engine(repository, event_bus=bus, write_retries=2)
        _create(engine)
        seen: list[object] = []
        bus.subscribe(ActionRecorded, seen.append)

        with self.assertRaises(SessionWriteConflictError):
            engine.record_action("s1", SimulationAction(type="assign_task", performed_at=_T0))

        self.assertEqual(3, repository.save_calls)
        self.assertEqual([], seen)
        self.assertEqual({}, repository.require("s1").metrics)

    def test_unknown_session_raises_not_found(self) -> None:
        engine = _engine()
        with self.assertRaises(SessionNotFoundError):
            engine.record_action("ghost", SimulationAction(type="assign_task", performed_at=_T0))


class BuffAndRiskOperationTests(unittest.TestCase):
    def test_add_buff_and_throughput(self) -> None:
        engine = _engine()
        _create(engine)

        engine.add_buff("s1", "focus", BuffSpec(effect=EFFECT_THROUGHPUT, value=0.05, expires_day=3))

        self.assertEqual(11, engine.modify_task_throughput("s1", 10))

    def test_mitigate_through_engine(self) -> None:
        engine = _engine()
        _create(engine, current_day=1, metrics={"risk_deck": {"active": [_overdue_card("c1")], "history": []}})

        self.assertTrue(engine.mitigate("s1", "c1"))
        self.assertFalse(engine.mitigate("s1", "c1"))
        self.assertEqual(1, engine.repository.require("s1").metrics["risk_stats"]["neutralized"])

    def test_three_mitigations_unlock_risk_mitigator(self) -> None:
        engine = _engine()
        cards = [_overdue_card(f"c{index}") for index in range(3)]
        _create(engine, metrics={"risk_deck": {"active": cards, "history": []}})
        for index in range(3):
            engine.mitigate("s1", f"c{index}")

        earned, _ = engine.evaluate_progress("s1")

        self.assertIn("risk_mitigator", earned)


class PerkUnlockTests(unittest.TestCase):
    def test_unlocking_levels_grants_perks_once(self) -> None:
        engine = _engine()
        _create(engine, current_day=2)

        outcome = engine.unlock_perks("s1", 1, 5)
        repeat = engine.unlock_perks("s1", 1, 5)

        self.assertEqual(
            ["focus_sprint", "morale_reserve", "risk_radar", "delivery_cadence", "steady_hand"],
            outcome.unlocked_perks,
        )
        self.assertEqual(["focus_sprint", "risk_radar", "delivery_cadence"], outcome.buffs_added)
        self.assertEqual({"morale_cap": 10.0}, outcome.flat_bonuses)
        self.assertEqual([], repeat.unlocked_perks)
        stored = engine.repository.require("s1")
        buffs = {row["key"]: row for row in stored.metrics["buffs"]}
        self.assertEqual(5, buffs["focus_sprint"]["expires_day"])
        self.assertEqual(7, buffs["risk_radar"]["expires_day"])
        self.assertEqual(10.0, stored.metrics["perk_bonuses"]["morale_cap"])
        self.assertEqual({"level": 5, "day": 2}, stored.metrics["perk_unlocks"]["steady_hand"])

    def test_single_level_step(self) -> None:
        engine = _engine()
        _create(engine)

        outcome = engine.unlock_perks("s1", 2, 3)

        self.assertEqual(["morale_reserve"], outcome.unlocked_perks)


class CoachingThroughEngineTests(unittest.TestCase):
    def test_fallback_tips_for_low_morale_and_spent_budget(self) -> None:
        engine = _engine()
        _create(engine, budget_total=1000, budget_used=900, metrics={"morale": 50})

        self.assertEqual([MORALE_TIP, BUDGET_TIP], engine.generate_tips("s1"))


if __name__ == "__main__":
    unittest.main()
