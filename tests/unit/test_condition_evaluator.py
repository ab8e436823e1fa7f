import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from pmsim.domain.models.condition import (
    ActionCountCondition,
    ComboActionsCondition,
    ConditionKind,
    FinalMetricCondition,
    MetricMinThresholdCondition,
    PerfectCapacityDayCondition,
    RiskNeutralizedCondition,
    SicknessResponseFastCondition,
    UnknownCondition,
    parse_condition,
)
from pmsim.domain.models.metrics import as_number, lookup_path
from pmsim.domain.services.condition_evaluator import evaluate, strategic_combo_count


class ParseConditionTests(unittest.TestCase):
    def test_known_type_builds_typed_condition(self) -> None:
        condition = parse_condition({"type": "action_count", "action": "assign_task", "count": "5"})
        self.assertEqual(ActionCountCondition(action="assign_task", count=5), condition)
        self.assertEqual(ConditionKind.ACTION_COUNT, condition.kind)

    def test_unknown_type_fails_closed(self) -> None:
        condition = parse_condition({"type": "moon_phase", "gte": 3})
        self.assertIsInstance(condition, UnknownCondition)
        self.assertEqual("moon_phase", condition.raw_type)
        self.assertFalse(evaluate(condition, {"moon": 9}, {}))

    def test_missing_required_field_fails_closed(self) -> None:
        self.assertIsInstance(parse_condition({"type": "action_count", "action": "assign_task"}), UnknownCondition)
        self.assertIsInstance(parse_condition({"type": "level_reached", "level": "high"}), UnknownCondition)
        self.assertIsInstance(parse_condition(None), UnknownCondition)
        self.assertFalse(evaluate(None, {}, {}))

    def test_final_metric_optional_bounds(self) -> None:
        condition = parse_condition({"type": "final_metric", "path": "evaluation.progress_pct", "gte": 100})
        self.assertEqual(FinalMetricCondition(path="evaluation.progress_pct", gte=100.0, lte=None), condition)


class MetricLookupTests(unittest.TestCase):
    def test_lookup_path_distinguishes_absent_from_zero(self) -> None:
        metrics = {"evaluation": {"raw": {"scope_growth_pct": 0}}}
        self.assertEqual(0, lookup_path(metrics, "evaluation.raw.scope_growth_pct"))
        self.assertIsNone(lookup_path(metrics, "evaluation.raw.missing"))
        self.assertIsNone(lookup_path(metrics, "evaluation.raw.scope_growth_pct.deeper"))

    def test_as_number_rejects_bool_and_non_finite(self) -> None:
        self.assertIsNone(as_number(True))
        self.assertIsNone(as_number(float("inf")))
        self.assertIsNone(as_number("n/a"))
        self.assertEqual(4.5, as_number("4.5"))


class EvaluateTests(unittest.TestCase):
    def test_action_count_threshold(self) -> None:
        condition = ActionCountCondition(action="assign_task", count=5)
        self.assertFalse(evaluate(condition, {}, {"assign_task": 4}))
        self.assertTrue(evaluate(condition, {}, {"assign_task": 5}))
        self.assertFalse(evaluate(condition, {}, None))

    def test_level_defaults_to_one(self) -> None:
        self.assertTrue(evaluate({"type": "level_reached", "level": 1}, {}, {}))
        self.assertFalse(evaluate({"type": "level_reached", "level": 5}, {"level": 4}, {}))
        self.assertTrue(evaluate({"type": "level_reached", "level": 5}, {"level": "5"}, {}))

    def test_ai_alignment_reads_nested_path(self) -> None:
        metrics = {"ai_relevancy": {"raw": {"overall": {"scope_alignment_pct": 86}}}}
        self.assertTrue(evaluate({"type": "ai_alignment", "gte": 85}, metrics, {}))
        self.assertFalse(evaluate({"type": "ai_alignment", "gte": 85}, {}, {}))

    def test_final_metric_missing_path_is_false(self) -> None:
        condition = FinalMetricCondition(path="evaluation.raw.scope_growth_pct", lte=5)
        self.assertFalse(evaluate(condition, {}, {}))
        self.assertTrue(evaluate(condition, {"evaluation": {"raw": {"scope_growth_pct": 0}}}, {}))
        self.assertFalse(evaluate(condition, {"evaluation": {"raw": {"scope_growth_pct": 7}}}, {}))

    def test_final_metric_checks_both_bounds(self) -> None:
        condition = FinalMetricCondition(path="score", gte=10, lte=20)
        self.assertTrue(evaluate(condition, {"score": 15}, {}))
        self.assertFalse(evaluate(condition, {"score": 9}, {}))
        self.assertFalse(evaluate(condition, {"score": 21}, {}))

    def test_morale_threshold_requires_samples(self) -> None:
        condition = MetricMinThresholdCondition(metric="morale", min=70)
        self.assertFalse(evaluate(condition, {}, {}))
        self.assertFalse(evaluate(condition, {"morale_history": []}, {}))
        self.assertTrue(evaluate(condition, {"morale_history": [{"v": 70, "day": 2}, {"v": 88, "day": 3}]}, {}))
        self.assertFalse(evaluate(condition, {"morale_history": [{"v": 75, "day": 2}, {"v": 69, "day": 3}]}, {}))

    def test_morale_threshold_ignores_other_metrics(self) -> None:
        condition = MetricMinThresholdCondition(metric="velocity", min=1)
        self.assertFalse(evaluate(condition, {"morale_history": [{"v": 99}]}, {}))

    def test_combo_counts_only_strategic_actions(self) -> None:
        metrics = {
            "combo_window": [
                {"timestamp": 1, "action_type": "schedule_workshop"},
                {"timestamp": 2, "action_type": "assign_task"},
                {"timestamp": 3, "action_type": "allocate_overtime"},
            ]
        }
        self.assertEqual(2, strategic_combo_count(metrics))
        self.assertFalse(evaluate(ComboActionsCondition(count=3), metrics, {}))
        metrics["combo_window"].append({"timestamp": 4, "action_type": "ack_budget_cut"})
        self.assertTrue(evaluate(ComboActionsCondition(count=3), metrics, {}))

    def test_risk_neutralized_reads_counter(self) -> None:
        condition = RiskNeutralizedCondition(count=3)
        self.assertFalse(evaluate(condition, {"risk_stats": {"neutralized": 2}}, {}))
        self.assertTrue(evaluate(condition, {"risk_stats": {"neutralized": 3}}, {}))

    def test_perfect_capacity_requires_literal_true(self) -> None:
        condition = PerfectCapacityDayCondition()
        self.assertTrue(evaluate(condition, {"last_day_capacity_perfect": True}, {}))
        self.assertFalse(evaluate(condition, {"last_day_capacity_perfect": 1}, {}))
        self.assertFalse(evaluate(condition, {}, {}))

    def test_sickness_response_never_unlocks(self) -> None:
        self.assertFalse(evaluate(SicknessResponseFastCondition(), {"anything": True}, {"check_in": 10}))


if __name__ == "__main__":
    unittest.main()
