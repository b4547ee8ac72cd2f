"""
Tests for order scoring and the capacity-constrained recommender.
"""
import pytest
from datetime import timedelta

from flowline.engine_settings import EngineSettings
from flowline.models_common import (
    CapacityOverride,
    LineConfig,
    OrderPriority,
    ScoringWeights,
    StepDefinition,
)
from flowline.scheduling import build_ledger, recommend, score_order
from flowline.scheduling.scoring import aging_score, priority_score, urgency_score
from flowline.status import build_flow


# ═══════════════════════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════════════════════

class TestScoring:

    @pytest.mark.parametrize("priority,expected", [
        (OrderPriority.NONE, 0.0),
        (OrderPriority.LOW, 100 / 3),
        (OrderPriority.HIGH, 100.0),
    ])
    def test_priority_score(self, priority, expected):
        assert priority_score(priority) == pytest.approx(expected)

    @pytest.mark.parametrize("offset,expected", [
        (timedelta(days=2), 80.0),
        (timedelta(hours=12), 90.0),
        (timedelta(days=15), 0.0),
        (timedelta(0), 100.0),
        (timedelta(days=-3), 103.0),
    ])
    def test_urgency_score(self, now, offset, expected):
        assert urgency_score(now + offset, now) == expected

    def test_no_due_date_is_not_urgent(self, now):
        assert urgency_score(None, now) == 0.0

    def test_aging_capped(self, now):
        assert aging_score(now - timedelta(days=3), now) == 15.0
        assert aging_score(now - timedelta(days=60), now) == 100.0

    def test_combined_score(self, stator_line, make_order, now):
        order = make_order("1", priority="!!!", due_date=now + timedelta(days=2))
        scored = score_order(order, stator_line, now)
        # 50·100/100 + 30·80/100 + 20·5/100
        assert scored.combined_score == pytest.approx(50 + 24 + 1)
        assert scored.next_step == "Winding"

    def test_flow_bonus_only_past_first_step(self, stator_line, make_order, now):
        line = stator_line.model_copy(update={"weights": ScoringWeights(flow=10)})
        fresh = make_order("1")
        moving = make_order("2", {"Winding": "2026-01-14 08:00"})
        assert score_order(fresh, line, now).flow_score == 0.0
        assert score_order(moving, line, now).flow_score == pytest.approx(10 * 0.75)


# ═══════════════════════════════════════════════════════════════════════════════
# RECOMMENDER
# ═══════════════════════════════════════════════════════════════════════════════

class TestRecommend:
    """Greedy dispatch under the ledger."""

    def test_capacity_bounds_recommendations(self, stator_line, make_order, now):
        orders = [make_order(str(i)) for i in range(10)]
        result = recommend(orders, stator_line, planning_horizon_hours=8, now=now)
        assert result.summary.total_planned == 8
        assert result.summary.skipped_due_to_capacity == 2
        assert result.ledger["Winding"].used_minutes == 480
        assert all(r.step_name == "Winding" for r in result.recommendations)

    def test_higher_priority_wins_capacity(self, stator_line, make_order, now):
        orders = [make_order("low"), make_order("high", priority="!!!")]
        overrides = {"Winding": CapacityOverride(capacity_minutes=60)}
        result = recommend(orders, stator_line, overrides=overrides, now=now)
        assert [r.order_id for r in result.recommendations] == ["high"]
        assert result.summary.high_priority_planned == 1
        assert result.summary.skipped_due_to_capacity == 1

    def test_tie_broken_by_due_date_then_id(self, stator_line, make_order, now):
        orders = [
            make_order("b-late", due_date=now + timedelta(days=30)),
            make_order("z-early", due_date=now + timedelta(days=20)),
            make_order("a-undated"),
            make_order("a-late", due_date=now + timedelta(days=30)),
        ]
        result = recommend(orders, stator_line, now=now)
        assert [r.order_id for r in result.recommendations] == [
            "z-early", "a-late", "b-late", "a-undated",
        ]

    def test_older_order_first_on_equal_due_date(self, stator_line, make_order, now):
        due = now + timedelta(days=30)
        orders = [
            make_order("newer", due_date=due, created_at=now - timedelta(days=40)),
            make_order("older", due_date=due, created_at=now - timedelta(days=50)),
        ]
        result = recommend(orders, stator_line, now=now)
        assert [r.order_id for r in result.recommendations] == ["older", "newer"]

    def test_unlimited_step_never_skipped(self, stator_line, make_order, now):
        done = {"Winding": "2026-01-14 08:00", "Assembly": "2026-01-14 09:00"}
        orders = [make_order(str(i), done) for i in range(50)]
        result = recommend(orders, stator_line, planning_horizon_hours=1, now=now)
        assert result.summary.total_planned == 50
        assert result.summary.skipped_due_to_capacity == 0
        assert result.summary.unconstrained_steps_planned == 50
        assert result.step_utilization["Curing"]["count"] == 50

    def test_steps_without_duration_are_not_capacity_bound(self, make_order, now):
        line = LineConfig(steps=[
            StepDefinition(name="A", position=1),
            StepDefinition(name="B", position=2),
        ])
        orders = [make_order(str(i)) for i in range(3)]
        result = recommend(orders, line, planning_horizon_hours=8, now=now)
        assert result.summary.total_planned == 3
        assert result.summary.skipped_due_to_capacity == 0
        assert result.summary.unconstrained_steps_planned == 3
        assert result.ledger["A"].is_unlimited

    def test_no_orders(self, stator_line, now):
        result = recommend([], stator_line, now=now)
        assert result.recommendations == []
        assert result.summary.total_planned == 0
        assert result.summary.skipped_due_to_capacity == 0
        assert all(cap.used_minutes == 0 for cap in result.ledger)

    def test_zero_staff_skips_everything(self, stator_line, make_order, now):
        line = stator_line.model_copy(deep=True)
        line.steps[0].staff_count = 0
        result = recommend([make_order("1"), make_order("2")], line, now=now)
        assert result.summary.total_planned == 0
        assert result.summary.skipped_due_to_capacity == 2

    def test_ineligible_orders(self, stator_line, make_order, now):
        orders = [
            make_order("hold", {"Winding": "Hold"}),
            make_order("qn", {"Winding": "QN"}),
            make_order("planned", {"Winding": "P"}),
            make_order("manual", {"Winding": "see supervisor"}),
            make_order("no-material", material_status="Missing"),
            make_order("done", {"Test": "2026-01-13 12:00"}),
            make_order("wip", {"Winding": "WIP"}),
        ]
        result = recommend(orders, stator_line, now=now)
        assert [r.order_id for r in result.recommendations] == ["wip"]
        assert result.summary.skipped_blocked == 2
        assert result.summary.skipped_due_to_material == 1

    def test_recommendation_cap(self, stator_line, make_order, now):
        EngineSettings.override(max_recommendations=3)
        orders = [make_order(str(i)) for i in range(6)]
        result = recommend(orders, stator_line, now=now)
        assert result.summary.total_planned == 3

    def test_caller_ledger_is_used(self, stator_line, make_order, now):
        ledger = build_ledger(stator_line, 8)
        ledger.allocate("Winding", 420)
        result = recommend([make_order("1"), make_order("2")], stator_line, ledger=ledger, now=now)
        assert result.summary.total_planned == 1
        assert result.ledger is ledger
        assert ledger["Winding"].used_minutes == 480

    def test_shift_hours_argument(self, stator_line, make_order, now):
        orders = [make_order(str(i)) for i in range(10)]
        result = recommend(orders, stator_line, standard_hours=4, planning_horizon_hours=8, now=now)
        assert result.summary.total_planned == 4

    def test_monthly_target_summary(self, stator_line, make_order, now):
        # 44 orders over 22 working days → 2 per day
        line = stator_line.model_copy(update={"monthly_target": 44})
        result = recommend([make_order(str(i)) for i in range(5)], line, now=now)
        assert result.summary.daily_capacity_from_goal == 2
        assert result.summary.skipped_due_to_target == 3


class TestPredictedFlow:

    def test_chain_within_horizon(self, stator_line, make_order, now):
        result = recommend([make_order("1")], stator_line, planning_horizon_hours=8, now=now)
        flow = result.recommendations[0].predicted_flow
        assert [(p.step_name, p.estimated_start_hour, p.estimated_end_hour) for p in flow] == [
            ("Winding", 0.0, 1.0),
            ("Assembly", 1.0, 3.0),
            ("Curing", 3.0, 3.5),
            ("Test", 3.5, 4.5),
        ]

    def test_chain_truncated_at_horizon(self, stator_line, make_order, now):
        result = recommend([make_order("1")], stator_line, planning_horizon_hours=2, now=now)
        flow = result.recommendations[0].predicted_flow
        assert [p.step_name for p in flow] == ["Winding", "Assembly"]
        assert flow[-1].estimated_end_hour == 2.0

    def test_chain_stops_at_hold(self, stator_line, make_order, now):
        order = make_order("1", {"Assembly": "Hold"})
        result = recommend([order], stator_line, now=now)
        assert [p.step_name for p in result.recommendations[0].predicted_flow] == ["Winding"]

    def test_chain_passes_over_closed_steps(self, stator_line, make_order, now):
        order = make_order("1", {"Assembly": "N/A", "Curing": "P"})
        result = recommend([order], stator_line, now=now)
        assert [p.step_name for p in result.recommendations[0].predicted_flow] == [
            "Winding", "Curing", "Test",
        ]

    def test_wip_current_step_counts_remaining_share(self, stator_line, make_order, now):
        result = recommend([make_order("1", {"Winding": "WIP"})], stator_line, now=now)
        flow = result.recommendations[0].predicted_flow
        assert [(p.step_name, p.estimated_start_hour, p.estimated_end_hour) for p in flow] == [
            ("Winding", 0.0, 0.5),
            ("Assembly", 0.5, 2.5),
            ("Curing", 2.5, 3.0),
            ("Test", 3.0, 4.0),
        ]

    def test_no_look_ahead_without_auto_flow(self, stator_line, make_order, now):
        line = stator_line.model_copy(update={"auto_flow_enabled": False})
        result = recommend([make_order("1")], line, now=now)
        assert [p.step_name for p in result.recommendations[0].predicted_flow] == ["Winding"]

    def test_preview_consumes_no_capacity(self, stator_line, make_order, now):
        result = recommend([make_order("1")], stator_line, now=now)
        assert result.ledger["Assembly"].used_minutes == 0
        assert result.ledger["Test"].count == 0


class TestResultExport:

    def test_to_dict(self, stator_line, make_order, now):
        data = recommend([make_order("1")], stator_line, now=now).to_dict()
        assert data["summary"]["total_planned"] == 1
        assert data["recommendations"][0]["wo_id"] == "WO-1"
        assert data["step_utilization"]["Winding"]["used_minutes"] == 60

    def test_to_dataframe(self, stator_line, make_order, now):
        result = recommend([make_order("1"), make_order("2", priority="!")], stator_line, now=now)
        df = result.to_dataframe()
        assert list(df["order_id"]) == ["2", "1"]
        assert list(df["rank"]) == [1, 2]
        assert df.loc[0, "flow_steps"] == 4

    def test_empty_dataframe_keeps_columns(self, stator_line, now):
        df = recommend([], stator_line, now=now).to_dataframe()
        assert df.empty
        assert "step_name" in df.columns

    def test_flow_view_matches_recommendation(self, stator_line, make_order, now):
        order = make_order("1", {"Winding": "2026-01-14 08:00"})
        result = recommend([order], stator_line, now=now)
        assert result.recommendations[0].step_name == build_flow(order, stator_line, now).current_step.name
