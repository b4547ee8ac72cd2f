"""
Tests for per-run step capacity accounting.
"""
import math

from flowline.engine_settings import EngineSettings
from flowline.models_common import CapacityOverride, LineConfig, StepDefinition
from flowline.scheduling import ConstraintLevel, build_ledger


class TestBuildLedger:

    def test_staff_capacity(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=8)
        assert ledger["Winding"].total_minutes == 480
        assert ledger["Test"].total_minutes == 960
        assert ledger["Winding"].constraint_level == ConstraintLevel.STAFF_LIMITED

    def test_horizon_shorter_than_shift(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=4)
        assert ledger["Winding"].total_minutes == 240

    def test_horizon_capped_at_shift(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=48, overtime_hours=2)
        assert ledger["Winding"].total_minutes == 600

    def test_multi_day_horizon_option(self, stator_line):
        EngineSettings.override(span_multi_day_horizons=True)
        ledger = build_ledger(stator_line, planning_horizon_hours=48)
        assert ledger["Winding"].total_minutes == 2 * 8 * 60

    def test_unlimited_step(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=8)
        curing = ledger["Curing"]
        assert curing.is_unlimited
        assert curing.remaining_minutes == math.inf
        assert curing.constraint_level == ConstraintLevel.UNCONSTRAINED
        assert curing.to_dict()["total_minutes"] is None

    def test_zero_staff_has_no_capacity(self, stator_line):
        line = stator_line.model_copy(deep=True)
        line.steps[0].staff_count = 0
        ledger = build_ledger(line, planning_horizon_hours=8)
        assert ledger["Winding"].total_minutes == 0
        assert not ledger.can_allocate("Winding", 1)

    def test_override_replaces_staff_capacity(self, stator_line):
        overrides = {
            "Winding": CapacityOverride(capacity_minutes=120, reason="operator on leave"),
            "Curing": CapacityOverride(capacity_minutes=10),
            "Paint": CapacityOverride(capacity_minutes=10),
        }
        ledger = build_ledger(stator_line, 8, overrides=overrides)
        assert ledger["Winding"].total_minutes == 120
        assert ledger["Winding"].constraint_level == ConstraintLevel.OVERRIDE
        assert ledger["Winding"].override_reason == "operator on leave"
        # unlimited steps stay unlimited, unknown steps are ignored
        assert ledger["Curing"].is_unlimited
        assert "Paint" not in ledger

    def test_step_without_duration_is_unconstrained(self):
        line = LineConfig(steps=[
            StepDefinition(name="Deburr", position=1),
            StepDefinition(name="Pack", position=2, standard_duration_minutes=30),
        ])
        ledger = build_ledger(line, planning_horizon_hours=8)
        assert ledger["Deburr"].is_unlimited
        assert ledger["Deburr"].constraint_level == ConstraintLevel.UNCONSTRAINED
        assert not ledger["Pack"].is_unlimited


class TestAllocation:

    def test_allocate_until_full(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=2)
        assert ledger.allocate("Winding", 60)
        assert ledger.allocate("Winding", 60)
        assert not ledger.allocate("Winding", 1)
        winding = ledger["Winding"]
        assert winding.used_minutes == 120
        assert winding.count == 2
        assert winding.utilization == 1.0

    def test_rejected_allocation_leaves_ledger_untouched(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=1)
        assert not ledger.allocate("Assembly", 120)
        assert ledger["Assembly"].used_minutes == 0
        assert ledger["Assembly"].count == 0

    def test_unlimited_step_never_binds(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=1)
        for _ in range(50):
            assert ledger.allocate("Curing", 30)
        assert ledger["Curing"].count == 50
        assert ledger["Curing"].used_minutes == 0

    def test_unknown_step(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=8)
        assert not ledger.allocate("Paint", 1)
        assert ledger.remaining("Paint") == 0.0

    def test_to_dict(self, stator_line):
        ledger = build_ledger(stator_line, planning_horizon_hours=8)
        ledger.allocate("Test", 240)
        data = ledger.to_dict()
        assert set(data) == {"Winding", "Assembly", "Curing", "Test"}
        assert data["Test"]["used_minutes"] == 240
        assert data["Test"]["utilization_pct"] == 25.0
