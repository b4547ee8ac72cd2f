"""
Common fixtures for the flow engine tests.
"""
import pytest
from datetime import datetime, timedelta

from flowline.engine_settings import EngineSettings
from flowline.models_common import (
    LineConfig,
    Order,
    ResourceType,
    ScoringWeights,
    ShiftConfig,
    StepDefinition,
)


# Wednesday
NOW = datetime(2026, 1, 14, 10, 0)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from default settings."""
    for var in list(EngineSettings.ENV_MAPPING) + list(EngineSettings.BOOL_MAPPING):
        monkeypatch.delenv(var, raising=False)
    EngineSettings.reset()
    yield
    EngineSettings.reset()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def three_step_line():
    """A, B, C at 8h each, weekdays only."""
    return LineConfig(
        id="line-8h",
        name="Eight hour steps",
        steps=[
            StepDefinition(name="A", position=1, standard_duration_minutes=480),
            StepDefinition(name="B", position=2, standard_duration_minutes=480),
            StepDefinition(name="C", position=3, standard_duration_minutes=480),
        ],
        shift=ShiftConfig(standard_hours=8, overtime_hours=0),
    )


@pytest.fixture
def stator_line():
    """
    Winding (1h, 1 operator) → Assembly (2h, 1 operator, 100 pcs target)
    → Curing (30 min, oven, unlimited) → Test (1h, 2 operators).
    """
    return LineConfig(
        id="stator",
        name="Stator line",
        steps=[
            StepDefinition(name="Winding", position=1, standard_duration_minutes=60, staff_count=1),
            StepDefinition(
                name="Assembly", position=2, standard_duration_minutes=120,
                target_quantity=100, unit="pcs", staff_count=1,
            ),
            StepDefinition(
                name="Curing", position=3, standard_duration_minutes=30,
                resource_type=ResourceType.MACHINE_UNLIMITED,
            ),
            StepDefinition(name="Test", position=4, standard_duration_minutes=60, staff_count=2),
        ],
        shift=ShiftConfig(standard_hours=8, overtime_hours=0),
        weights=ScoringWeights(priority=50, due_date=30, aging=20),
        auto_flow_enabled=True,
    )


@pytest.fixture
def make_order():
    """Factory for orders created a day before NOW."""
    def _make(order_id: str, step_values=None, **kwargs) -> Order:
        kwargs.setdefault("created_at", NOW - timedelta(days=1))
        return Order(id=order_id, wo_id=f"WO-{order_id}", step_values=step_values or {}, **kwargs)
    return _make
