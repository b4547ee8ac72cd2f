"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPACITY LEDGER — Per-Run Step Capacity Accounting
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Available vs. consumed minutes per step for one planning run.

Capacity per step:
    machine_unlimited   → unlimited (never binds)
    no std. duration    → unlimited (nothing to charge against staff time)
    staff_limited       → staff × min(H, h_std + h_ot) × 60
    advisor override    → capacity_minutes supplied by the advisor

where H is the planning horizon in hours. With span_multi_day_horizons the
effective hours for H > 24 become ceil(H / 24) × (h_std + h_ot).

Invariant: used_minutes ≤ total_minutes for every limited step. A ledger
belongs to one run; concurrent runs each build their own.
═══════════════════════════════════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional

from ..engine_settings import EngineSettings
from ..models_common import CapacityOverride, LineConfig, StepDefinition

logger = logging.getLogger(__name__)


class ConstraintLevel(str, Enum):
    """How a step's capacity was determined."""
    UNCONSTRAINED = "unconstrained"
    STAFF_LIMITED = "staff_limited"
    OVERRIDE = "override"


@dataclass
class StepCapacity:
    """Capacity account of one step."""
    step_name: str
    total_minutes: float = 0.0
    used_minutes: float = 0.0
    count: int = 0
    is_unlimited: bool = False
    constraint_level: ConstraintLevel = ConstraintLevel.STAFF_LIMITED
    override_reason: Optional[str] = None

    @property
    def remaining_minutes(self) -> float:
        if self.is_unlimited:
            return math.inf
        return max(0.0, self.total_minutes - self.used_minutes)

    @property
    def utilization(self) -> float:
        if self.is_unlimited or self.total_minutes <= 0:
            return 0.0
        return self.used_minutes / self.total_minutes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "used_minutes": round(self.used_minutes, 2),
            "total_minutes": None if self.is_unlimited else round(self.total_minutes, 2),
            "count": self.count,
            "is_unlimited": self.is_unlimited,
            "constraint_level": self.constraint_level.value,
            "override_reason": self.override_reason,
            "utilization_pct": round(self.utilization * 100, 1),
        }


@dataclass
class CapacityLedger:
    """Step capacities of a single planning run."""
    steps: Dict[str, StepCapacity] = field(default_factory=dict)
    planning_horizon_hours: float = 8.0

    def __contains__(self, step_name: str) -> bool:
        return step_name in self.steps

    def __iter__(self) -> Iterator[StepCapacity]:
        return iter(self.steps.values())

    def __getitem__(self, step_name: str) -> StepCapacity:
        return self.steps[step_name]

    def remaining(self, step_name: str) -> float:
        capacity = self.steps.get(step_name)
        return capacity.remaining_minutes if capacity else 0.0

    def can_allocate(self, step_name: str, minutes: float) -> bool:
        capacity = self.steps.get(step_name)
        if capacity is None:
            return False
        if capacity.is_unlimited:
            return True
        return capacity.used_minutes + minutes <= capacity.total_minutes

    def allocate(self, step_name: str, minutes: float) -> bool:
        """
        Consume `minutes` of a step's capacity.

        Returns False, leaving the ledger untouched, when the step is unknown
        or the allocation would exceed its total.
        """
        if not self.can_allocate(step_name, minutes):
            return False
        capacity = self.steps[step_name]
        capacity.count += 1
        if not capacity.is_unlimited:
            capacity.used_minutes += minutes
        return True

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: cap.to_dict() for name, cap in self.steps.items()}


def _staff_capacity_minutes(
    step: StepDefinition,
    planning_horizon_hours: float,
    shift_hours: float,
    span_multi_day: bool,
) -> float:
    if span_multi_day and planning_horizon_hours > 24:
        effective_hours = math.ceil(planning_horizon_hours / 24) * shift_hours
    else:
        effective_hours = min(planning_horizon_hours, shift_hours)
    return step.staff_count * max(0.0, effective_hours) * 60.0


def build_ledger(
    line_config: LineConfig,
    planning_horizon_hours: float,
    standard_hours: Optional[float] = None,
    overtime_hours: Optional[float] = None,
    overrides: Optional[Mapping[str, CapacityOverride]] = None,
) -> CapacityLedger:
    """
    Compute the capacity of every step for a planning horizon.

    Standard/overtime hours default to the line's shift configuration.
    """
    settings = EngineSettings.get_config()
    standard = line_config.shift.standard_hours if standard_hours is None else standard_hours
    overtime = line_config.shift.overtime_hours if overtime_hours is None else overtime_hours
    shift_hours = max(0.0, standard) + max(0.0, overtime)
    overrides = overrides or {}

    ledger = CapacityLedger(planning_horizon_hours=planning_horizon_hours)

    for step in line_config.steps:
        if step.is_unlimited or step.standard_duration_minutes is None:
            if step.name in overrides:
                logger.warning(f"Capacity override ignored for unlimited step '{step.name}'")
            ledger.steps[step.name] = StepCapacity(
                step_name=step.name,
                is_unlimited=True,
                constraint_level=ConstraintLevel.UNCONSTRAINED,
            )
            continue

        override = overrides.get(step.name)
        if override is not None:
            ledger.steps[step.name] = StepCapacity(
                step_name=step.name,
                total_minutes=override.capacity_minutes,
                constraint_level=ConstraintLevel.OVERRIDE,
                override_reason=override.reason,
            )
            continue

        ledger.steps[step.name] = StepCapacity(
            step_name=step.name,
            total_minutes=_staff_capacity_minutes(
                step, planning_horizon_hours, shift_hours, settings.span_multi_day_horizons
            ),
        )

    unknown = set(overrides) - set(ledger.steps)
    if unknown:
        logger.warning(f"Capacity overrides for unknown steps ignored: {sorted(unknown)}")

    return ledger
