"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    SCHEDULING RECOMMENDER — Capacity-Constrained Weighted Dispatch
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Ranks (order, current step) candidates and fills the capacity ledger greedily.

Algorithm:
    1. Build the flow view of every order; keep those whose current step is
       EMPTY or WIP (Hold/QN/DIFA → blocked, material not ready → skipped).
    2. Score each candidate (see scoring.py).
    3. Sort: score ↓, due date ↑ (missing last), created_at ↑, order id.
    4. For each candidate: allocate the current step's standard duration on
       the ledger. Accepted → recommendation (+ predicted flow preview when
       auto-flow is enabled). Rejected → skipped_due_to_capacity.

The predicted flow is a zero-queue preview of the steps the order would
chain into within the planning horizon; it never consumes capacity.
═══════════════════════════════════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from ..engine_settings import EngineSettings
from ..models_common import CapacityOverride, LineConfig, Order, OrderPriority
from ..projection.work_calendar import daily_capacity_from_monthly_goal
from ..status.status_model import OrderFlow, StepStateKind, build_flow
from .capacity_ledger import CapacityLedger, build_ledger
from .scoring import OrderScoreDetails, score_order

logger = logging.getLogger(__name__)

ELIGIBLE_STATES = (StepStateKind.EMPTY, StepStateKind.IN_PROGRESS)
CHAINABLE_STATES = (StepStateKind.EMPTY, StepStateKind.PLANNED)
HIGH_PRIORITIES = (OrderPriority.MEDIUM, OrderPriority.HIGH)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class PredictedFlowStep:
    """A step the order is expected to reach within the horizon."""
    step_name: str
    estimated_start_hour: float
    estimated_end_hour: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_name": self.step_name,
            "estimated_start_hour": self.estimated_start_hour,
            "estimated_end_hour": self.estimated_end_hour,
        }


@dataclass
class SchedulingRecommendation:
    """Recommended (order, step) pair."""
    order_id: str
    wo_id: str
    step_name: str
    score: float
    predicted_flow: List[PredictedFlowStep] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "wo_id": self.wo_id,
            "step_name": self.step_name,
            "score": round(self.score, 2),
            "predicted_flow": [p.to_dict() for p in self.predicted_flow],
        }


@dataclass
class SchedulingSummary:
    """Counters of a planning run."""
    total_planned: int = 0
    high_priority_planned: int = 0
    skipped_due_to_capacity: int = 0
    skipped_due_to_material: int = 0
    skipped_blocked: int = 0
    unconstrained_steps_planned: int = 0
    daily_capacity_from_goal: Optional[int] = None
    skipped_due_to_target: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_planned": self.total_planned,
            "high_priority_planned": self.high_priority_planned,
            "skipped_due_to_capacity": self.skipped_due_to_capacity,
            "skipped_due_to_material": self.skipped_due_to_material,
            "skipped_blocked": self.skipped_blocked,
            "unconstrained_steps_planned": self.unconstrained_steps_planned,
            "daily_capacity_from_goal": self.daily_capacity_from_goal,
            "skipped_due_to_target": self.skipped_due_to_target,
        }


@dataclass
class SchedulingResult:
    """Output of a planning run."""
    recommendations: List[SchedulingRecommendation] = field(default_factory=list)
    summary: SchedulingSummary = field(default_factory=SchedulingSummary)
    ledger: CapacityLedger = field(default_factory=CapacityLedger)
    scores: List[OrderScoreDetails] = field(default_factory=list)

    @property
    def step_utilization(self) -> Dict[str, Dict[str, Any]]:
        return self.ledger.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "summary": self.summary.to_dict(),
            "step_utilization": self.step_utilization,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per recommendation, in planning order."""
        records = [
            {
                "rank": rank,
                "order_id": r.order_id,
                "wo_id": r.wo_id,
                "step_name": r.step_name,
                "score": r.score,
                "flow_steps": len(r.predicted_flow),
                "flow_end_hour": r.predicted_flow[-1].estimated_end_hour if r.predicted_flow else 0.0,
            }
            for rank, r in enumerate(self.recommendations, start=1)
        ]
        return pd.DataFrame(
            records,
            columns=["rank", "order_id", "wo_id", "step_name", "score", "flow_steps", "flow_end_hour"],
        )


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def _sort_key(scored: OrderScoreDetails, order: Order, precision: int):
    due = order.due_date.timestamp() if order.due_date else math.inf
    return (-round(scored.combined_score, precision), due, order.created_at.timestamp(), order.id)


def predict_flow(
    flow: OrderFlow,
    planning_horizon_hours: float,
    default_minutes: float,
    look_ahead: bool = True,
    wip_fraction: float = 1.0,
) -> List[PredictedFlowStep]:
    """
    Zero-queue preview starting at the current step.

    Later steps chain while they are EMPTY or PLANNED and start inside the
    horizon; closed or occupied steps are passed over, a Hold/QN stops the
    chain. A WIP current step only counts its remaining `wip_fraction`.
    """
    if flow.current_index is None:
        return []

    horizon_minutes = planning_horizon_hours * 60.0
    predicted: List[PredictedFlowStep] = []
    elapsed = 0.0

    for idx in range(flow.current_index, len(flow.steps)):
        step, state = flow.steps[idx], flow.states[idx]
        if idx > flow.current_index:
            if not look_ahead or state.is_blocking:
                break
            if state.kind not in CHAINABLE_STATES:
                continue
        if elapsed >= horizon_minutes and predicted:
            break

        duration = step.duration_minutes(default_minutes)
        if idx == flow.current_index and state.kind == StepStateKind.IN_PROGRESS:
            duration *= wip_fraction
        predicted.append(PredictedFlowStep(
            step_name=step.name,
            estimated_start_hour=round(elapsed / 60.0, 1),
            estimated_end_hour=round(min(elapsed + duration, horizon_minutes) / 60.0, 1),
        ))
        elapsed += duration

    return predicted


# ═══════════════════════════════════════════════════════════════════════════════
# RECOMMENDER
# ═══════════════════════════════════════════════════════════════════════════════

def recommend(
    orders: Sequence[Order],
    line_config: LineConfig,
    standard_hours: Optional[float] = None,
    overtime_hours: Optional[float] = None,
    planning_horizon_hours: float = 8.0,
    overrides: Optional[Mapping[str, CapacityOverride]] = None,
    ledger: Optional[CapacityLedger] = None,
    now: Optional[datetime] = None,
) -> SchedulingResult:
    """
    Recommend which orders to work next under the line's capacity.

    Args:
        orders: Order snapshots of the line
        line_config: Line configuration
        standard_hours: Shift hours (default: line shift)
        overtime_hours: Overtime hours (default: line shift)
        planning_horizon_hours: Planning window
        overrides: Advisor capacity per step
        ledger: Caller-built ledger for this run (built here when omitted)
        now: Reference time

    Returns:
        SchedulingResult with recommendations, summary and step utilization
    """
    settings = EngineSettings.get_config()
    now = now or datetime.now()
    if ledger is None:
        ledger = build_ledger(line_config, planning_horizon_hours, standard_hours, overtime_hours, overrides)

    summary = SchedulingSummary(
        daily_capacity_from_goal=daily_capacity_from_monthly_goal(
            line_config.monthly_target, line_config.shift, now
        ),
    )
    result = SchedulingResult(summary=summary, ledger=ledger)

    # 1. Eligible candidates
    candidates = []
    for order in orders:
        flow = build_flow(order, line_config, now)
        state = flow.current_state
        if flow.is_fully_complete or state is None:
            continue
        if state.is_blocking:
            summary.skipped_blocked += 1
            continue
        if state.kind not in ELIGIBLE_STATES:
            continue
        if not order.is_material_ready:
            summary.skipped_due_to_material += 1
            continue

        scored = score_order(order, line_config, now, flow)
        result.scores.append(scored)
        candidates.append((scored, order, flow))

    # 2. Rank
    candidates.sort(key=lambda c: _sort_key(c[0], c[1], settings.score_precision))

    # 3. Greedy allocation
    default_minutes = settings.default_step_minutes
    for scored, order, flow in candidates:
        if len(result.recommendations) >= settings.max_recommendations:
            logger.info(f"Recommendation cap reached ({settings.max_recommendations})")
            break

        step = flow.current_step
        if not ledger.allocate(step.name, step.duration_minutes(default_minutes)):
            summary.skipped_due_to_capacity += 1
            continue

        if ledger[step.name].is_unlimited:
            summary.unconstrained_steps_planned += 1

        result.recommendations.append(SchedulingRecommendation(
            order_id=order.id,
            wo_id=order.label,
            step_name=step.name,
            score=scored.combined_score,
            predicted_flow=predict_flow(
                flow,
                planning_horizon_hours,
                default_minutes,
                look_ahead=line_config.auto_flow_enabled,
                wip_fraction=settings.wip_remaining_fraction,
            ),
        ))
        if order.priority in HIGH_PRIORITIES:
            summary.high_priority_planned += 1

    # 4. Summary
    summary.total_planned = len(result.recommendations)
    shift_hours = (
        (line_config.shift.standard_hours if standard_hours is None else standard_hours)
        + (line_config.shift.overtime_hours if overtime_hours is None else overtime_hours)
    )
    if summary.daily_capacity_from_goal and shift_hours > 0:
        planning_days = math.ceil(planning_horizon_hours / shift_hours)
        summary.skipped_due_to_target = max(
            0, summary.total_planned - summary.daily_capacity_from_goal * planning_days
        )

    logger.info(
        f"Line {line_config.id}: planned {summary.total_planned} of {len(candidates)} candidates "
        f"({summary.skipped_due_to_capacity} capacity, {summary.skipped_due_to_material} material, "
        f"{summary.skipped_blocked} blocked)"
    )
    return result
