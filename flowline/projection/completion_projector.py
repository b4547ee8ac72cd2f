"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    COMPLETION PROJECTOR — Estimated Completion Date (ECD)
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Predicts when an order will leave the line from its step states, the
standard step durations and the line's working calendar.

ECD = walk(start, Σ remaining_minutes) skipping non-working days

Start time:
    - QN/DIFA anywhere in the order           → now (flow disrupted)
    - no completed step                        → now (not started)
    - last completion older than stall_hours   → now (stalled)
    - otherwise                                → last completion timestamp

Remaining work:
    - steps before the current step            → 0 (done)
    - current step WIP                         → wip_fraction × duration
    - current step in any other open state     → duration
    - later steps                              → duration, N/A → 0

Missing durations fall back to the default step duration (24h).
═══════════════════════════════════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from ..engine_settings import EngineSettings, EngineSettingsConfig
from ..models_common import LineConfig, Order
from ..status.status_model import OrderFlow, StepStateKind, build_flow
from .work_calendar import advance_working_minutes

logger = logging.getLogger(__name__)


class StartReason(str, Enum):
    """Why the projection starts where it does."""
    QUALITY_EXCEPTION = "quality_exception"
    NOT_STARTED = "not_started"
    STALLED = "stalled"
    IN_FLOW = "in_flow"


@dataclass
class CompletionEstimate:
    """Projection result with its breakdown."""
    order_id: str
    ecd: str = ""
    start_time: Optional[datetime] = None
    start_reason: Optional[StartReason] = None
    remaining_minutes: float = 0.0
    projected_at: Optional[datetime] = None
    safety_bound_tripped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "ecd": self.ecd,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "start_reason": self.start_reason.value if self.start_reason else None,
            "remaining_hours": round(self.remaining_minutes / 60.0, 2),
            "projected_at": self.projected_at.isoformat() if self.projected_at else None,
            "safety_bound_tripped": self.safety_bound_tripped,
        }


def _select_start(flow: OrderFlow, now: datetime, settings: EngineSettingsConfig):
    if flow.has_quality_exception:
        return now, StartReason.QUALITY_EXCEPTION

    last_completed = flow.last_completed_at
    if last_completed is None:
        return now, StartReason.NOT_STARTED

    hours_since = (now - last_completed).total_seconds() / 3600.0
    if hours_since > settings.stall_hours:
        return now, StartReason.STALLED
    return last_completed, StartReason.IN_FLOW


def remaining_minutes(flow: OrderFlow, settings: Optional[EngineSettingsConfig] = None) -> float:
    """Standard minutes still needed from the current step to the end of the line."""
    settings = settings or EngineSettings.get_config()
    if flow.current_index is None:
        return 0.0

    total = 0.0
    default_minutes = settings.default_step_minutes
    for idx in range(flow.current_index, len(flow.steps)):
        step, state = flow.steps[idx], flow.states[idx]
        if state.kind == StepStateKind.NOT_APPLICABLE:
            continue
        duration = step.duration_minutes(default_minutes)
        if idx == flow.current_index and state.kind == StepStateKind.IN_PROGRESS:
            total += settings.wip_remaining_fraction * duration
        else:
            total += duration
    return total


def estimate(
    order: Order,
    line_config: LineConfig,
    now: Optional[datetime] = None,
    flow: Optional[OrderFlow] = None,
) -> CompletionEstimate:
    """Project the completion date of one order, with breakdown."""
    settings = EngineSettings.get_config()
    now = now or datetime.now()
    flow = flow or build_flow(order, line_config, now)
    result = CompletionEstimate(order_id=order.id)

    if flow.is_fully_complete:
        return result

    result.start_time, result.start_reason = _select_start(flow, now, settings)
    result.remaining_minutes = remaining_minutes(flow, settings)
    if result.remaining_minutes <= 0:
        return result

    walk = advance_working_minutes(
        result.start_time,
        result.remaining_minutes,
        line_config.shift,
        day_start_hour=settings.day_start_hour,
        max_iterations=settings.calendar_safety_iterations,
    )
    if walk.safety_bound_tripped:
        logger.warning(f"Order {order.label}: ECD is a partial projection (safety bound reached)")

    result.projected_at = walk.end
    result.safety_bound_tripped = walk.safety_bound_tripped
    result.ecd = walk.end.date().isoformat()
    return result


def project(order: Order, line_config: LineConfig, now: Optional[datetime] = None) -> str:
    """
    Estimated completion date as 'YYYY-MM-DD', or '' when unknown/not applicable.

    Never raises.
    """
    try:
        return estimate(order, line_config, now).ecd
    except Exception:
        logger.exception(f"ECD projection failed for order {getattr(order, 'id', '?')}")
        return ""


def project_many(
    orders: Iterable[Order],
    line_config: LineConfig,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """ECD for each order, keyed by order id."""
    now = now or datetime.now()
    return {order.id: project(order, line_config, now) for order in orders}
