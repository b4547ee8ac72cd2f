"""
════════════════════════════════════════════════════════════════════════════════════════════════════
Step-Completion Automation
════════════════════════════════════════════════════════════════════════════════════════════════════

Reacts to a closed work session:

1. Auto-complete by quantity: once the quantity logged on (order, step)
   across all closed sessions reaches the step's target quantity, the step
   is stamped with the completion timestamp.
2. Auto-flow (zero wait): when the step is completed and the line has
   auto-flow enabled, the next EMPTY step is queued as "P". N/A and occupied
   steps are passed over; an already planned step ends the scan.

Both behaviours are idempotent. The input order is never mutated; the
caller persists the returned snapshot and audit entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from ..models_common import AuditEntry, LineConfig, Order, WorkSession
from ..status.status_model import StepStateKind, classify, format_timestamp

logger = logging.getLogger(__name__)

AUTO_COMPLETE_NOTE = "Auto-completed by quantity"
AUTO_FLOW_NOTE = "Auto-flow"
PLANNED_MARKER = "P"


@dataclass
class AutomationResult:
    """Order snapshot after automation and the audit trail it produced."""
    order: Order
    audit_entries: List[AuditEntry] = field(default_factory=list)
    total_quantity: float = 0.0
    completed_step: Optional[str] = None
    advanced_step: Optional[str] = None

    @property
    def changed(self) -> bool:
        return bool(self.audit_entries)


def total_closed_quantity(
    order_id: str,
    step_name: str,
    sessions: Iterable[WorkSession],
) -> float:
    """Quantity logged on (order, step) by closed sessions, each session counted once."""
    unique = {}
    for s in sessions:
        if s.order_id == order_id and s.step_name == step_name and s.is_closed:
            unique[s.id] = s
    return float(sum(s.quantity for s in unique.values()))


def advance_next_step(
    order: Order,
    line_config: LineConfig,
    from_step: str,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> Optional[AuditEntry]:
    """
    Queue the next eligible step after `from_step` as planned.

    Mutates `order.step_values`; returns the audit entry, or None when
    nothing was advanced.
    """
    now = now or datetime.now()
    start = line_config.index_of(from_step)
    if start < 0:
        return None

    for step in line_config.steps[start + 1:]:
        state = classify(order.value_of(step.name), now)
        if state.kind == StepStateKind.NOT_APPLICABLE:
            continue
        if state.kind == StepStateKind.PLANNED:
            return None
        if state.kind == StepStateKind.EMPTY:
            order.step_values[step.name] = PLANNED_MARKER
            logger.info(f"Order {order.label}: auto-flow queued step '{step.name}'")
            return AuditEntry(
                order_id=order.id,
                step_name=step.name,
                action=PLANNED_MARKER,
                previous_value=state.raw,
                new_value=PLANNED_MARKER,
                note=AUTO_FLOW_NOTE,
                user_id=user_id,
                timestamp=now,
            )
    return None


def apply_work_session_close(
    order: Order,
    line_config: LineConfig,
    session: WorkSession,
    sessions: Iterable[WorkSession] = (),
    now: Optional[datetime] = None,
) -> AutomationResult:
    """
    Run step-completion automation for a session that just closed.

    Args:
        order: Order snapshot the session belongs to
        line_config: Line configuration (targets, auto-flow flag)
        session: The session that was closed
        sessions: Other sessions logged on the same order (may include `session`)
        now: Reference time for timestamps

    Returns:
        AutomationResult with the new order snapshot and audit entries
    """
    now = now or datetime.now()
    result = AutomationResult(order=order.model_copy(deep=True))

    if not session.is_closed:
        logger.debug(f"Session {session.id} still open, nothing to apply")
        return result
    if session.order_id != order.id:
        logger.warning(f"Session {session.id} belongs to order {session.order_id}, not {order.id}")
        return result

    step = line_config.step(session.step_name)
    if step is None:
        logger.warning(f"Session {session.id} logged on unknown step '{session.step_name}'")
        return result

    snapshot = result.order

    # 1. Auto-complete by quantity
    result.total_quantity = total_closed_quantity(order.id, step.name, [*sessions, session])
    state = classify(snapshot.value_of(step.name), now)

    if (
        step.target_quantity is not None
        and result.total_quantity >= step.target_quantity
        and not state.is_completed
    ):
        stamp = format_timestamp(now)
        snapshot.step_values[step.name] = stamp
        result.completed_step = step.name
        result.audit_entries.append(AuditEntry(
            order_id=order.id,
            step_name=step.name,
            action="Done",
            previous_value=state.raw,
            new_value=stamp,
            note=AUTO_COMPLETE_NOTE,
            user_id=session.user_id,
            timestamp=now,
        ))
        logger.info(
            f"Order {order.label}: step '{step.name}' auto-completed "
            f"({result.total_quantity:g}/{step.target_quantity:g} {step.unit or 'units'})"
        )
        state = classify(stamp, now)

    # 2. Auto-flow
    if line_config.auto_flow_enabled and state.is_completed:
        entry = advance_next_step(snapshot, line_config, step.name, now, session.user_id)
        if entry is not None:
            result.advanced_step = entry.step_name
            result.audit_entries.append(entry)

    return result
