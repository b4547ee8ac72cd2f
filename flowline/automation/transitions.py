"""
Explicit step status transitions and batch application.

Transition vocabulary:
    "Done"                               → completion timestamp
    "Reset"                              → value cleared (EMPTY)
    "P" "WIP" "N/A" "Hold" "QN" "DIFA"   → stored as-is
    anything else                        → stored as a manual value

A completed step only accepts "Reset". Batches process every update on its
own: a failing update is reported and does not affect the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..models_common import AuditEntry, LineConfig, Order
from ..scheduling.recommender import SchedulingResult
from ..status.status_model import StepStateKind, classify, format_timestamp

logger = logging.getLogger(__name__)

DONE = "Done"
RESET = "Reset"
STATUS_MARKERS = ("P", "WIP", "N/A", "Hold", "QN", "DIFA")


# ═══════════════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class FlowEngineError(Exception):
    """Base error of explicit flow mutations."""


class UnknownStepError(FlowEngineError):
    def __init__(self, step_name: str, line_id: str):
        super().__init__(f"Step '{step_name}' is not part of line '{line_id}'")
        self.step_name = step_name
        self.line_id = line_id


class StepLockedError(FlowEngineError):
    def __init__(self, order_id: str, step_name: str, value: str):
        super().__init__(
            f"Step '{step_name}' of order {order_id} is completed ({value}); use Reset first"
        )
        self.order_id = order_id
        self.step_name = step_name
        self.value = value


class InvalidStatusError(FlowEngineError):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class StepUpdate:
    """Requested status change of one step."""
    order_id: str
    step_name: str
    status: str


@dataclass
class TransitionResult:
    order: Order
    audit_entry: AuditEntry


@dataclass
class BatchUpdateResult:
    """Outcome of a batch of step updates."""
    orders: Dict[str, Order] = field(default_factory=dict)
    audit_entries: List[AuditEntry] = field(default_factory=list)
    updated_order_ids: List[str] = field(default_factory=list)
    success_count: int = 0
    skipped_count: int = 0
    total: int = 0
    errors: List[str] = field(default_factory=list)

    def _record(self, transition: TransitionResult) -> None:
        order = transition.order
        self.orders[order.id] = order
        self.audit_entries.append(transition.audit_entry)
        if order.id not in self.updated_order_ids:
            self.updated_order_ids.append(order.id)
        self.success_count += 1


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def apply_status_transition(
    order: Order,
    line_config: LineConfig,
    step_name: str,
    status: str,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
    note: Optional[str] = None,
) -> TransitionResult:
    """
    Apply an explicit status to one step of an order.

    Raises:
        UnknownStepError: step not configured on the line
        StepLockedError: step completed and status is not Reset
        InvalidStatusError: empty status
    """
    now = now or datetime.now()
    if line_config.step(step_name) is None:
        raise UnknownStepError(step_name, line_config.id)

    status = (status or "").strip()
    if not status:
        raise InvalidStatusError("Empty status; use Reset to clear a step")

    previous = order.value_of(step_name)
    current = classify(previous, now)
    updated = order.model_copy(deep=True)

    if status == RESET:
        new_value = ""
        updated.step_values.pop(step_name, None)
    elif current.is_completed:
        raise StepLockedError(order.id, step_name, previous)
    elif status == DONE:
        new_value = format_timestamp(now)
        updated.step_values[step_name] = new_value
    else:
        if status not in STATUS_MARKERS:
            logger.debug(f"Order {order.label}: manual value {status!r} on '{step_name}'")
        new_value = status
        updated.step_values[step_name] = new_value

    entry = AuditEntry(
        order_id=order.id,
        step_name=step_name,
        action=status,
        previous_value=previous,
        new_value=new_value,
        note=note,
        user_id=user_id,
        timestamp=now,
    )
    return TransitionResult(order=updated, audit_entry=entry)


def apply_step_updates(
    orders: Iterable[Order],
    line_config: LineConfig,
    updates: Iterable[StepUpdate],
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BatchUpdateResult:
    """Apply a batch of step updates; failures are collected, not raised."""
    now = now or datetime.now()
    result = BatchUpdateResult(orders={o.id: o for o in orders})

    for update in updates:
        result.total += 1
        order = result.orders.get(update.order_id)
        if order is None:
            result.errors.append(f"Order {update.order_id} not found")
            continue
        try:
            transition = apply_status_transition(
                order, line_config, update.step_name, update.status, user_id, now,
                note="batch",
            )
        except FlowEngineError as exc:
            logger.warning(f"Batch update of order {update.order_id} failed: {exc}")
            result.errors.append(f"Failed to update {update.order_id}: {exc}")
            continue
        result._record(transition)

    return result


def apply_recommendations(
    orders: Iterable[Order],
    line_config: LineConfig,
    scheduling: SchedulingResult,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BatchUpdateResult:
    """
    Queue every recommended step as "P".

    Only steps that are still EMPTY are touched; recommendations for steps
    already in progress or changed since the run are skipped.
    """
    now = now or datetime.now()
    result = BatchUpdateResult(orders={o.id: o for o in orders})

    for rec in scheduling.recommendations:
        result.total += 1
        order = result.orders.get(rec.order_id)
        if order is None:
            result.errors.append(f"Order {rec.order_id} not found")
            continue
        if classify(order.value_of(rec.step_name), now).kind != StepStateKind.EMPTY:
            result.skipped_count += 1
            continue
        try:
            transition = apply_status_transition(
                order, line_config, rec.step_name, "P", user_id, now,
                note=f"scheduled (score {rec.score:.1f})",
            )
        except FlowEngineError as exc:
            result.errors.append(f"Failed to update {rec.order_id}: {exc}")
            continue
        result._record(transition)

    logger.info(
        f"Applied {result.success_count}/{result.total} recommendations "
        f"({result.skipped_count} skipped, {len(result.errors)} errors)"
    )
    return result
