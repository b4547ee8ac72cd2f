"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    STATUS MODEL — Step Value Classification
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Every step of an order holds a free-form raw value (a completion timestamp,
a status marker or an arbitrary manual note). This module turns that value
into a semantic StepState and derives the per-order view (OrderFlow) shared
by the projector, the recommender and the automation.

Classification rules (first match wins):
    1. timestamp-shaped            → COMPLETED
    2. "N/A"                       → NOT_APPLICABLE
    3. "Hold"                      → HOLD
    4. "QN" / "DIFA"               → QUALITY_EXCEPTION
    5. "WIP"                       → IN_PROGRESS
    6. "P", "P,<note>", "P..."     → PLANNED
    7. empty / missing             → EMPTY
    8. anything else               → MANUAL

Classification is total: it never raises.
═══════════════════════════════════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from dateutil import parser as date_parser

from ..models_common import LineConfig, Order, StepDefinition

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"

_ISO_SHAPE = re.compile(r"^\d{4}-\d{2}-\d{2}([ T]\d{1,2}:\d{2}(:\d{2}(\.\d+)?)?)?(Z|[+-]\d{2}:?\d{2})?$")
_LEGACY_SHAPE = re.compile(r"^(\d{1,2})-([A-Za-z]{3})(?:,?\s*(\d{1,2}):(\d{2}))?$")
_MONTHS = {m: i for i, m in enumerate(
    ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1
)}


class StepStateKind(str, Enum):
    """Semantic state of a single step."""
    EMPTY = "empty"
    PLANNED = "P"
    IN_PROGRESS = "WIP"
    HOLD = "Hold"
    QUALITY_EXCEPTION = "QN"
    NOT_APPLICABLE = "N/A"
    COMPLETED = "completed"
    MANUAL = "manual"


@dataclass(frozen=True)
class StepState:
    """Classified step value."""
    kind: StepStateKind
    raw: str = ""
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.kind == StepStateKind.COMPLETED

    @property
    def is_closed(self) -> bool:
        """Completed or not applicable: no remaining work."""
        return self.kind in (StepStateKind.COMPLETED, StepStateKind.NOT_APPLICABLE)

    @property
    def is_blocking(self) -> bool:
        return self.kind in (StepStateKind.HOLD, StepStateKind.QUALITY_EXCEPTION)


# ═══════════════════════════════════════════════════════════════════════════════
# TIMESTAMPS
# ═══════════════════════════════════════════════════════════════════════════════

def format_timestamp(moment: datetime) -> str:
    """Stored completion format, e.g. '2026-01-02 19:30'."""
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a completion timestamp.

    Accepts ISO dates/datetimes and the legacy 'dd-MMM[, HH:mm]' form, whose
    year is inferred (current year, previous one if that lies in the future).
    Returns None for anything that is not timestamp-shaped.
    """
    text = (value or "").strip()
    if len(text) < 5:
        return None
    now = now or datetime.now()

    if _ISO_SHAPE.match(text):
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError):
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed if parsed.year > 2000 else None

    legacy = _LEGACY_SHAPE.match(text)
    if legacy:
        day, month_name, hour, minute = legacy.groups()
        month = _MONTHS.get(month_name.lower())
        if month is None:
            return None
        try:
            parsed = datetime(now.year, month, int(day), int(hour or 0), int(minute or 0))
            if parsed > now:
                parsed = parsed.replace(year=now.year - 1)
        except ValueError:
            return None
        return parsed

    return None


# ═══════════════════════════════════════════════════════════════════════════════
# CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

def classify(raw_value: Optional[str], now: Optional[datetime] = None) -> StepState:
    """Classify a raw step value into a StepState."""
    text = "" if raw_value is None else str(raw_value).strip()

    completed_at = parse_timestamp(text, now)
    if completed_at is not None:
        if completed_at <= (now or datetime.now()):
            return StepState(StepStateKind.COMPLETED, text, completed_at)
        logger.debug(f"Future timestamp {text!r} treated as manual value")
        return StepState(StepStateKind.MANUAL, text)

    if text == "N/A":
        return StepState(StepStateKind.NOT_APPLICABLE, text)
    if text == "Hold":
        return StepState(StepStateKind.HOLD, text)
    if text in ("QN", "DIFA"):
        return StepState(StepStateKind.QUALITY_EXCEPTION, text)
    if text == "WIP":
        return StepState(StepStateKind.IN_PROGRESS, text)
    if text.startswith("P"):
        return StepState(StepStateKind.PLANNED, text)
    if not text:
        return StepState(StepStateKind.EMPTY, text)
    return StepState(StepStateKind.MANUAL, text)


# ═══════════════════════════════════════════════════════════════════════════════
# ORDER FLOW VIEW
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OrderFlow:
    """
    Normalized view of an order against its line configuration.

    Built once per order and shared by every consumer so that the current
    step is never re-derived ad hoc.
    """
    order: Order
    steps: List[StepDefinition]
    states: List[StepState] = field(default_factory=list)
    current_index: Optional[int] = None

    @property
    def current_step(self) -> Optional[StepDefinition]:
        if self.current_index is None:
            return None
        return self.steps[self.current_index]

    @property
    def current_state(self) -> Optional[StepState]:
        if self.current_index is None:
            return None
        return self.states[self.current_index]

    @property
    def is_fully_complete(self) -> bool:
        return bool(self.states) and self.states[-1].is_completed

    @property
    def has_quality_exception(self) -> bool:
        return any(s.kind == StepStateKind.QUALITY_EXCEPTION for s in self.states)

    @property
    def is_blocked(self) -> bool:
        return any(s.is_blocking for s in self.states)

    @property
    def last_completed_at(self) -> Optional[datetime]:
        stamps = [s.completed_at for s in self.states if s.completed_at is not None]
        return max(stamps) if stamps else None

    @property
    def progress(self) -> float:
        """Share of the pipeline before the current step (0..1)."""
        if not self.steps:
            return 0.0
        if self.current_index is None:
            return 1.0
        return self.current_index / len(self.steps)


def build_flow(order: Order, line_config: LineConfig, now: Optional[datetime] = None) -> OrderFlow:
    """Classify every step of an order and locate its current step."""
    now = now or datetime.now()
    states = [classify(order.value_of(step.name), now) for step in line_config.steps]

    current_index = None
    for idx, state in enumerate(states):
        if not state.is_closed:
            current_index = idx
            break

    return OrderFlow(
        order=order,
        steps=list(line_config.steps),
        states=states,
        current_index=current_index,
    )
