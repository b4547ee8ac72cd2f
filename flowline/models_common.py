"""
Flowline - Common Models
========================

Pydantic models exchanged with the host: line configuration, order
snapshots, work sessions, audit entries and capacity overrides.

Validators are lenient: malformed dates, priorities or durations are
coerced to safe defaults instead of rejecting the snapshot, since the
engine is a planning aid fed by spreadsheet-grade data.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class ResourceType(str, Enum):
    """What bounds the throughput of a step."""
    STAFF_LIMITED = "staff_limited"         # Staff x shift hours
    MACHINE_UNLIMITED = "machine_unlimited"  # Never capacity-bound


class OrderPriority(str, Enum):
    """Order priority flags, from none to '!!!'."""
    NONE = ""
    LOW = "!"
    MEDIUM = "!!"
    HIGH = "!!!"

    @property
    def level(self) -> int:
        return len(self.value)


_PRIORITY_WORDS = {
    OrderPriority.HIGH: ("urgent", "high", "紧急", "高"),
    OrderPriority.MEDIUM: ("normal", "medium", "普通", "中"),
    OrderPriority.LOW: ("low", "低"),
}


def coerce_priority(value: Any) -> OrderPriority:
    """Map flags, levels 0-3 and priority words onto OrderPriority."""
    if isinstance(value, OrderPriority):
        return value
    if value is None:
        return OrderPriority.NONE
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        level = int(value)
        return [OrderPriority.NONE, OrderPriority.LOW, OrderPriority.MEDIUM, OrderPriority.HIGH][
            max(0, min(3, level))
        ]

    text = str(value).strip().lower()
    if text in ("", "!", "!!", "!!!"):
        return OrderPriority(text)
    if text.isdigit():
        return coerce_priority(int(text))
    for priority, words in _PRIORITY_WORDS.items():
        if any(w in text for w in words):
            return priority

    logger.debug(f"Unrecognised priority {value!r}, treated as none")
    return OrderPriority.NONE


def coerce_datetime(value: Any) -> Optional[datetime]:
    """Parse a date/datetime leniently; None when unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        try:
            dt = date_parser.parse(str(value))
        except (ValueError, OverflowError, TypeError):
            logger.debug(f"Unparseable date {value!r} ignored")
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


# ═══════════════════════════════════════════════════════════════════════════════
# LINE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

class StepDefinition(BaseModel):
    """One stage of a production line pipeline."""
    name: str
    position: int
    standard_duration_minutes: Optional[float] = Field(
        default=None,
        description="Standard time for one order at this step; None = use default",
    )
    target_quantity: Optional[float] = None
    unit: Optional[str] = None
    resource_type: ResourceType = ResourceType.STAFF_LIMITED
    staff_count: int = Field(default=1, ge=0)

    @field_validator("standard_duration_minutes", mode="before")
    @classmethod
    def _lenient_duration(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            minutes = float(value)
        except (TypeError, ValueError):
            logger.debug(f"Invalid step duration {value!r}, default will apply")
            return None
        if math.isnan(minutes) or minutes < 0:
            return None
        return minutes

    @field_validator("target_quantity", mode="before")
    @classmethod
    def _lenient_target(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            target = float(value)
        except (TypeError, ValueError):
            return None
        return target if target > 0 else None

    @property
    def is_unlimited(self) -> bool:
        return self.resource_type == ResourceType.MACHINE_UNLIMITED

    def duration_minutes(self, default_minutes: float) -> float:
        """Standard duration, or the supplied default when not configured."""
        if self.standard_duration_minutes is None:
            return default_minutes
        return self.standard_duration_minutes


class ShiftConfig(BaseModel):
    """Working time of the line."""
    standard_hours: float = Field(default=8.0, ge=0.0)
    overtime_hours: float = Field(default=0.0, ge=0.0)
    work_saturday: bool = False
    work_sunday: bool = False

    @property
    def total_hours(self) -> float:
        return self.standard_hours + self.overtime_hours


class ScoringWeights(BaseModel):
    """Relative multipliers of the scheduling score components."""
    priority: float = 50.0
    due_date: float = 30.0
    aging: float = 20.0
    flow: float = 0.0   # Continuity bonus for orders already in the pipeline


class LineConfig(BaseModel):
    """
    Production line configuration.

    Steps are kept sorted by position; step names must be unique.
    """
    id: str = "default"
    name: str = ""
    steps: List[StepDefinition] = Field(default_factory=list)
    shift: ShiftConfig = Field(default_factory=ShiftConfig)
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    auto_flow_enabled: bool = False
    monthly_target: Optional[int] = None

    @model_validator(mode="after")
    def _order_steps(self) -> "LineConfig":
        names = [s.name for s in self.steps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate step names: {duplicates}")
        self.steps = sorted(self.steps, key=lambda s: s.position)
        return self

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def step(self, name: str) -> Optional[StepDefinition]:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def index_of(self, name: str) -> int:
        """Pipeline index of a step, -1 if unknown."""
        for idx, step in enumerate(self.steps):
            if step.name == name:
                return idx
        return -1


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS & SESSIONS
# ═══════════════════════════════════════════════════════════════════════════════

class Order(BaseModel):
    """Snapshot of a work order and the raw value of each of its steps."""
    id: str
    line_id: str = "default"
    wo_id: Optional[str] = None
    priority: OrderPriority = OrderPriority.NONE
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    material_status: Optional[str] = None
    step_values: Dict[str, str] = Field(default_factory=dict)

    @field_validator("priority", mode="before")
    @classmethod
    def _lenient_priority(cls, value: Any) -> OrderPriority:
        return coerce_priority(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def _lenient_due_date(cls, value: Any) -> Optional[datetime]:
        return coerce_datetime(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _lenient_created_at(cls, value: Any) -> datetime:
        return coerce_datetime(value) or datetime.now()

    @field_validator("step_values", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Dict[str, str]:
        if not value:
            return {}
        return {str(k): "" if v is None else str(v) for k, v in dict(value).items()}

    @property
    def label(self) -> str:
        return self.wo_id or self.id

    @property
    def is_material_ready(self) -> bool:
        status = (self.material_status or "").strip()
        return status in ("", "Ready", "OK", "齐套")

    def value_of(self, step_name: str) -> str:
        return self.step_values.get(step_name, "")


class WorkSession(BaseModel):
    """A period of work by one user on one step of an order."""
    id: str
    order_id: str
    step_name: str
    user_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    quantity: float = 0.0
    standard_time_minutes: Optional[float] = None

    @property
    def is_closed(self) -> bool:
        return self.end_time is not None

    @property
    def duration_minutes(self) -> float:
        if self.end_time is None:
            return 0.0
        return max(0.0, (self.end_time - self.start_time).total_seconds() / 60.0)


class AuditEntry(BaseModel):
    """Operation log entry produced by a step mutation."""
    order_id: str
    step_name: str
    action: str
    previous_value: str = ""
    new_value: str = ""
    note: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class CapacityOverride(BaseModel):
    """Capacity supplied by an external advisor for a single step."""
    capacity_minutes: float = Field(ge=0.0)
    reason: str = ""
