"""
Flowline production flow engine.

Completion projection, capacity-constrained scheduling recommendations and
step-completion automation for orders moving through a production line.
"""
from pathlib import Path

from .models_common import (
    AuditEntry,
    CapacityOverride,
    LineConfig,
    Order,
    OrderPriority,
    ResourceType,
    ScoringWeights,
    ShiftConfig,
    StepDefinition,
    WorkSession,
)
from .status import OrderFlow, StepState, StepStateKind, build_flow, classify
from .projection import daily_capacity_from_monthly_goal, estimate, project, project_many
from .scheduling import CapacityLedger, SchedulingResult, build_ledger, recommend, score_order
from .automation import (
    apply_recommendations,
    apply_status_transition,
    apply_step_updates,
    apply_work_session_close,
)

PACKAGE_ROOT = Path(__file__).resolve().parent

__all__ = [
    "PACKAGE_ROOT",
    # Models
    "AuditEntry", "CapacityOverride", "LineConfig", "Order", "OrderPriority",
    "ResourceType", "ScoringWeights", "ShiftConfig", "StepDefinition", "WorkSession",
    # Status
    "OrderFlow", "StepState", "StepStateKind", "build_flow", "classify",
    # Projection
    "daily_capacity_from_monthly_goal", "estimate", "project", "project_many",
    # Scheduling
    "CapacityLedger", "SchedulingResult", "build_ledger", "recommend", "score_order",
    # Automation
    "apply_recommendations", "apply_status_transition", "apply_step_updates",
    "apply_work_session_close",
]
