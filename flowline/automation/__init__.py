"""
Step-completion automation, explicit transitions and batch updates.
"""

from .step_completion import (
    AUTO_COMPLETE_NOTE,
    AUTO_FLOW_NOTE,
    AutomationResult,
    advance_next_step,
    apply_work_session_close,
    total_closed_quantity,
)

from .transitions import (
    BatchUpdateResult,
    FlowEngineError,
    InvalidStatusError,
    StepLockedError,
    StepUpdate,
    TransitionResult,
    UnknownStepError,
    apply_recommendations,
    apply_status_transition,
    apply_step_updates,
)

__all__ = [
    # Automation
    "AUTO_COMPLETE_NOTE", "AUTO_FLOW_NOTE", "AutomationResult", "advance_next_step",
    "apply_work_session_close", "total_closed_quantity",
    # Transitions
    "BatchUpdateResult", "FlowEngineError", "InvalidStatusError", "StepLockedError",
    "StepUpdate", "TransitionResult", "UnknownStepError",
    "apply_recommendations", "apply_status_transition", "apply_step_updates",
]
