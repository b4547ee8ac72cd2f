"""
Step status vocabulary and the derived per-order flow view.
"""

from .status_model import (
    StepStateKind,
    StepState,
    OrderFlow,
    classify,
    build_flow,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "StepStateKind", "StepState", "OrderFlow",
    "classify", "build_flow", "format_timestamp", "parse_timestamp",
]
