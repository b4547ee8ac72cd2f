"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    FLOWLINE SCHEDULING — Capacity Ledger & Recommender
═══════════════════════════════════════════════════════════════════════════════════════════════════════

- Capacity ledger: per-run available vs. consumed step minutes
- Order scoring: priority, due-date urgency, aging, flow continuity
- Recommender: greedy weighted dispatch under the ledger
"""

from .capacity_ledger import (
    CapacityLedger,
    ConstraintLevel,
    StepCapacity,
    build_ledger,
)

from .scoring import (
    OrderScoreDetails,
    score_order,
)

from .recommender import (
    PredictedFlowStep,
    SchedulingRecommendation,
    SchedulingResult,
    SchedulingSummary,
    predict_flow,
    recommend,
)

__all__ = [
    # Ledger
    "CapacityLedger", "ConstraintLevel", "StepCapacity", "build_ledger",
    # Scoring
    "OrderScoreDetails", "score_order",
    # Recommender
    "PredictedFlowStep", "SchedulingRecommendation", "SchedulingResult",
    "SchedulingSummary", "predict_flow", "recommend",
]
