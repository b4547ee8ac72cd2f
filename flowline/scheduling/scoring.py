"""
Order scoring for the scheduling recommender.

Score components (each normalized around 0-100):
    P  priority     none 0, '!' 33.3, '!!' 66.7, '!!!' 100
    U  urgency      100 - 10 × days_left while due in the future (≥ 0),
                    100 + days_overdue once due; 0 without due date
    A  aging        min(100, 5 × days since creation)
    F  flow bonus   w_f × (0.5 + progress) once past the first step

    combined = (w_p·P + w_d·U + w_a·A) / 100 + F

Weights are relative multipliers taken from the line configuration.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np

from ..models_common import LineConfig, Order, OrderPriority, ScoringWeights
from ..status.status_model import OrderFlow, build_flow

URGENCY_DAILY_DECAY = 10.0
AGING_DAILY_GAIN = 5.0


@dataclass
class OrderScoreDetails:
    """Score breakdown of one order."""
    order_id: str
    wo_id: str
    combined_score: float
    priority_score: float
    urgency_score: float
    aging_score: float
    flow_score: float
    next_step: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "wo_id": self.wo_id,
            "combined_score": round(self.combined_score, 2),
            "priority_score": round(self.priority_score, 2),
            "urgency_score": round(self.urgency_score, 2),
            "aging_score": round(self.aging_score, 2),
            "flow_score": round(self.flow_score, 2),
            "next_step": self.next_step,
        }


def _days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up."""
    return math.ceil((end - start).total_seconds() / 86400.0)


def priority_score(priority: OrderPriority) -> float:
    return priority.level / 3.0 * 100.0


def urgency_score(due_date: Optional[datetime], now: datetime) -> float:
    if due_date is None:
        return 0.0
    days_left = _days_between(now, due_date)
    if days_left <= 0:
        return 100.0 + abs(days_left)
    return float(np.clip(100.0 - days_left * URGENCY_DAILY_DECAY, 0.0, 100.0))


def aging_score(created_at: datetime, now: datetime) -> float:
    days = _days_between(created_at, now)
    return float(np.clip(days * AGING_DAILY_GAIN, 0.0, 100.0))


def flow_score(flow: OrderFlow, weights: ScoringWeights) -> float:
    if not weights.flow or not flow.current_index:
        return 0.0
    return weights.flow * (0.5 + flow.progress)


def score_order(
    order: Order,
    line_config: LineConfig,
    now: Optional[datetime] = None,
    flow: Optional[OrderFlow] = None,
) -> OrderScoreDetails:
    """Compute the scheduling score of an order."""
    now = now or datetime.now()
    flow = flow or build_flow(order, line_config, now)
    weights = line_config.weights

    p = priority_score(order.priority)
    u = urgency_score(order.due_date, now)
    a = aging_score(order.created_at, now)
    f = flow_score(flow, weights)

    combined = (weights.priority * p + weights.due_date * u + weights.aging * a) / 100.0 + f

    return OrderScoreDetails(
        order_id=order.id,
        wo_id=order.label,
        combined_score=combined,
        priority_score=p,
        urgency_score=u,
        aging_score=a,
        flow_score=f,
        next_step=flow.current_step.name if flow.current_step else None,
    )
