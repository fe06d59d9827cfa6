"""
Event schemas carried on the in-process event channels.
"""

import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.samples import MetricType
from app.schemas.score import ScoreKind


class SampleArrived(BaseModel):
    """Change notification from the sample source.

    Delivery is at-least-once and may be late or out of order.
    """

    model_config = {"frozen": True}

    metric_type: MetricType
    timestamp: datetime.datetime


class ScoreUpdated(BaseModel):
    """Published after a recomputation persisted a record."""

    model_config = {"frozen": True}

    date: datetime.date
    kind: ScoreKind
    final_score: int
    previous_score: Optional[int] = None
    changed: bool = Field(..., description="False when the new record equals the old one")


class RecalcState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RECALCULATING = "recalculating"


class ControllerStatus(BaseModel):
    running: bool
    states: dict[datetime.date, RecalcState]
    dirty: list[datetime.date]
    last_notification_at: Optional[datetime.datetime] = None
    completed_runs: int = 0
    failed_runs: int = 0
