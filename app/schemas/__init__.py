"""Pydantic schemas for domain values and request/response validation."""

from app.schemas.samples import (
    MetricType,
    SleepStage,
    Sample,
    SampleIn,
    SampleBatchIn,
    SampleBatchResponse,
)
from app.schemas.outcome import Ok, Unavailable, Outcome
from app.schemas.sleep_session import StageInterval, SleepSession, NoSessionFound
from app.schemas.baseline import (
    BaselineKind,
    Baseline,
    BaselineOutcome,
    BaselineSet,
    BaselineSetResponse,
)
from app.schemas.score import (
    ScoreKind,
    ScoreComponent,
    NightMetrics,
    SleepScoreResult,
    RecoveryScoreResult,
    ScoreRecord,
    NotYetAvailable,
    AvailableScore,
    ScoreResponse,
)
from app.schemas.events import SampleArrived, ScoreUpdated, RecalcState, ControllerStatus

__all__ = [
    "MetricType",
    "SleepStage",
    "Sample",
    "SampleIn",
    "SampleBatchIn",
    "SampleBatchResponse",
    "Ok",
    "Unavailable",
    "Outcome",
    "StageInterval",
    "SleepSession",
    "NoSessionFound",
    "BaselineKind",
    "Baseline",
    "BaselineOutcome",
    "BaselineSet",
    "BaselineSetResponse",
    "ScoreKind",
    "ScoreComponent",
    "NightMetrics",
    "SleepScoreResult",
    "RecoveryScoreResult",
    "ScoreRecord",
    "NotYetAvailable",
    "AvailableScore",
    "ScoreResponse",
    "SampleArrived",
    "ScoreUpdated",
    "RecalcState",
    "ControllerStatus",
]
