"""
Score schemas.

Both composite scores are weighted sums of components.  Each component
keeps its own 0-100 score, its weight and a human-readable description
of what was compared against what; descriptions are part of the
product, not debug output.
"""

import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from app.schemas.outcome import Outcome, Unavailable


class ScoreKind(str, Enum):
    SLEEP = "sleep"
    RECOVERY = "recovery"


class ScoreComponent(BaseModel):
    """One weighted sub-score."""

    model_config = {"frozen": True}

    name: str
    score: float = Field(..., ge=0.0, le=100.0)
    weight: float = Field(..., gt=0.0, le=1.0)
    description: str
    unavailable: bool = Field(
        False,
        description="True when a neutral score was substituted for missing data",
    )


class NightMetrics(BaseModel):
    """Per-night physiological values reduced over the sleep window."""

    hrv: Outcome
    resting_heart_rate: Outcome
    walking_heart_rate: Outcome
    respiratory_rate: Outcome
    oxygen_saturation: Outcome

    @property
    def has_gaps(self) -> bool:
        return any(isinstance(getattr(self, f), Unavailable) for f in type(self).model_fields)


class SleepScoreResult(BaseModel):
    final_score: int = Field(..., ge=0, le=100)
    components: list[ScoreComponent]
    directive: str
    key_findings: list[str] = Field(default_factory=list)


class RecoveryScoreResult(BaseModel):
    final_score: int = Field(..., ge=0, le=100)
    components: list[ScoreComponent]
    directive: str


class ScoreRecord(BaseModel):
    """The persisted daily score, one per (date, kind)."""

    model_config = {"frozen": True}

    date: datetime.date
    kind: ScoreKind
    final_score: int = Field(..., ge=0, le=100)
    components: list[ScoreComponent]
    directive: str = ""
    key_findings: list[str] = Field(default_factory=list)
    baseline_snapshot: dict[str, Optional[float]] = Field(default_factory=dict)
    session_start: datetime.datetime
    session_end: datetime.datetime
    computed_at: datetime.datetime

    @property
    def source_session_ref(self) -> str:
        return f"{self.session_start.isoformat()}/{self.session_end.isoformat()}"

    @property
    def partial(self) -> bool:
        """True when any component fell back to a neutral score."""
        return any(c.unavailable for c in self.components)


# ---------------------------------------------------------------------------
# Consumer-facing read API
# ---------------------------------------------------------------------------

class NotYetAvailable(BaseModel):
    """The score for a date cannot be computed yet (e.g. today before sleep)."""

    model_config = {"frozen": True}

    status: Literal["not_yet_available"] = "not_yet_available"
    date: datetime.date
    kind: ScoreKind
    reason: str


class AvailableScore(BaseModel):
    status: Literal["available"] = "available"
    partial: bool
    record: ScoreRecord


ScoreResponse = Union[AvailableScore, NotYetAvailable]
