"""
Personal baseline schemas.

A baseline is the rolling mean of daily values over the trailing
``window_days`` calendar days, excluding the day being scored.
Circadian anchors (bedtime, wake time) are stored as minutes after
local midnight.
"""

import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from app.schemas.outcome import Unavailable


class BaselineKind(str, Enum):
    HRV = "hrv"
    RESTING_HEART_RATE = "resting_heart_rate"
    WALKING_HEART_RATE = "walking_heart_rate"
    RESPIRATORY_RATE = "respiratory_rate"
    OXYGEN_SATURATION = "oxygen_saturation"
    BEDTIME = "bedtime"
    WAKE_TIME = "wake_time"

    @property
    def is_circadian(self) -> bool:
        return self in (BaselineKind.BEDTIME, BaselineKind.WAKE_TIME)


class Baseline(BaseModel):
    """An available baseline value."""

    model_config = {"frozen": True}

    status: Literal["ok"] = "ok"
    kind: BaselineKind
    window_days: int = Field(..., ge=1)
    value: float = Field(
        ...,
        description="Rolling mean (metric units, or minutes after midnight for anchors)",
    )
    sample_count: int = Field(..., ge=0, description="Days with data inside the window")
    as_of: datetime.date = Field(..., description="Day the baseline is computed for (excluded)")
    last_updated: datetime.datetime


BaselineOutcome = Union[Baseline, Unavailable]


def minutes_to_clock(minutes: float) -> str:
    """Format minutes after midnight as ``HH:MM``."""
    total = int(round(minutes)) % (24 * 60)
    return f"{total // 60:02d}:{total % 60:02d}"


class BaselineSet(BaseModel):
    """All baselines one scoring request needs."""

    as_of: datetime.date
    hrv: BaselineOutcome
    resting_heart_rate: BaselineOutcome
    walking_heart_rate: BaselineOutcome
    respiratory_rate: BaselineOutcome
    oxygen_saturation: BaselineOutcome
    bedtime: BaselineOutcome
    wake_time: BaselineOutcome

    @property
    def calibrating(self) -> bool:
        """True while the baselines the scores lean on most are missing."""
        return any(
            isinstance(b, Unavailable)
            for b in (self.hrv, self.resting_heart_rate, self.bedtime)
        )

    def value_of(self, kind: BaselineKind) -> Optional[float]:
        b = getattr(self, kind.value)
        return b.value if isinstance(b, Baseline) else None

    def snapshot(self) -> dict[str, Optional[float]]:
        """Plain values stored alongside a score record."""
        return {kind.value: self.value_of(kind) for kind in BaselineKind}


class BaselineSetResponse(BaseModel):
    as_of: datetime.date
    calibrating: bool
    baselines: dict[str, BaselineOutcome]
