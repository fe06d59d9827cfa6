"""
Sleep session value objects.

A session is derived on every request from raw sleep-stage samples and
is never persisted on its own; score records reference it by its
start/end timestamps.
"""

import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.samples import SleepStage


class StageInterval(BaseModel):
    """One stage sample inside a session."""

    model_config = {"frozen": True}

    stage: SleepStage
    start: datetime.datetime
    end: datetime.datetime


def _union_seconds(intervals: list[StageInterval]) -> float:
    """Total covered seconds, counting overlapping intervals once."""
    total = 0.0
    cur_start = cur_end = None
    for iv in sorted(intervals, key=lambda i: i.start):
        if cur_end is None or iv.start > cur_end:
            if cur_end is not None:
                total += (cur_end - cur_start).total_seconds()
            cur_start, cur_end = iv.start, iv.end
        elif iv.end > cur_end:
            cur_end = iv.end
    if cur_end is not None:
        total += (cur_end - cur_start).total_seconds()
    return total


class SleepSession(BaseModel):
    """A contiguous block of sleep-stage samples."""

    model_config = {"frozen": True}

    start: datetime.datetime
    end: datetime.datetime
    stage_intervals: list[StageInterval] = Field(default_factory=list)

    @property
    def time_in_bed_seconds(self) -> float:
        return (self.end - self.start).total_seconds()

    def stage_seconds(self, *stages: SleepStage) -> float:
        return _union_seconds([iv for iv in self.stage_intervals if iv.stage in stages])

    @property
    def time_asleep_seconds(self) -> float:
        return _union_seconds([iv for iv in self.stage_intervals if iv.stage.is_asleep])

    @property
    def deep_seconds(self) -> float:
        return self.stage_seconds(SleepStage.ASLEEP_DEEP)

    @property
    def rem_seconds(self) -> float:
        return self.stage_seconds(SleepStage.ASLEEP_REM)

    @property
    def bedtime(self) -> datetime.datetime:
        return self.start

    @property
    def wake_time(self) -> datetime.datetime:
        return self.end


class NoSessionFound(BaseModel):
    """No sleep could be detected for a wake date (a normal outcome)."""

    model_config = {"frozen": True}

    status: Literal["not_found"] = "not_found"
    wake_date: datetime.date
    reason: str
