"""
Raw sample schemas.

A sample is either a quantity reading (HRV, heart rate, respiratory
rate, oxygen saturation) or a sleep-stage interval.  Timestamps are
naive local wall-clock datetimes.
"""

import datetime
import math
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class MetricType(str, Enum):
    """Kinds of samples the scoring core reads."""

    SLEEP_STAGE = "sleep_stage"
    HRV = "hrv"
    RESTING_HEART_RATE = "resting_heart_rate"
    WALKING_HEART_RATE = "walking_heart_rate"
    RESPIRATORY_RATE = "respiratory_rate"
    OXYGEN_SATURATION = "oxygen_saturation"


QUANTITY_METRICS: tuple[MetricType, ...] = (
    MetricType.HRV,
    MetricType.RESTING_HEART_RATE,
    MetricType.WALKING_HEART_RATE,
    MetricType.RESPIRATORY_RATE,
    MetricType.OXYGEN_SATURATION,
)


class SleepStage(str, Enum):
    """Sleep-stage labels as reported by the wearable."""

    IN_BED = "in_bed"
    AWAKE = "awake"
    ASLEEP_UNSPECIFIED = "asleep_unspecified"
    ASLEEP_CORE = "asleep_core"
    ASLEEP_DEEP = "asleep_deep"
    ASLEEP_REM = "asleep_rem"

    @property
    def is_asleep(self) -> bool:
        return self in ASLEEP_STAGES


ASLEEP_STAGES = frozenset({
    SleepStage.ASLEEP_UNSPECIFIED,
    SleepStage.ASLEEP_CORE,
    SleepStage.ASLEEP_DEEP,
    SleepStage.ASLEEP_REM,
})


def _check_payload(
    metric_type: MetricType,
    start: datetime.datetime,
    end: datetime.datetime,
    value: Optional[float],
    stage: Optional[SleepStage],
) -> None:
    if end < start:
        raise ValueError("sample end precedes start")
    if metric_type == MetricType.SLEEP_STAGE:
        if stage is None:
            raise ValueError("sleep-stage samples need a stage")
        if end == start:
            raise ValueError("sleep-stage samples need a non-empty interval")
    elif value is None or not math.isfinite(value):
        raise ValueError(f"{metric_type.value} samples need a finite value")


class Sample(BaseModel):
    """A single immutable sample.

    Quantity metrics carry ``value``; sleep-stage samples carry ``stage``.
    Instantaneous readings have ``end == start``.
    """

    model_config = {"frozen": True}

    metric_type: MetricType
    start: datetime.datetime
    end: datetime.datetime
    value: Optional[float] = Field(
        None,
        description="Reading for quantity metrics (ms, bpm, breaths/min, %)",
    )
    stage: Optional[SleepStage] = Field(
        None,
        description="Stage label for sleep-stage samples",
    )

    @model_validator(mode="after")
    def _validate(self) -> "Sample":
        _check_payload(self.metric_type, self.start, self.end, self.value, self.stage)
        return self

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


class SampleIn(BaseModel):
    """Ingestion payload for one sample (``end`` defaults to ``start``)."""

    metric_type: MetricType
    start: datetime.datetime
    end: Optional[datetime.datetime] = None
    value: Optional[float] = None
    stage: Optional[SleepStage] = None

    @field_validator("start", "end")
    @classmethod
    def _to_local_wall_clock(cls, v: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        # Offsets are converted to local wall-clock time and dropped.
        if v is not None and v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v

    @model_validator(mode="after")
    def _validate(self) -> "SampleIn":
        _check_payload(self.metric_type, self.start, self.end or self.start, self.value, self.stage)
        return self

    def to_sample(self) -> Sample:
        return Sample(
            metric_type=self.metric_type,
            start=self.start,
            end=self.end or self.start,
            value=self.value,
            stage=self.stage,
        )


class SampleBatchIn(BaseModel):
    """Batch of samples posted by the data platform adapter."""

    samples: list[SampleIn] = Field(..., min_length=1, max_length=10_000)


class SampleBatchResponse(BaseModel):
    accepted: int
    notified_dates: list[datetime.date]
