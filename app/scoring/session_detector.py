"""
Sleep session detection.

Groups raw sleep-stage samples into contiguous sessions and selects the
primary overnight session for a *wake date*.

Model
-----
The look-back window runs from noon of the day before the wake date to
noon of the wake date:

    [wake_date - 1 @ 12:00, wake_date @ 12:00)

which captures any nightly sleep regardless of early or late bed/wake
times while bounding the query.

Samples are sorted by start.  A session is opened by a sleep sample
(``in_bed`` or any ``asleep_*`` stage); ``awake`` samples only extend
an already-open session.  A gap longer than ``merge_gap_minutes``
between the end of the session so far and the next sample closes the
session.  Overlapping samples (several sources writing the same night)
are merged, and asleep time is computed as the union of asleep
intervals so overlaps are never counted twice.

The primary session is the candidate with the most asleep time.  No
samples, or no asleep time at all, is the normal "not yet available"
outcome (:class:`NoSessionFound`), not an error.
"""

from __future__ import annotations

import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from app.core.logging import get_logger
from app.schemas.samples import MetricType, Sample, SleepStage
from app.schemas.sleep_session import NoSessionFound, SleepSession, StageInterval
from app.scoring.source import SampleSource

logger = get_logger(__name__)

# ======================================================================
# Configuration
# ======================================================================


class DetectorConfig(BaseModel):
    """Configuration for session detection."""

    anchor_hour: int = Field(12, ge=0, le=23, description="Look-back window boundary (local hour)")
    merge_gap_minutes: float = Field(30.0, ge=0.0)
    max_in_bed_hours: float = Field(12.0, gt=0.0, description="Longer in-bed samples are dropped")


DEFAULT_DETECTOR_CONFIG = DetectorConfig()

SessionOutcome = Union[SleepSession, NoSessionFound]

# ======================================================================
# Pure helpers
# ======================================================================


def lookback_window(
    wake_date: datetime.date,
    config: DetectorConfig = DEFAULT_DETECTOR_CONFIG,
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return ``(start, end)`` of the look-back window for *wake_date*."""
    anchor = datetime.time(config.anchor_hour, 0)
    end = datetime.datetime.combine(wake_date, anchor)
    return end - datetime.timedelta(days=1), end


def wake_date_for(
    timestamp: datetime.datetime,
    config: DetectorConfig = DEFAULT_DETECTOR_CONFIG,
) -> datetime.date:
    """The wake date whose look-back window contains *timestamp*."""
    if timestamp.hour >= config.anchor_hour:
        return timestamp.date() + datetime.timedelta(days=1)
    return timestamp.date()


def _opens_session(stage: SleepStage) -> bool:
    return stage == SleepStage.IN_BED or stage.is_asleep


def _usable(sample: Sample, config: DetectorConfig) -> bool:
    if sample.stage is None:
        return False
    if sample.stage == SleepStage.IN_BED:
        return sample.duration_seconds <= config.max_in_bed_hours * 3600
    return True


def _build_session(samples: list[Sample]) -> SleepSession:
    # Trailing awake samples are dropped so the session ends at the last
    # sleep sample.
    while samples and not _opens_session(samples[-1].stage):
        samples = samples[:-1]
    intervals = [StageInterval(stage=s.stage, start=s.start, end=s.end) for s in samples]
    return SleepSession(
        start=samples[0].start,
        end=max(s.end for s in samples),
        stage_intervals=intervals,
    )


def group_into_sessions(
    samples: list[Sample],
    config: DetectorConfig = DEFAULT_DETECTOR_CONFIG,
) -> list[SleepSession]:
    """Merge contiguous/overlapping stage samples into candidate sessions."""
    gap = datetime.timedelta(minutes=config.merge_gap_minutes)
    ordered = sorted(
        (s for s in samples if _usable(s, config)),
        key=lambda s: (s.start, s.end),
    )

    sessions: list[SleepSession] = []
    current: list[Sample] = []
    current_end: Optional[datetime.datetime] = None

    for sample in ordered:
        if current and sample.start - current_end > gap:
            sessions.append(_build_session(current))
            current, current_end = [], None

        if not current:
            if not _opens_session(sample.stage):
                continue  # awake with nothing to extend
            current = [sample]
            current_end = sample.end
            continue

        current.append(sample)
        if sample.end > current_end:
            current_end = sample.end

    if current:
        sessions.append(_build_session(current))
    return sessions


def select_primary(sessions: list[SleepSession]) -> Optional[SleepSession]:
    """Session with the greatest asleep time (earliest wins a tie)."""
    best: Optional[SleepSession] = None
    for s in sessions:
        if best is None or s.time_asleep_seconds > best.time_asleep_seconds:
            best = s
    if best is None or best.time_asleep_seconds <= 0:
        return None
    return best


def primary_session_from_samples(
    samples: list[Sample],
    wake_date: datetime.date,
    config: DetectorConfig = DEFAULT_DETECTOR_CONFIG,
) -> SessionOutcome:
    """Detect the primary session among *samples* for *wake_date*.

    Samples outside the look-back window are ignored, so one wide query
    can serve many wake dates.
    """
    start, end = lookback_window(wake_date, config)
    in_window = [s for s in samples if start <= s.start < end]
    if not in_window:
        return NoSessionFound(wake_date=wake_date, reason="No sleep samples recorded yet")

    primary = select_primary(group_into_sessions(in_window, config))
    if primary is None:
        return NoSessionFound(wake_date=wake_date, reason="Sleep samples contain no asleep time")
    return primary


# ======================================================================
# Detector
# ======================================================================


class SleepSessionDetector:
    """Selects the primary overnight session for a wake date."""

    def __init__(self, source: SampleSource, config: Optional[DetectorConfig] = None):
        self.source = source
        self.config = config or DEFAULT_DETECTOR_CONFIG

    async def detect_primary_session(self, wake_date: datetime.date) -> SessionOutcome:
        start, end = lookback_window(wake_date, self.config)
        samples = await self.source.query(MetricType.SLEEP_STAGE, start, end)
        outcome = primary_session_from_samples(samples, wake_date, self.config)

        if isinstance(outcome, NoSessionFound):
            logger.info("session_not_found", wake_date=str(wake_date), reason=outcome.reason)
        else:
            logger.info(
                "session_detected",
                wake_date=str(wake_date),
                start=outcome.start.isoformat(),
                end=outcome.end.isoformat(),
                asleep_min=round(outcome.time_asleep_seconds / 60.0, 1),
            )
        return outcome
