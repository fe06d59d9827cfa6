"""
Windowed metric extraction.

Reduces every physiological metric to one value for a sleep window.

Reduction rules
---------------
- HRV, respiratory rate, oxygen saturation, walking HR: **mean**.
- Resting heart rate: **minimum** (the lowest HR during sleep
  approximates the best recovery state).

Same-day fallback
-----------------
Several metrics are not sampled continuously (walking HR is never
sampled during sleep, resting HR is often written once a day).  When no
sample starts inside the window, the whole calendar day of the window's
end (the wake date) is queried and reduced instead, and the result is
flagged ``fallback=True`` so descriptions can say so.  A different
metric type is never substituted.
"""

from __future__ import annotations

import asyncio
import datetime
import math
from typing import Callable, Optional

from app.core.logging import get_logger
from app.schemas.outcome import Ok, Outcome, Unavailable
from app.schemas.samples import MetricType, Sample
from app.schemas.score import NightMetrics
from app.schemas.sleep_session import SleepSession
from app.scoring.source import SampleSource

logger = get_logger(__name__)


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


REDUCERS: dict[MetricType, Callable[[list[float]], float]] = {
    MetricType.HRV: _mean,
    MetricType.RESTING_HEART_RATE: min,
    MetricType.WALKING_HEART_RATE: _mean,
    MetricType.RESPIRATORY_RATE: _mean,
    MetricType.OXYGEN_SATURATION: _mean,
}


def reduce_samples(metric_type: MetricType, samples: list[Sample]) -> Optional[Ok]:
    """Reduce *samples* of *metric_type*; ``None`` when nothing usable."""
    values = [
        s.value for s in samples
        if s.metric_type == metric_type and s.value is not None and math.isfinite(s.value)
    ]
    if not values:
        return None
    return Ok(value=REDUCERS[metric_type](values), sample_count=len(values))


def day_bounds(day: datetime.date) -> tuple[datetime.datetime, datetime.datetime]:
    start = datetime.datetime.combine(day, datetime.time.min)
    return start, start + datetime.timedelta(days=1)


class MetricWindowExtractor:
    """Fetches and reduces metrics for a window."""

    def __init__(self, source: SampleSource):
        self.source = source

    async def extract(
        self,
        metric_type: MetricType,
        start: datetime.datetime,
        end: datetime.datetime,
        fallback_day: Optional[datetime.date] = None,
    ) -> Outcome:
        """Reduce *metric_type* over ``[start, end)`` with same-day fallback.

        The fallback day defaults to the calendar day of *end*.
        """
        if metric_type not in REDUCERS:
            raise ValueError(f"{metric_type.value} is not a reducible metric")

        samples = await self.source.query(metric_type, start, end)
        reduced = reduce_samples(metric_type, samples)
        if reduced is not None:
            return reduced

        day_start, day_end = day_bounds(fallback_day or end.date())
        samples = await self.source.query(metric_type, day_start, day_end)
        reduced = reduce_samples(metric_type, samples)
        if reduced is not None:
            logger.info(
                "metric_fallback_used",
                metric_type=metric_type.value,
                day=str(day_start.date()),
                samples=reduced.sample_count,
            )
            return reduced.model_copy(update={"fallback": True})

        logger.warning(
            "metric_unavailable",
            metric_type=metric_type.value,
            window_start=start.isoformat(),
            window_end=end.isoformat(),
        )
        return Unavailable(
            reason=f"No {metric_type.value.replace('_', ' ')} data during sleep or on {day_start.date()}",
        )

    async def extract_night(
        self, session: SleepSession, wake_date: Optional[datetime.date] = None,
    ) -> NightMetrics:
        """Extract every recovery input for *session* concurrently."""
        day = wake_date or session.end.date()
        hrv, rhr, walking, resp, spo2 = await asyncio.gather(
            self.extract(MetricType.HRV, session.start, session.end, day),
            self.extract(MetricType.RESTING_HEART_RATE, session.start, session.end, day),
            self.extract(MetricType.WALKING_HEART_RATE, session.start, session.end, day),
            self.extract(MetricType.RESPIRATORY_RATE, session.start, session.end, day),
            self.extract(MetricType.OXYGEN_SATURATION, session.start, session.end, day),
        )
        return NightMetrics(
            hrv=hrv,
            resting_heart_rate=rhr,
            walking_heart_rate=walking,
            respiratory_rate=resp,
            oxygen_saturation=spo2,
        )
