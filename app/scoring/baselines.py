"""
Rolling personal baselines.

Model
-----
A baseline is the simple mean of *daily values* over the trailing
``window_days`` calendar days, excluding the day being scored:

    window(as_of) = [as_of - window_days, as_of - 1]

Each daily value is reduced with the same rule the nightly extractor
uses (mean, or minimum for resting heart rate), so a baseline compares
like with like.

Two window classes:

    long  (60 d)   HRV, resting heart rate
    short (14 d)   walking HR, respiratory rate, oxygen saturation,
                   bedtime and wake-time anchors

Circadian anchors
-----------------
Bedtime and wake time are averaged as **time of day** (minutes after
local midnight) on the unit circle:

    mean = atan2(sum sin(theta), sum cos(theta))

so 23:00 and 01:00 average to 00:00 instead of 12:00.  The daily value
is the start (bedtime) or end (wake time) of that wake date's primary
session, detected from one wide query of sleep-stage samples.

Design choices
--------------
1. **Unavailable, never zero** -- fewer than ``min_days`` days with data
   yields :class:`Unavailable`; callers substitute a neutral score.
2. **Cache with invalidation** -- results are cached per
   ``(kind, as_of)`` in a least-recently-used map of ``cache_size``
   entries.  A sample notification for day ``D`` drops every entry
   whose window contains ``D``.
3. **Single writer per key** -- one ``asyncio.Lock`` per key while a
   computation for it is running or awaited.  Its generation counter
   stops a computation that raced an invalidation from caching its
   (stale) result; the entry is dropped with its last user.
"""

from __future__ import annotations

import asyncio
import datetime
import math
from collections import OrderedDict, defaultdict
from typing import Optional

from pydantic import BaseModel, Field

from app.core.logging import get_logger
from app.schemas.baseline import Baseline, BaselineKind, BaselineOutcome, BaselineSet
from app.schemas.outcome import Unavailable
from app.schemas.samples import MetricType, Sample
from app.schemas.sleep_session import NoSessionFound
from app.scoring.metric_window import reduce_samples
from app.scoring.session_detector import (
    DEFAULT_DETECTOR_CONFIG,
    DetectorConfig,
    lookback_window,
    primary_session_from_samples,
)
from app.scoring.source import SampleSource

logger = get_logger(__name__)

_MINUTES_PER_DAY = 24 * 60

# ======================================================================
# Configuration
# ======================================================================

_KIND_TO_METRIC: dict[BaselineKind, MetricType] = {
    BaselineKind.HRV: MetricType.HRV,
    BaselineKind.RESTING_HEART_RATE: MetricType.RESTING_HEART_RATE,
    BaselineKind.WALKING_HEART_RATE: MetricType.WALKING_HEART_RATE,
    BaselineKind.RESPIRATORY_RATE: MetricType.RESPIRATORY_RATE,
    BaselineKind.OXYGEN_SATURATION: MetricType.OXYGEN_SATURATION,
}

_LONG_WINDOW_KINDS = frozenset({BaselineKind.HRV, BaselineKind.RESTING_HEART_RATE})


class BaselineConfig(BaseModel):
    """Configuration for baseline windows."""

    long_window_days: int = Field(60, ge=1)
    short_window_days: int = Field(14, ge=1)
    min_days: int = Field(3, ge=1, description="Days with data required for a baseline")
    cache_size: int = Field(512, ge=1, description="Cached (kind, as_of) outcomes kept")

    def window_for(self, kind: BaselineKind) -> int:
        if kind in _LONG_WINDOW_KINDS:
            return self.long_window_days
        return self.short_window_days


DEFAULT_BASELINE_CONFIG = BaselineConfig()


# ======================================================================
# Pure helpers
# ======================================================================


def minutes_of_day(ts: datetime.datetime) -> float:
    """Time-of-day component of *ts* in minutes after midnight."""
    return ts.hour * 60 + ts.minute + ts.second / 60.0


def circular_mean_minutes(values: list[float]) -> float:
    """Mean of clock times (minutes after midnight) on the 24h circle."""
    if not values:
        raise ValueError("circular mean of an empty sequence")
    sin_sum = cos_sum = 0.0
    for m in values:
        theta = 2 * math.pi * m / _MINUTES_PER_DAY
        sin_sum += math.sin(theta)
        cos_sum += math.cos(theta)
    angle = math.atan2(sin_sum, cos_sum)
    return (angle * _MINUTES_PER_DAY / (2 * math.pi)) % _MINUTES_PER_DAY


def clock_difference_minutes(a: float, b: float) -> float:
    """Shortest distance between two clock times, in [0, 720]."""
    diff = abs(a - b) % _MINUTES_PER_DAY
    return min(diff, _MINUTES_PER_DAY - diff)


def daily_values(metric_type: MetricType, samples: list[Sample]) -> dict[datetime.date, float]:
    """Reduce *samples* to one value per calendar day."""
    by_day: dict[datetime.date, list[Sample]] = defaultdict(list)
    for s in samples:
        by_day[s.start.date()].append(s)
    result: dict[datetime.date, float] = {}
    for day, day_samples in by_day.items():
        reduced = reduce_samples(metric_type, day_samples)
        if reduced is not None:
            result[day] = reduced.value
    return result


def _midnight(day: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time.min)


# ======================================================================
# Engine
# ======================================================================


BaselineKey = tuple[BaselineKind, datetime.date]


class _Inflight:
    __slots__ = ("lock", "users", "generation")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0
        self.generation = 0


class BaselineEngine:
    """Computes and caches rolling baselines."""

    def __init__(
        self,
        source: SampleSource,
        config: Optional[BaselineConfig] = None,
        detector_config: Optional[DetectorConfig] = None,
    ):
        self.source = source
        self.config = config or DEFAULT_BASELINE_CONFIG
        self.detector_config = detector_config or DEFAULT_DETECTOR_CONFIG
        self._cache: OrderedDict[BaselineKey, BaselineOutcome] = OrderedDict()
        self._inflight: dict[BaselineKey, _Inflight] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def baseline(self, kind: BaselineKind, as_of: datetime.date) -> BaselineOutcome:
        """Baseline of *kind* for scoring the day *as_of*."""
        key = (kind, as_of)
        cached = self._cached(key)
        if cached is not None:
            return cached

        entry = self._inflight.get(key)
        if entry is None:
            entry = self._inflight[key] = _Inflight()
        entry.users += 1
        try:
            async with entry.lock:
                cached = self._cached(key)
                if cached is not None:
                    return cached

                generation = entry.generation
                if kind.is_circadian:
                    outcome = await self._compute_anchor(kind, as_of)
                else:
                    outcome = await self._compute_metric(kind, as_of)

                if entry.generation == generation:
                    self._remember(key, outcome)
                return outcome
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._inflight[key]

    async def baseline_set(self, as_of: datetime.date) -> BaselineSet:
        """Every baseline needed to score *as_of*, fetched concurrently."""
        kinds = list(BaselineKind)
        outcomes = await asyncio.gather(*(self.baseline(k, as_of) for k in kinds))
        return BaselineSet(as_of=as_of, **{k.value: o for k, o in zip(kinds, outcomes)})

    def invalidate(self, metric_type: MetricType, day: datetime.date) -> int:
        """Drop cached baselines whose window could contain *day*.

        Returns the number of entries dropped.
        """
        if metric_type == MetricType.SLEEP_STAGE:
            kinds = {BaselineKind.BEDTIME, BaselineKind.WAKE_TIME}
        else:
            kinds = {k for k, m in _KIND_TO_METRIC.items() if m == metric_type}

        dropped = 0
        for key in set(self._cache) | set(self._inflight):
            kind, as_of = key
            if kind not in kinds or not self._window_contains(kind, as_of, day):
                continue
            entry = self._inflight.get(key)
            if entry is not None:
                entry.generation += 1
            if self._cache.pop(key, None) is not None:
                dropped += 1
        if dropped:
            logger.debug(
                "baselines_invalidated",
                metric_type=metric_type.value,
                day=str(day),
                dropped=dropped,
            )
        return dropped

    def clear(self) -> None:
        for entry in self._inflight.values():
            entry.generation += 1
        self._cache.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cached(self, key: BaselineKey) -> Optional[BaselineOutcome]:
        outcome = self._cache.get(key)
        if outcome is not None:
            self._cache.move_to_end(key)
        return outcome

    def _remember(self, key: BaselineKey, outcome: BaselineOutcome) -> None:
        self._cache[key] = outcome
        self._cache.move_to_end(key)
        while len(self._cache) > self.config.cache_size:
            self._cache.popitem(last=False)

    def _window_contains(self, kind: BaselineKind, as_of: datetime.date, day: datetime.date) -> bool:
        first = as_of - datetime.timedelta(days=self.config.window_for(kind))
        if kind.is_circadian:
            # A sleep sample on ``day`` can belong to the session of wake
            # date ``day`` or ``day + 1``.
            return first - datetime.timedelta(days=1) <= day < as_of
        return first <= day < as_of

    def _unavailable(self, kind: BaselineKind, as_of: datetime.date, days: int, window: int) -> Unavailable:
        logger.info(
            "baseline_unavailable",
            kind=kind.value,
            as_of=str(as_of),
            days_with_data=days,
            min_days=self.config.min_days,
        )
        return Unavailable(
            reason=(
                f"Only {days} of the last {window} days have {kind.value.replace('_', ' ')} data "
                f"({self.config.min_days} needed)"
            ),
        )

    async def _compute_metric(self, kind: BaselineKind, as_of: datetime.date) -> BaselineOutcome:
        metric_type = _KIND_TO_METRIC[kind]
        window = self.config.window_for(kind)
        start = _midnight(as_of - datetime.timedelta(days=window))
        samples = await self.source.query(metric_type, start, _midnight(as_of))

        values = daily_values(metric_type, samples)
        if len(values) < self.config.min_days:
            return self._unavailable(kind, as_of, len(values), window)

        return Baseline(
            kind=kind,
            window_days=window,
            value=sum(values.values()) / len(values),
            sample_count=len(values),
            as_of=as_of,
            last_updated=datetime.datetime.now(),
        )

    async def _compute_anchor(self, kind: BaselineKind, as_of: datetime.date) -> BaselineOutcome:
        window = self.config.window_for(kind)
        first_wake = as_of - datetime.timedelta(days=window)
        last_wake = as_of - datetime.timedelta(days=1)
        start, _ = lookback_window(first_wake, self.detector_config)
        _, end = lookback_window(last_wake, self.detector_config)
        samples = await self.source.query(MetricType.SLEEP_STAGE, start, end)

        minutes: list[float] = []
        for offset in range(window):
            wake_date = first_wake + datetime.timedelta(days=offset)
            session = primary_session_from_samples(samples, wake_date, self.detector_config)
            if isinstance(session, NoSessionFound):
                continue
            ts = session.bedtime if kind == BaselineKind.BEDTIME else session.wake_time
            minutes.append(minutes_of_day(ts))

        if len(minutes) < self.config.min_days:
            return self._unavailable(kind, as_of, len(minutes), window)

        return Baseline(
            kind=kind,
            window_days=window,
            value=circular_mean_minutes(minutes),
            sample_count=len(minutes),
            as_of=as_of,
            last_updated=datetime.datetime.now(),
        )
