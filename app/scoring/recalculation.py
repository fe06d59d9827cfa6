"""
Reactive recalculation of stored scores.

State machine, per wake date::

    IDLE --notify--> PENDING --debounce--> RECALCULATING --> IDLE
                        ^                        |
                        +---- dirty (once) ------+

Model
-----
Sample notifications arrive on an ``asyncio.Queue`` and are consumed by
a background task.  Each notification is mapped to the wake dates it can
affect:

- the sample's own day ``D`` (its session window ends at noon ``D`` and
  ``D`` is the same-day fallback day);
- ``D + 1`` (a sample at or after noon belongs to the next night's
  session, and ``D`` enters the baseline window of ``D + 1``);

dates after today are dropped.  Cached baselines whose window contains
``D`` are dropped immediately.

Single flight
-------------
At most one task exists per date.  A notification for a date that is

- ``PENDING``: coalesces into the scheduled run;
- ``RECALCULATING``: marks the date dirty; exactly one more pass runs
  after the current one, which then sees every sample seen so far.

Lazy reads of an absent record join the same per-date task (without
marking it dirty), so a first computation and a notification-driven
recompute never overlap.
Consumers await the task through ``asyncio.shield``: a consumer that
goes away does not cancel the persistence of the result.

Failures
--------
:class:`PersistenceError` ends the run, returns the date to ``IDLE`` and
leaves it dirty; the next notification or read retries.  Awaiting
consumers receive the error.  A run replaces the stored records only
after the pipeline has produced new ones, so a failed run leaves the
previous scores in place.
"""

from __future__ import annotations

import asyncio
import datetime
import threading
from typing import Callable, Optional

from app.core.errors import PersistenceError
from app.core.logging import get_logger
from app.schemas.events import ControllerStatus, RecalcState, SampleArrived, ScoreUpdated
from app.schemas.samples import MetricType
from app.schemas.score import ScoreKind, ScoreRecord
from app.schemas.sleep_session import NoSessionFound
from app.scoring.baselines import BaselineEngine
from app.scoring.events import EventChannel
from app.scoring.pipeline import ScorePipeline
from app.scoring.session_detector import DEFAULT_DETECTOR_CONFIG, DetectorConfig, wake_date_for
from app.scoring.source import SampleSource
from app.scoring.store import ScoreStore

logger = get_logger(__name__)

RunOutcome = Optional[NoSessionFound]


def affected_wake_dates(
    timestamp: datetime.datetime,
    today: datetime.date,
    config: DetectorConfig = DEFAULT_DETECTOR_CONFIG,
) -> list[datetime.date]:
    """Wake dates whose scores a sample at *timestamp* can change."""
    day = timestamp.date()
    dates = {day, wake_date_for(timestamp, config), day + datetime.timedelta(days=1)}
    return sorted(d for d in dates if d <= today)


def _same_content(old: Optional[ScoreRecord], new: ScoreRecord) -> bool:
    if old is None:
        return False
    return (
        old.final_score == new.final_score
        and old.components == new.components
        and old.session_start == new.session_start
        and old.session_end == new.session_end
    )


class RecalculationController:
    """Keeps stored scores in step with late-arriving samples."""

    def __init__(
        self,
        pipeline: ScorePipeline,
        store: ScoreStore,
        baselines: BaselineEngine,
        events: Optional[EventChannel] = None,
        debounce_seconds: float = 2.0,
        queue_maxsize: int = 1000,
        detector_config: Optional[DetectorConfig] = None,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ):
        self.pipeline = pipeline
        self.store = store
        self.baselines = baselines
        self.events = events or EventChannel()
        self.debounce_seconds = debounce_seconds
        self.detector_config = detector_config or DEFAULT_DETECTOR_CONFIG
        self.clock = clock

        self._queue: asyncio.Queue[SampleArrived] = asyncio.Queue(maxsize=queue_maxsize)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._consumer: Optional[asyncio.Task] = None
        self._source: Optional[SampleSource] = None

        self._states: dict[datetime.date, RecalcState] = {}
        self._tasks: dict[datetime.date, asyncio.Task] = {}
        self._dirty: set[datetime.date] = set()
        self._last_notification_at: Optional[datetime.datetime] = None
        self._completed_runs = 0
        self._failed_runs = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, source: Optional[SampleSource] = None) -> None:
        """Start consuming notifications; subscribe to *source* if given."""
        if self._consumer is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._consumer = asyncio.create_task(self._consume())
        if source is not None:
            source.add_listener(self.notify)
            self._source = source
        logger.info("recalculation_controller_started", debounce_seconds=self.debounce_seconds)

    async def stop(self) -> None:
        """Stop consuming; in-flight recalculations run to completion."""
        if self._source is not None:
            self._source.remove_listener(self.notify)
            self._source = None
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        logger.info("recalculation_controller_stopped")

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    # ------------------------------------------------------------------
    # Notification intake
    # ------------------------------------------------------------------

    def notify(self, metric_type: MetricType, timestamp: datetime.datetime) -> None:
        """Sample-source listener; safe to call from any thread."""
        event = SampleArrived(metric_type=metric_type, timestamp=timestamp)
        if self._loop is not None and threading.get_ident() != self._loop_thread:
            self._loop.call_soon_threadsafe(self._enqueue, event)
        else:
            self._enqueue(event)

    def _enqueue(self, event: SampleArrived) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            # Intake is only sync bookkeeping, so handle it in place.
            logger.warning("notification_queue_full", metric_type=event.metric_type.value)
            self.handle(event)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self.handle(event)
            finally:
                self._queue.task_done()

    def handle(self, event: SampleArrived) -> list[datetime.date]:
        """Invalidate baselines and schedule every affected date."""
        self._last_notification_at = self.clock()
        self.baselines.invalidate(event.metric_type, event.timestamp.date())
        dates = affected_wake_dates(event.timestamp, self.clock().date(), self.detector_config)
        for date in dates:
            self.schedule(date)
        return dates

    # ------------------------------------------------------------------
    # Single-flight scheduling
    # ------------------------------------------------------------------

    def schedule(self, date: datetime.date, delay: Optional[float] = None) -> asyncio.Task:
        """Ensure a run for *date* is scheduled or in flight; return its task."""
        state = self._states.get(date, RecalcState.IDLE)
        if state == RecalcState.RECALCULATING:
            self._dirty.add(date)
            logger.debug("recalculation_coalesced", date=str(date), state=state.value)
            return self._tasks[date]
        if state == RecalcState.PENDING:
            logger.debug("recalculation_coalesced", date=str(date), state=state.value)
            return self._tasks[date]

        wait = self.debounce_seconds if delay is None else delay
        self._states[date] = RecalcState.PENDING
        task = asyncio.get_running_loop().create_task(self._run(date, wait))
        self._tasks[date] = task
        task.add_done_callback(self._task_done)
        return task

    async def ensure(self, date: datetime.date) -> RunOutcome:
        """Run (or join) the computation for *date* and wait for it.

        Joining an in-flight run never marks the date dirty: a read only
        needs a record, not a newer one.  Cancelling the caller does not
        cancel the computation.
        """
        task = self._tasks.get(date)
        if task is None:
            task = self.schedule(date, delay=0.0)
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Wait until the queue is drained and no date is scheduled."""
        await self._queue.join()
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    @staticmethod
    def _task_done(task: asyncio.Task) -> None:
        # Failures were logged in _run; retrieving them here keeps
        # unawaited background runs quiet.
        if not task.cancelled():
            task.exception()

    async def _run(self, date: datetime.date, delay: float) -> RunOutcome:
        outcome: RunOutcome = None
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            while True:
                self._states[date] = RecalcState.RECALCULATING
                self._dirty.discard(date)
                try:
                    outcome = await self._recompute(date)
                except PersistenceError as e:
                    self._failed_runs += 1
                    self._dirty.add(date)
                    logger.error("recalculation_failed", date=str(date), operation=e.operation)
                    raise
                self._completed_runs += 1
                if date not in self._dirty:
                    return outcome
                logger.info("recalculation_repeat", date=str(date))
        finally:
            self._states.pop(date, None)
            self._tasks.pop(date, None)

    async def _recompute(self, date: datetime.date) -> RunOutcome:
        previous = {
            kind: await self.store.get(date, kind) for kind in ScoreKind
        }

        # Stored records stay readable until the replacement is written.
        outcome = await self.pipeline.compute(date)
        if isinstance(outcome, NoSessionFound):
            logger.info("recalculation_no_session", date=str(date), reason=outcome.reason)
            for kind, old in previous.items():
                if old is not None:
                    await self.store.invalidate(date, kind)
            return outcome

        await self.store.put_many(list(outcome))
        for record in outcome:
            old = previous[record.kind]
            self.events.publish(ScoreUpdated(
                date=date,
                kind=record.kind,
                final_score=record.final_score,
                previous_score=old.final_score if old is not None else None,
                changed=not _same_content(old, record),
            ))
        return None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def state_of(self, date: datetime.date) -> RecalcState:
        return self._states.get(date, RecalcState.IDLE)

    def status(self) -> ControllerStatus:
        return ControllerStatus(
            running=self.running,
            states=dict(self._states),
            dirty=sorted(self._dirty),
            last_notification_at=self._last_notification_at,
            completed_runs=self._completed_runs,
            failed_runs=self._failed_runs,
        )
