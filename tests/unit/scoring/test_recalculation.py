"""
Unit tests for reactive recalculation: affected dates, single flight,
the dirty-flag second pass, events and failure handling.
"""

import asyncio
import datetime

import pytest

from app.core.errors import PersistenceError
from app.schemas.events import RecalcState
from app.schemas.samples import MetricType
from app.schemas.score import ScoreKind
from app.schemas.sleep_session import NoSessionFound
from app.scoring.baselines import BaselineEngine
from app.scoring.metric_window import MetricWindowExtractor
from app.scoring.pipeline import ScorePipeline
from app.scoring.recalculation import RecalculationController, affected_wake_dates
from app.scoring.session_detector import SleepSessionDetector
from app.scoring.source import InMemorySampleSource
from app.scoring.store import ScoreStore
from sample_factory import NOW, TODAY, at, history, night_physiology, score_record

DAY = datetime.date(2026, 3, 15)
NEXT = DAY + datetime.timedelta(days=1)


class FakePipeline:
    """Counts calls and overlap; optionally holds each run until released."""

    def __init__(self, gated: bool = False, vary: bool = True):
        self.calls = 0
        self.fail = False
        self.no_session = False
        self.active = 0
        self.max_active = 0
        self.vary = vary
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        if not gated:
            self.release.set()

    async def compute(self, date):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.entered.set()
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        if self.fail:
            raise PersistenceError("sample query", "database is locked")
        if self.no_session:
            return NoSessionFound(wake_date=date, reason="No sleep samples recorded yet")
        bump = self.calls if self.vary else 0
        return (
            score_record(date, ScoreKind.SLEEP, 70 + bump),
            score_record(date, ScoreKind.RECOVERY, 60 + bump),
        )


class FailingStore(ScoreStore):

    async def put_many(self, records):
        raise PersistenceError("score write", "disk full")


def _controller(pipeline, store, debounce=0.0):
    return RecalculationController(
        pipeline,
        store,
        BaselineEngine(InMemorySampleSource()),
        debounce_seconds=debounce,
        clock=lambda: NOW,
    )


def _real_controller(source, store):
    pipeline = ScorePipeline(
        SleepSessionDetector(source),
        MetricWindowExtractor(source),
        BaselineEngine(source),
        clock=lambda: NOW,
    )
    return RecalculationController(pipeline, store, pipeline.baselines, debounce_seconds=0.0, clock=lambda: NOW)


# ======================================================================
# Affected dates
# ======================================================================


class TestAffectedWakeDates:

    def test_overnight_sample(self):
        assert affected_wake_dates(at(DAY, 3), TODAY) == [DAY, NEXT]

    def test_evening_sample(self):
        assert affected_wake_dates(at(DAY, 22), TODAY) == [DAY, NEXT]

    def test_future_dates_are_dropped(self):
        assert affected_wake_dates(at(TODAY, 14), TODAY) == [TODAY]


# ======================================================================
# Scheduling
# ======================================================================


class TestSingleFlight:

    def test_concurrent_requests_share_one_run(self, store):
        async def scenario():
            pipeline = FakePipeline()
            controller = _controller(pipeline, store)
            tasks = [controller.schedule(DAY) for _ in range(5)]
            await asyncio.gather(*tasks)
            return pipeline, tasks

        pipeline, tasks = asyncio.run(scenario())
        assert pipeline.calls == 1
        assert all(t is tasks[0] for t in tasks)

    def test_pending_notifications_coalesce(self, store):
        async def scenario():
            pipeline = FakePipeline()
            controller = _controller(pipeline, store, debounce=0.05)
            task = controller.schedule(DAY)
            assert controller.state_of(DAY) == RecalcState.PENDING
            for _ in range(3):
                controller.schedule(DAY)
            await task
            return pipeline, controller

        pipeline, controller = asyncio.run(scenario())
        assert pipeline.calls == 1
        assert controller.state_of(DAY) == RecalcState.IDLE

    def test_notification_during_run_triggers_exactly_one_more_pass(self, store):
        async def scenario():
            pipeline = FakePipeline(gated=True)
            controller = _controller(pipeline, store)
            task = controller.schedule(DAY, delay=0.0)
            await pipeline.entered.wait()
            assert controller.state_of(DAY) == RecalcState.RECALCULATING
            for _ in range(3):
                assert controller.schedule(DAY) is task
            assert DAY in controller.status().dirty
            pipeline.release.set()
            await task
            return pipeline, controller

        pipeline, controller = asyncio.run(scenario())
        assert pipeline.calls == 2
        assert pipeline.max_active == 1
        status = controller.status()
        assert status.completed_runs == 2
        assert status.dirty == []
        assert status.states == {}

    def test_reader_joins_a_running_pass_without_repeating_it(self, store):
        async def scenario():
            pipeline = FakePipeline(gated=True)
            controller = _controller(pipeline, store)
            controller.schedule(DAY, delay=0.0)
            await pipeline.entered.wait()
            reader = asyncio.create_task(controller.ensure(DAY))
            await asyncio.sleep(0)
            dirty = list(controller.status().dirty)
            pipeline.release.set()
            await reader
            return pipeline, dirty

        pipeline, dirty = asyncio.run(scenario())
        assert dirty == []
        assert pipeline.calls == 1

    def test_dates_run_independently(self, store):
        async def scenario():
            pipeline = FakePipeline()
            controller = _controller(pipeline, store)
            await asyncio.gather(controller.schedule(DAY), controller.schedule(NEXT))
            return pipeline

        assert asyncio.run(scenario()).calls == 2


# ======================================================================
# Recompute results
# ======================================================================


class TestRecompute:

    def test_ensure_persists_both_records(self, store):
        async def scenario():
            controller = _controller(FakePipeline(), store)
            outcome = await controller.ensure(DAY)
            return outcome, await store.list_range(DAY, DAY)

        outcome, records = asyncio.run(scenario())
        assert outcome is None
        assert {r.kind for r in records} == {ScoreKind.SLEEP, ScoreKind.RECOVERY}

    def test_no_session_writes_nothing(self, store):
        async def scenario():
            controller = _real_controller(InMemorySampleSource(), store)
            outcome = await controller.ensure(DAY)
            return outcome, await store.list_range(DAY, DAY)

        outcome, records = asyncio.run(scenario())
        assert isinstance(outcome, NoSessionFound)
        assert records == []

    def test_events_report_previous_score(self, store):
        async def scenario():
            controller = _controller(FakePipeline(), store)
            queue = controller.events.subscribe()
            await controller.ensure(DAY)
            await controller.ensure(DAY)
            return [queue.get_nowait() for _ in range(queue.qsize())]

        events = asyncio.run(scenario())
        assert len(events) == 4
        first_sleep, second_sleep = [e for e in events if e.kind == ScoreKind.SLEEP]
        assert first_sleep.previous_score is None
        assert first_sleep.changed is True
        assert second_sleep.previous_score == 71
        assert second_sleep.final_score == 72

    def test_unchanged_content_is_flagged(self, store):
        async def scenario():
            controller = _controller(FakePipeline(vary=False), store)
            queue = controller.events.subscribe()
            await controller.ensure(DAY)
            await controller.ensure(DAY)
            return [queue.get_nowait() for _ in range(queue.qsize())]

        events = asyncio.run(scenario())
        assert [e.changed for e in events] == [True, True, False, False]

    def test_persistence_failure_leaves_date_dirty(self, engine):
        async def scenario():
            controller = _controller(FakePipeline(), FailingStore(engine))
            with pytest.raises(PersistenceError):
                await controller.ensure(DAY)
            return controller

        controller = asyncio.run(scenario())
        status = controller.status()
        assert status.failed_runs == 1
        assert status.dirty == [DAY]
        assert controller.state_of(DAY) == RecalcState.IDLE

    def test_failed_recompute_keeps_the_stored_records(self, store):
        async def scenario():
            pipeline = FakePipeline()
            controller = _controller(pipeline, store)
            await controller.ensure(DAY)
            before = await store.list_range(DAY, DAY)
            pipeline.fail = True
            with pytest.raises(PersistenceError):
                await controller.schedule(DAY, delay=0.0)
            return controller, before, await store.list_range(DAY, DAY)

        controller, before, after = asyncio.run(scenario())
        assert len(before) == 2
        assert after == before
        assert controller.status().dirty == [DAY]

    def test_vanished_session_clears_the_stored_records(self, store):
        async def scenario():
            pipeline = FakePipeline()
            controller = _controller(pipeline, store)
            await controller.ensure(DAY)
            pipeline.no_session = True
            outcome = await controller.ensure(DAY)
            return outcome, await store.list_range(DAY, DAY)

        outcome, records = asyncio.run(scenario())
        assert isinstance(outcome, NoSessionFound)
        assert records == []


# ======================================================================
# Notification intake
# ======================================================================


class TestNotifications:

    def test_start_and_stop(self, store):
        async def scenario():
            controller = _controller(FakePipeline(), store)
            before = controller.running
            await controller.start()
            during = controller.running
            await controller.stop()
            return before, during, controller.running

        assert asyncio.run(scenario()) == (False, True, False)

    def test_notification_from_another_thread(self, store):
        async def scenario():
            pipeline = FakePipeline()
            controller = _controller(pipeline, store)
            await controller.start()
            await asyncio.to_thread(controller.notify, MetricType.HRV, at(DAY, 2))
            await controller.wait_idle()
            await controller.stop()
            return pipeline, controller

        pipeline, controller = asyncio.run(scenario())
        assert pipeline.calls == 2  # DAY and DAY + 1
        assert controller.status().last_notification_at == NOW

    def test_late_sample_replaces_the_stored_record(self, store):
        source = InMemorySampleSource(history(DAY, 10))

        async def scenario():
            controller = _real_controller(source, store)
            await controller.start(source)
            await controller.ensure(DAY)
            before = await store.get(DAY, ScoreKind.RECOVERY)
            queue = controller.events.subscribe()

            source.add(*night_physiology(DAY, hrv=90.0, rhr=None, respiratory=None, spo2=None, walking=None))
            await controller.wait_idle()
            await controller.stop()

            after = await store.get(DAY, ScoreKind.RECOVERY)
            events = [queue.get_nowait() for _ in range(queue.qsize())]
            return before, after, events

        before, after, events = asyncio.run(scenario())
        hrv_before = next(c for c in before.components if c.name == "hrv")
        hrv_after = next(c for c in after.components if c.name == "hrv")
        assert hrv_after.score > hrv_before.score
        assert after.final_score >= before.final_score
        assert any(e.kind == ScoreKind.RECOVERY and e.date == DAY and e.changed for e in events)
