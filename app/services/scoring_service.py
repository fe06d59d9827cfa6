"""
Scoring service.

The one object consumers talk to.  It is constructed once at start-up
(see the FastAPI lifespan in :mod:`app.main`), owns the scoring core and
the recalculation controller, and is handed to request handlers by
reference.
"""

import datetime
from typing import Callable, Optional

from fastapi import HTTPException, status
from sqlalchemy.engine import Engine

from app.core.config import Settings
from app.core.logging import get_logger
from app.schemas.baseline import BaselineSetResponse
from app.schemas.events import ControllerStatus
from app.schemas.samples import Sample, SampleBatchResponse
from app.schemas.score import AvailableScore, NotYetAvailable, ScoreKind, ScoreRecord, ScoreResponse
from app.schemas.sleep_session import NoSessionFound
from app.scoring.baselines import BaselineConfig, BaselineEngine
from app.scoring.events import EventChannel
from app.scoring.metric_window import MetricWindowExtractor
from app.scoring.pipeline import ScorePipeline
from app.scoring.recalculation import RecalculationController, affected_wake_dates
from app.scoring.recovery_score import RecoveryScoreConfig, RecoveryScoreEngine
from app.scoring.session_detector import DetectorConfig, SleepSessionDetector
from app.scoring.sleep_score import SleepScoreConfig, SleepScoreEngine
from app.scoring.source import SampleSource, SqlSampleSource
from app.scoring.store import ScoreStore

logger = get_logger(__name__)

MAX_HISTORY_DAYS = 366


class ScoringService:
    """Facade over the scoring core."""

    def __init__(
        self,
        source: SampleSource,
        store: ScoreStore,
        detector_config: Optional[DetectorConfig] = None,
        baseline_config: Optional[BaselineConfig] = None,
        sleep_config: Optional[SleepScoreConfig] = None,
        recovery_config: Optional[RecoveryScoreConfig] = None,
        debounce_seconds: float = 2.0,
        queue_maxsize: int = 1000,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ):
        self.source = source
        self.store = store
        self.clock = clock
        self.detector_config = detector_config or DetectorConfig()

        self.baseline_engine = BaselineEngine(source, baseline_config, self.detector_config)
        self.pipeline = ScorePipeline(
            detector=SleepSessionDetector(source, self.detector_config),
            extractor=MetricWindowExtractor(source),
            baselines=self.baseline_engine,
            sleep_engine=SleepScoreEngine(sleep_config),
            recovery_engine=RecoveryScoreEngine(recovery_config),
            clock=clock,
        )
        self.events = EventChannel()
        self.controller = RecalculationController(
            pipeline=self.pipeline,
            store=store,
            baselines=self.baseline_engine,
            events=self.events,
            debounce_seconds=debounce_seconds,
            queue_maxsize=queue_maxsize,
            detector_config=self.detector_config,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, engine: Engine, settings: Settings) -> "ScoringService":
        """SQL-backed service configured from application settings."""
        return cls(
            source=SqlSampleSource(engine),
            store=ScoreStore(engine),
            debounce_seconds=settings.RECALC_DEBOUNCE_SECONDS,
            queue_maxsize=settings.RECALC_QUEUE_MAXSIZE,
        )

    def today(self) -> datetime.date:
        return self.clock().date()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.controller.start(self.source)

    async def stop(self) -> None:
        await self.controller.stop()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_score(self, date: datetime.date, kind: ScoreKind) -> ScoreResponse:
        """Stored score for *date*, computing it once if it is absent."""
        if date > self.today():
            return NotYetAvailable(date=date, kind=kind, reason="Date is in the future")

        record = await self.store.get(date, kind)
        if record is None:
            outcome = await self.controller.ensure(date)
            record = await self.store.get(date, kind)
            if record is None:
                reason = (
                    outcome.reason if isinstance(outcome, NoSessionFound)
                    else "Score has not been computed yet"
                )
                return NotYetAvailable(date=date, kind=kind, reason=reason)

        return AvailableScore(partial=record.partial, record=record)

    async def history(
        self, start: datetime.date, end: datetime.date, kind: Optional[ScoreKind] = None,
    ) -> list[ScoreRecord]:
        if end < start:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end must not be before start",
            )
        if (end - start).days >= MAX_HISTORY_DAYS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Range exceeds {MAX_HISTORY_DAYS} days",
            )
        return await self.store.list_range(start, end, kind)

    async def baselines(self, as_of: datetime.date) -> BaselineSetResponse:
        baseline_set = await self.baseline_engine.baseline_set(as_of)
        return BaselineSetResponse(
            as_of=as_of,
            calibrating=baseline_set.calibrating,
            baselines={
                name: getattr(baseline_set, name)
                for name in type(baseline_set).model_fields
                if name != "as_of"
            },
        )

    def status(self) -> ControllerStatus:
        return self.controller.status()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def ingest(self, samples: list[Sample]) -> SampleBatchResponse:
        """Store samples; every sample triggers a change notification."""
        accepted = await self.source.ingest(samples)
        today = self.today()
        dates = sorted({
            d for s in samples
            for d in affected_wake_dates(s.start, today, self.detector_config)
        })
        logger.info("sample_batch_accepted", accepted=accepted, dates=[str(d) for d in dates])
        return SampleBatchResponse(accepted=accepted, notified_dates=dates)

    async def recalculate(self, date: datetime.date) -> ControllerStatus:
        """Schedule an immediate recomputation of *date*."""
        if date > self.today():
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Cannot recalculate a future date",
            )
        self.controller.schedule(date, delay=0.0)
        logger.info("manual_recalculation_requested", date=str(date))
        return self.controller.status()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self):
        """Queue receiving every :class:`ScoreUpdated` from now on."""
        return self.events.subscribe()

    def unsubscribe(self, queue) -> None:
        self.events.unsubscribe(queue)

