"""
Scoring pipeline.

Runs the whole chain for one wake date:

    detect session -> (metrics || baselines) -> sleep score -> recovery score

and turns the results into two :class:`ScoreRecord` objects stamped with
the same ``computed_at``.  The pipeline does not read or write the score
store; persistence is the caller's job.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Callable, Optional, Union

from app.core.logging import get_logger
from app.schemas.baseline import BaselineSet
from app.schemas.score import (
    RecoveryScoreResult,
    ScoreKind,
    ScoreRecord,
    SleepScoreResult,
)
from app.schemas.sleep_session import NoSessionFound, SleepSession
from app.scoring.baselines import BaselineEngine
from app.scoring.metric_window import MetricWindowExtractor
from app.scoring.recovery_score import RecoveryScoreEngine
from app.scoring.session_detector import SleepSessionDetector
from app.scoring.sleep_score import SleepScoreEngine

logger = get_logger(__name__)

RecordPair = tuple[ScoreRecord, ScoreRecord]
PipelineOutcome = Union[RecordPair, NoSessionFound]


def _record(
    wake_date: datetime.date,
    kind: ScoreKind,
    result: Union[SleepScoreResult, RecoveryScoreResult],
    session: SleepSession,
    baselines: BaselineSet,
    computed_at: datetime.datetime,
) -> ScoreRecord:
    return ScoreRecord(
        date=wake_date,
        kind=kind,
        final_score=result.final_score,
        components=result.components,
        directive=result.directive,
        key_findings=getattr(result, "key_findings", []),
        baseline_snapshot=baselines.snapshot(),
        session_start=session.start,
        session_end=session.end,
        computed_at=computed_at,
    )


class ScorePipeline:
    """Computes both daily scores for a wake date."""

    def __init__(
        self,
        detector: SleepSessionDetector,
        extractor: MetricWindowExtractor,
        baselines: BaselineEngine,
        sleep_engine: Optional[SleepScoreEngine] = None,
        recovery_engine: Optional[RecoveryScoreEngine] = None,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ):
        self.detector = detector
        self.extractor = extractor
        self.baselines = baselines
        self.sleep_engine = sleep_engine or SleepScoreEngine()
        self.recovery_engine = recovery_engine or RecoveryScoreEngine()
        self.clock = clock

    async def compute(self, wake_date: datetime.date) -> PipelineOutcome:
        session = await self.detector.detect_primary_session(wake_date)
        if isinstance(session, NoSessionFound):
            return session

        metrics, baseline_set = await asyncio.gather(
            self.extractor.extract_night(session, wake_date),
            self.baselines.baseline_set(wake_date),
        )

        sleep = self.sleep_engine.score(session, baseline_set)
        recovery = self.recovery_engine.score(session, metrics, baseline_set, sleep.final_score)

        computed_at = self.clock()
        logger.info(
            "scores_computed",
            wake_date=str(wake_date),
            sleep=sleep.final_score,
            recovery=recovery.final_score,
            calibrating=baseline_set.calibrating,
            metric_gaps=metrics.has_gaps,
        )
        return (
            _record(wake_date, ScoreKind.SLEEP, sleep, session, baseline_set, computed_at),
            _record(wake_date, ScoreKind.RECOVERY, recovery, session, baseline_set, computed_at),
        )
