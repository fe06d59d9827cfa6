"""
Sample sources.

The scoring core consumes samples through :class:`SampleSource`:

- ``query(metric_type, start, end)`` returns the samples of one type
  whose start lies in ``[start, end)``, ordered by start;
- listeners registered with ``add_listener`` are called with
  ``(metric_type, timestamp)`` whenever new samples become visible.

Retry/backoff for the underlying platform belongs to the source, not to
the scoring core.
"""

from __future__ import annotations

import asyncio
import bisect
import datetime
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Iterable

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.errors import PersistenceError
from app.core.logging import get_logger
from app.db.repositories.sample import SampleRepository
from app.models.sample import SampleRow
from app.schemas.samples import MetricType, Sample, SleepStage

logger = get_logger(__name__)

SampleListener = Callable[[MetricType, datetime.datetime], None]


class SampleSource(ABC):
    """Abstract query + change-notification interface."""

    def __init__(self) -> None:
        self._listeners: list[SampleListener] = []

    @abstractmethod
    async def query(
        self,
        metric_type: MetricType,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> list[Sample]:
        """Samples of *metric_type* starting in ``[start, end)``."""
        ...

    def add_listener(self, listener: SampleListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SampleListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def ingest(self, samples: list[Sample]) -> int:
        """Make *samples* queryable and notify listeners."""
        raise NotImplementedError(f"{type(self).__name__} is read-only")

    def _notify(self, samples: Iterable[Sample]) -> None:
        for sample in samples:
            for listener in list(self._listeners):
                listener(sample.metric_type, sample.start)


class InMemorySampleSource(SampleSource):
    """Dictionary-backed source, used by the simulation script and tests."""

    def __init__(self, samples: Iterable[Sample] = ()) -> None:
        super().__init__()
        self._by_type: dict[MetricType, list[Sample]] = defaultdict(list)
        self.query_count = 0
        self._insert(samples)

    def _insert(self, samples: Iterable[Sample]) -> list[Sample]:
        added = list(samples)
        for s in added:
            bucket = self._by_type[s.metric_type]
            keys = [x.start for x in bucket]
            bucket.insert(bisect.bisect_right(keys, s.start), s)
        return added

    def add(self, *samples: Sample, notify: bool = True) -> None:
        """Store samples and, by default, notify listeners."""
        added = self._insert(samples)
        if notify:
            self._notify(added)

    async def ingest(self, samples: list[Sample]) -> int:
        self.add(*samples)
        return len(samples)

    async def query(
        self,
        metric_type: MetricType,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> list[Sample]:
        self.query_count += 1
        await asyncio.sleep(0)
        return [s for s in self._by_type.get(metric_type, []) if start <= s.start < end]


class SqlSampleSource(SampleSource):
    """Source backed by the ``samples`` table.

    Database calls are blocking, so each runs in a worker thread with
    its own session; concurrent queries never share a session.
    """

    def __init__(self, engine: Engine) -> None:
        super().__init__()
        self.engine = engine

    def _query_sync(
        self, metric_type: MetricType, start: datetime.datetime, end: datetime.datetime,
    ) -> list[Sample]:
        with Session(self.engine) as session:
            rows = SampleRepository(session).get_by_type_range(metric_type.value, start, end)
            return [_row_to_sample(r) for r in rows]

    async def query(
        self,
        metric_type: MetricType,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> list[Sample]:
        try:
            return await asyncio.to_thread(self._query_sync, metric_type, start, end)
        except SQLAlchemyError as e:
            logger.error("sample_query_failed", metric_type=metric_type.value, exc_info=True)
            raise PersistenceError("sample query", str(e)) from e

    def _ingest_sync(self, samples: list[Sample]) -> int:
        rows = [
            SampleRow(
                metric_type=s.metric_type.value,
                start=s.start,
                end=s.end,
                value=s.value,
                stage=s.stage.value if s.stage else None,
            )
            for s in samples
        ]
        with Session(self.engine) as session:
            return SampleRepository(session).create_many(rows)

    async def ingest(self, samples: list[Sample]) -> int:
        """Persist samples, then notify listeners once they are queryable."""
        try:
            count = await asyncio.to_thread(self._ingest_sync, samples)
        except SQLAlchemyError as e:
            logger.error("sample_ingest_failed", count=len(samples), exc_info=True)
            raise PersistenceError("sample ingest", str(e)) from e
        logger.info("samples_ingested", count=count)
        self._notify(samples)
        return count


def _row_to_sample(row: SampleRow) -> Sample:
    return Sample(
        metric_type=MetricType(row.metric_type),
        start=row.start,
        end=row.end,
        value=row.value,
        stage=SleepStage(row.stage) if row.stage else None,
    )
