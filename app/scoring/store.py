"""
Score store.

Compute once per day, serve from storage thereafter: once a record
exists for ``(date, kind)`` reads return it unchanged until it is
explicitly invalidated or replaced.  Staleness is the contract here, not
a cache bug.

Writes replace the whole row in one transaction, so a reader never sees
a record that mixes old and new components.  Writes to one key are
serialised by a per-key ``asyncio.Lock`` that lives only while a writer
holds or waits for it; blocking database calls run
in a worker thread with their own session.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime
from typing import AsyncIterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.errors import PersistenceError
from app.core.logging import get_logger
from app.db.repositories.score_record import ScoreRecordRepository
from app.models.score_record import ScoreRecordRow
from app.schemas.score import ScoreKind, ScoreRecord

logger = get_logger(__name__)

StoreKey = tuple[datetime.date, ScoreKind]


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


def record_to_row(record: ScoreRecord) -> ScoreRecordRow:
    data = record.model_dump(mode="json")
    return ScoreRecordRow(
        date=record.date,
        kind=record.kind.value,
        final_score=record.final_score,
        components=data["components"],
        directive=record.directive,
        key_findings=data["key_findings"],
        baseline_snapshot=data["baseline_snapshot"],
        session_start=record.session_start,
        session_end=record.session_end,
        computed_at=record.computed_at,
    )


def row_to_record(row: ScoreRecordRow) -> ScoreRecord:
    return ScoreRecord(
        date=row.date,
        kind=ScoreKind(row.kind),
        final_score=row.final_score,
        components=row.components,
        directive=row.directive,
        key_findings=row.key_findings,
        baseline_snapshot=row.baseline_snapshot,
        session_start=row.session_start,
        session_end=row.session_end,
        computed_at=row.computed_at,
    )


class ScoreStore:
    """Async facade over the ``score_records`` table."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._locks: dict[StoreKey, _KeyLock] = {}

    async def _run(self, operation: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error("persistence_failed", operation=operation, exc_info=True)
            raise PersistenceError(operation, str(e)) from e

    @contextlib.asynccontextmanager
    async def _locked(self, *keys: StoreKey) -> AsyncIterator[None]:
        """Hold the write locks for *keys*, taken in a fixed order."""
        ordered = sorted(set(keys), key=lambda k: (k[0], k[1].value))
        entries = []
        for key in ordered:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
            entries.append((key, entry))
        held = []
        try:
            for key, entry in entries:
                await entry.lock.acquire()
                held.append(entry)
            yield
        finally:
            for entry in reversed(held):
                entry.lock.release()
            for key, entry in entries:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get_sync(self, date: datetime.date, kind: ScoreKind) -> Optional[ScoreRecord]:
        with Session(self.engine) as session:
            row = ScoreRecordRepository(session).get_by_date_and_kind(date, kind.value)
            return row_to_record(row) if row is not None else None

    async def get(self, date: datetime.date, kind: ScoreKind) -> Optional[ScoreRecord]:
        """Stored record for ``(date, kind)``, or ``None`` when absent."""
        return await self._run("score read", self._get_sync, date, kind)

    def _list_sync(
        self, start: datetime.date, end: datetime.date, kind: Optional[ScoreKind],
    ) -> list[ScoreRecord]:
        with Session(self.engine) as session:
            rows = ScoreRecordRepository(session).get_by_date_range(
                start, end, kind.value if kind is not None else None,
            )
            return [row_to_record(r) for r in rows]

    async def list_range(
        self,
        start: datetime.date,
        end: datetime.date,
        kind: Optional[ScoreKind] = None,
    ) -> list[ScoreRecord]:
        """Stored records with ``start <= date <= end``, oldest first."""
        return await self._run("score history read", self._list_sync, start, end, kind)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _put_sync(self, records: list[ScoreRecord]) -> None:
        with Session(self.engine) as session:
            ScoreRecordRepository(session).replace_all([record_to_row(r) for r in records])

    async def put(self, record: ScoreRecord) -> None:
        """Atomically insert or replace the record for its ``(date, kind)``."""
        await self.put_many([record])

    async def put_many(self, records: list[ScoreRecord]) -> None:
        """Replace several records in one transaction."""
        keys = [(r.date, r.kind) for r in records]
        async with self._locked(*keys):
            await self._run("score write", self._put_sync, records)
        for r in records:
            logger.info("score_persisted", date=str(r.date), kind=r.kind.value, final_score=r.final_score)

    def _delete_sync(self, date: datetime.date, kind: ScoreKind) -> bool:
        with Session(self.engine) as session:
            return ScoreRecordRepository(session).delete_by_date_and_kind(date, kind.value)

    async def invalidate(self, date: datetime.date, kind: ScoreKind) -> bool:
        """Delete the stored record; returns whether one existed."""
        async with self._locked((date, kind)):
            deleted = await self._run("score invalidate", self._delete_sync, date, kind)
        if deleted:
            logger.info("score_invalidated", date=str(date), kind=kind.value)
        return deleted
