"""
Score record repository.

Handles database operations for ScoreRecordRow model.
"""

import datetime
from typing import Optional

from sqlmodel import Session, select

from app.models.score_record import ScoreRecordRow


class ScoreRecordRepository:
    """Repository for ScoreRecordRow database operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_date_and_kind(
        self, date: datetime.date, kind: str,
    ) -> Optional[ScoreRecordRow]:
        """Get the single record for a date and score kind."""
        statement = select(ScoreRecordRow).where(
            ScoreRecordRow.date == date,
            ScoreRecordRow.kind == kind,
        )
        return self.session.exec(statement).first()

    def get_by_date_range(
        self, start: datetime.date, end: datetime.date, kind: Optional[str] = None,
    ) -> list[ScoreRecordRow]:
        """Get records within a date range (inclusive), oldest first."""
        statement = select(ScoreRecordRow).where(
            ScoreRecordRow.date >= start,
            ScoreRecordRow.date <= end,
        )
        if kind is not None:
            statement = statement.where(ScoreRecordRow.kind == kind)
        statement = statement.order_by(ScoreRecordRow.date, ScoreRecordRow.kind)
        return list(self.session.exec(statement).all())

    def _stage(self, row: ScoreRecordRow) -> ScoreRecordRow:
        existing = self.get_by_date_and_kind(row.date, row.kind)
        if existing is None:
            target = row
        else:
            target = existing
            target.final_score = row.final_score
            target.components = row.components
            target.directive = row.directive
            target.key_findings = row.key_findings
            target.baseline_snapshot = row.baseline_snapshot
            target.session_start = row.session_start
            target.session_end = row.session_end
            target.computed_at = row.computed_at
        self.session.add(target)
        return target

    def replace(self, row: ScoreRecordRow) -> ScoreRecordRow:
        """Insert *row*, or overwrite every column of the existing row for
        the same (date, kind), in a single transaction."""
        return self.replace_all([row])[0]

    def replace_all(self, rows: list[ScoreRecordRow]) -> list[ScoreRecordRow]:
        """Replace several records in one transaction (all or nothing)."""
        try:
            targets = [self._stage(row) for row in rows]
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        for target in targets:
            self.session.refresh(target)
        return targets

    def delete_by_date_and_kind(self, date: datetime.date, kind: str) -> bool:
        row = self.get_by_date_and_kind(date, kind)
        if row is None:
            return False
        try:
            self.session.delete(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return True
