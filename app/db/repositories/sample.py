"""
Sample repository.

Handles database operations for SampleRow model.
"""

import datetime

from sqlmodel import Session, select

from app.models.sample import SampleRow


class SampleRepository:
    """Repository for SampleRow database operations."""

    def __init__(self, session: Session):
        self.session = session

    def create_many(self, rows: list[SampleRow]) -> int:
        try:
            self.session.add_all(rows)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return len(rows)

    def get_by_type_range(
        self, metric_type: str, start: datetime.datetime, end: datetime.datetime,
    ) -> list[SampleRow]:
        """Samples of one type whose start lies in ``[start, end)``, oldest first."""
        statement = (
            select(SampleRow)
            .where(
                SampleRow.metric_type == metric_type,
                SampleRow.start >= start,
                SampleRow.start < end,
            )
            .order_by(SampleRow.start)
        )
        return list(self.session.exec(statement).all())
