"""
Score record database model.

Defines the score_records table: one row per calendar day per score
kind (enforced by unique constraint).  Components, key findings and the
baseline snapshot are stored as JSON; timestamps are naive local time.
"""

import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class ScoreRecordRow(SQLModel, table=True):
    """Persisted daily score."""
    __tablename__ = "score_records"
    __table_args__ = (
        UniqueConstraint("date", "kind", name="uq_score_date_kind"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    date: datetime.date = Field(nullable=False, index=True)
    kind: str = Field(max_length=16, nullable=False)

    final_score: int = Field(nullable=False)
    components: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    directive: str = Field(default="")
    key_findings: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    baseline_snapshot: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    # Source sleep session reference
    session_start: datetime.datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    session_end: datetime.datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))

    computed_at: datetime.datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
