"""
Raw sample database model.

Backs :class:`app.scoring.source.SqlSampleSource`, the sample store the
ingestion endpoint writes into.  Timestamps are naive local wall-clock
values, so the datetime columns are declared explicitly without a
timezone.
"""

import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class SampleRow(SQLModel, table=True):
    """A raw quantity or sleep-stage sample."""
    __tablename__ = "samples"

    id: Optional[int] = Field(default=None, primary_key=True)
    metric_type: str = Field(max_length=32, nullable=False, index=True)
    start: datetime.datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False, index=True))
    end: datetime.datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    value: Optional[float] = Field(default=None)
    stage: Optional[str] = Field(default=None, max_length=32)

    created_at: datetime.datetime = Field(
        default_factory=datetime.datetime.now,
        sa_column=Column(DateTime(timezone=False), nullable=False),
    )
