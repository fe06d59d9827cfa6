"""Database repositories."""

from app.db.repositories.sample import SampleRepository
from app.db.repositories.score_record import ScoreRecordRepository

__all__ = [
    "SampleRepository",
    "ScoreRecordRepository",
]
