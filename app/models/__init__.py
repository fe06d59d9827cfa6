"""SQLModel database models."""

from app.models.sample import SampleRow
from app.models.score_record import ScoreRecordRow

__all__ = [
    "SampleRow",
    "ScoreRecordRow",
]
