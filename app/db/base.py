"""
Base database configuration.

Import all models here so Alembic can detect them for migrations.
"""

# Import all models for Alembic autogenerate
from app.models.sample import SampleRow  # noqa: F401
from app.models.score_record import ScoreRecordRow  # noqa: F401
