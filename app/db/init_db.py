"""
Database initialization.

Creates all tables.  Production deployments use the Alembic migrations
instead; this is for local development and the simulation script.
"""

from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from app.core.logging import get_logger

logger = get_logger(__name__)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create every table registered on ``SQLModel.metadata``."""
    import app.db.base  # noqa: F401  (registers the models)

    if bind is None:
        from app.db.session import engine as bind

    logger.info("creating_tables", url=bind.url.render_as_string(hide_password=True))
    SQLModel.metadata.create_all(bind)
    logger.info("tables_created", tables=sorted(SQLModel.metadata.tables))


if __name__ == "__main__":
    from app.core.logging import configure_logging

    configure_logging()
    init_db()
