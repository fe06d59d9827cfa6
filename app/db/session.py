"""
Database session management.

Provides the SQLModel engine.
"""

from sqlalchemy.engine import Engine
from sqlmodel import create_engine

from app.core.config import settings


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections are shared with worker threads."""
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,   # Verify connections before using
        pool_size=5,          # Connection pool size
        max_overflow=10,      # Max connections beyond pool_size
    )


DATABASE_URL: str = settings.database_url

engine = build_engine(DATABASE_URL, echo=settings.DEBUG)
