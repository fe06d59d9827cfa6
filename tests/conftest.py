"""
Shared fixtures: SQLite-backed stores, an in-memory sample source and a
fully wired scoring service with a frozen clock.
"""

import pytest
from sqlmodel import SQLModel

import app.db.base  # noqa: F401  (registers the tables)
from app.db.session import build_engine
from app.scoring.source import InMemorySampleSource
from app.scoring.store import ScoreStore
from app.services.scoring_service import ScoringService
from sample_factory import NOW


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'scores.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return ScoreStore(engine)


@pytest.fixture
def source():
    return InMemorySampleSource()


@pytest.fixture
def service(source, store):
    return ScoringService(source, store, debounce_seconds=0.0, clock=lambda: NOW)
