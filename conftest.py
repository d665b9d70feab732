"""Shared fixtures: throwaway SQLite stores standing in for primary and archive."""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from viandas.db import ensure_schema, make_session_factory


def _sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ensure_schema(engine)
    return engine


@pytest.fixture
def primary_engine():
    engine = _sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def archive_engine():
    engine = _sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def primary_sessions(primary_engine):
    return make_session_factory(primary_engine)


@pytest.fixture
def archive_sessions(archive_engine):
    return make_session_factory(archive_engine)
