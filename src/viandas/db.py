"""Engines and session factories for the primary and archive stores.

The primary store is the live database shared with the web application; the
archive store is a physically separate database written only by the archival
engine. Both use the same schema (`Base.metadata`).
"""

from __future__ import annotations

import logging
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def normalize_database_url(url: str) -> str:
    """Force the psycopg2 driver for plain postgres URLs."""
    if "psycopg://" in url:
        return url.replace("psycopg://", "psycopg2://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg2://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


def make_engine(url: str) -> Engine:
    return create_engine(normalize_database_url(url), pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    # expire_on_commit=False: archived rows are read after commit for logging/stats
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@lru_cache(maxsize=None)
def get_engine(url: str) -> Engine:
    """One pooled engine per database URL, shared by the whole process."""
    return make_engine(url)


@lru_cache(maxsize=None)
def get_session_factory(url: str) -> sessionmaker:
    return make_session_factory(get_engine(url))


def ensure_schema(engine: Engine) -> None:
    """Create all tables if they do not exist (idempotent)."""
    # models must be imported so their tables are registered on Base.metadata
    from viandas import models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("ensure_schema: schema ensured for %s", engine.url.render_as_string(hide_password=True))
