from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


# FIGA Care's Postgres URL may arrive under either bare scheme; both are pinned
# to the psycopg (v3) driver listed in pyproject.toml.
_BARE_POSTGRES_SCHEMES = ("postgres://", "postgresql://")
_PSYCOPG_SCHEME = "postgresql+psycopg://"


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        # A SQLite file next to the app, enough for local runs and for
        # scripts/seed_users.py.
        return "sqlite:///./figa_care.db"
    for scheme in _BARE_POSTGRES_SCHEMES:
        if url.startswith(scheme):
            return _PSYCOPG_SCHEME + url[len(scheme):]
    return url


def make_engine(url: str):
    # Tests build one engine per SQLite file; TestClient calls cross threads.
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


DATABASE_URL = _database_url()

engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def get_db():
    """One session per request; routers and OtpService commit their own writes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
