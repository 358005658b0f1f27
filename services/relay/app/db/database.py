"""Engines and sessions for the SQL document store.

One engine per resolved URL, created on first use, so several stores (and tests with
their own `tmp_path` databases) can coexist in one process.
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///.local/relay.db"

_ENGINES: dict[str, Engine] = {}
_SESSIONMAKERS: dict[str, sessionmaker[Session]] = {}


def database_url(url: str | None = None) -> str:
    return url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def get_engine(url: str | None = None) -> Engine:
    resolved = database_url(url)
    engine = _ENGINES.get(resolved)
    if engine is None:
        _ensure_sqlite_dir(resolved)
        # Store calls run in worker threads.
        connect_args = {"check_same_thread": False} if resolved.startswith("sqlite") else {}
        engine = create_engine(resolved, connect_args=connect_args)
        _ENGINES[resolved] = engine
        _SESSIONMAKERS[resolved] = sessionmaker(bind=engine, autoflush=False)
    return engine


def db_session(url: str | None = None) -> Session:
    get_engine(url)
    return _SESSIONMAKERS[database_url(url)]()
