from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


DEFAULT_DATABASE_URL = "sqlite:///pmsim.db"


def database_url_from_env() -> str:
    return os.getenv("PMSIM_DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL


def build_engine(database_url: str | None = None) -> Engine:
    url = database_url or database_url_from_env()
    return create_engine(url, echo=False, future=True, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
