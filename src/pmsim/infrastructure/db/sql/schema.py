from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import Engine


_SIMULATION_SESSION_MYSQL = """
CREATE TABLE IF NOT EXISTS simulation_session (
    session_id VARCHAR(64) NOT NULL PRIMARY KEY,
    user_id INT NULL,
    current_day INT NOT NULL DEFAULT 1,
    budget_total DOUBLE NOT NULL DEFAULT 0,
    budget_used DOUBLE NOT NULL DEFAULT 0,
    rng_seed BIGINT NOT NULL DEFAULT 1,
    metrics_json LONGTEXT NOT NULL,
    version INT NOT NULL DEFAULT 1
)
"""

_SIMULATION_SESSION_SQLITE = """
CREATE TABLE IF NOT EXISTS simulation_session (
    session_id TEXT NOT NULL PRIMARY KEY,
    user_id INTEGER NULL,
    current_day INTEGER NOT NULL DEFAULT 1,
    budget_total REAL NOT NULL DEFAULT 0,
    budget_used REAL NOT NULL DEFAULT 0,
    rng_seed INTEGER NOT NULL DEFAULT 1,
    metrics_json TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1
)
"""


def ensure_schema(engine: Engine) -> None:
    """Create the session table when missing; safe to call on every start."""

    statement = _SIMULATION_SESSION_MYSQL if engine.dialect.name == "mysql" else _SIMULATION_SESSION_SQLITE
    with engine.begin() as conn:
        conn.execute(text(statement))
