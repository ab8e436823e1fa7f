from __future__ import annotations

import json
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from pmsim.domain.models.session import SimulationSession
from pmsim.domain.repositories import SessionRepository, StaleSessionError


class SqlSessionRepository(SessionRepository):
    """Whole-document persistence with a version column for compare-and-swap writes."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _row_to_session(row) -> SimulationSession:
        try:
            metrics = json.loads(row.metrics_json or "{}")
        except ValueError:
            metrics = {}
        return SimulationSession(
            id=str(row.session_id),
            user_id=int(row.user_id) if row.user_id is not None else None,
            current_day=int(row.current_day or 0),
            budget_total=float(row.budget_total or 0),
            budget_used=float(row.budget_used or 0),
            rng_seed=int(row.rng_seed or 0),
            metrics=metrics if isinstance(metrics, dict) else {},
            version=int(row.version or 0),
        )

    @staticmethod
    def _params(session: SimulationSession) -> dict:
        return {
            "sid": str(session.id),
            "uid": session.user_id,
            "day": int(session.current_day),
            "budget_total": float(session.budget_total or 0),
            "budget_used": float(session.budget_used or 0),
            "rng_seed": int(session.rng_seed or 0),
            "metrics": json.dumps(session.metrics if isinstance(session.metrics, dict) else {}),
        }

    def get(self, session_id: str) -> Optional[SimulationSession]:
        with self._session_factory() as db:
            row = db.execute(
                text(
                    """
                    SELECT session_id, user_id, current_day, budget_total, budget_used,
                           rng_seed, metrics_json, version
                    FROM simulation_session
                    WHERE session_id = :sid
                    """
                ),
                {"sid": str(session_id)},
            ).first()
        if row is None:
            return None
        return self._row_to_session(row)

    def create(self, session: SimulationSession) -> SimulationSession:
        params = self._params(session)
        params["version"] = 1
        with self._session_factory.begin() as db:
            db.execute(
                text(
                    """
                    INSERT INTO simulation_session
                        (session_id, user_id, current_day, budget_total, budget_used, rng_seed, metrics_json, version)
                    VALUES (:sid, :uid, :day, :budget_total, :budget_used, :rng_seed, :metrics, :version)
                    """
                ),
                params,
            )
        session.version = 1
        return session

    def save(self, session: SimulationSession, *, expected_version: int) -> None:
        params = self._params(session)
        params["expected"] = int(expected_version)
        params["next_version"] = int(expected_version) + 1
        with self._session_factory.begin() as db:
            result = db.execute(
                text(
                    """
                    UPDATE simulation_session
                    SET user_id = :uid,
                        current_day = :day,
                        budget_total = :budget_total,
                        budget_used = :budget_used,
                        rng_seed = :rng_seed,
                        metrics_json = :metrics,
                        version = :next_version
                    WHERE session_id = :sid AND version = :expected
                    """
                ),
                params,
            )
            if result.rowcount != 1:
                current = db.execute(
                    text("SELECT version FROM simulation_session WHERE session_id = :sid"),
                    {"sid": str(session.id)},
                ).first()
                raise StaleSessionError(
                    str(session.id),
                    int(expected_version),
                    int(current.version) if current is not None else None,
                )
        session.version = int(expected_version) + 1
