from __future__ import annotations

import hashlib
import json
import math
import random
from typing import Any, Mapping


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _normalize(val) for key, val in sorted(value.items(), key=lambda item: str(item[0]))}
    if isinstance(value, (list, tuple, set, frozenset)):
        normalized = [_normalize(item) for item in value]
        if isinstance(value, (set, frozenset)):
            return sorted(normalized, key=lambda item: json.dumps(item, sort_keys=True, separators=(",", ":")))
        return normalized
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"Seed context values must be finite, got {value!r}")
    return value


def derive_seed(namespace: str, context: Mapping[str, Any]) -> int:
    normalized = _normalize(context)
    payload = {"namespace": namespace, "context": normalized}
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
    return int(digest, 16) % (2**32)


def derive_rng(namespace: str, context: Mapping[str, Any]) -> random.Random:
    return random.Random(derive_seed(namespace, context))


def session_day_rng(session, namespace: str = "session.daily_cycle") -> random.Random:
    """Random source for one session on its current day.

    The number of cards drawn so far is part of the context, so a second
    cycle on the same day continues with a fresh stream instead of
    replaying the first one.
    """

    metrics = getattr(session, "metrics", None)
    stats = metrics.get("risk_stats") if isinstance(metrics, Mapping) else None
    drawn = stats.get("drawn", 0) if isinstance(stats, Mapping) else 0
    try:
        drawn = int(drawn)
    except (TypeError, ValueError):
        drawn = 0
    return derive_rng(
        namespace,
        {
            "session_id": str(getattr(session, "id", "") or ""),
            "session_seed": int(getattr(session, "rng_seed", 0) or 0),
            "day": int(getattr(session, "current_day", 0) or 0),
            "cards_drawn": drawn,
        },
    )
