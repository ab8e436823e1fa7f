from __future__ import annotations

import math
from typing import Any, Mapping

AI_ALIGNMENT_PATH = "ai_relevancy.raw.overall.scope_alignment_pct"


def ensure_metrics(session) -> dict:
    metrics = getattr(session, "metrics", None)
    if not isinstance(metrics, dict):
        metrics = {}
        session.metrics = metrics
    return metrics


def ensure_dict(metrics: dict, key: str) -> dict:
    value = metrics.setdefault(key, {})
    if not isinstance(value, dict):
        value = {}
        metrics[key] = value
    return value


def ensure_list(metrics: dict, key: str) -> list:
    value = metrics.setdefault(key, [])
    if not isinstance(value, list):
        value = []
        metrics[key] = value
    return value


def ensure_risk_deck(metrics: dict) -> dict:
    deck = ensure_dict(metrics, "risk_deck")
    for lane in ("active", "history"):
        if not isinstance(deck.get(lane), list):
            deck[lane] = []
    return deck


def safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def lookup_path(metrics: Mapping[str, Any] | None, path: str) -> Any | None:
    """Resolve a dotted path like ``evaluation.raw.scope_growth_pct``.

    Returns ``None`` when any segment is missing or a non-mapping is hit
    before the last segment.
    """

    if not isinstance(metrics, Mapping):
        return None
    segments = [segment for segment in str(path or "").split(".") if segment]
    if not segments:
        return None
    node: Any = metrics
    for segment in segments:
        if not isinstance(node, Mapping) or segment not in node:
            return None
        node = node[segment]
    return node


def as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def lookup_number(metrics: Mapping[str, Any] | None, path: str) -> float | None:
    return as_number(lookup_path(metrics, path))


def ai_alignment_pct(metrics: Mapping[str, Any] | None) -> float | None:
    return lookup_number(metrics, AI_ALIGNMENT_PATH)
