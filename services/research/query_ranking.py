from __future__ import annotations

import re
from typing import Iterable, List

VERIFICATION_KEYWORDS = {
    "official",
    "press release",
    "confirm",
    "statement",
    "announce",
    "filing",
    "8-k",
    "10-q",
    "10-k",
    " sec ",
    "regulator",
    "central bank",
    "transcript",
}

MARKET_REACTION_KEYWORDS = {
    "market reaction",
    "reaction",
    "priced in",
    "futures",
    "yields",
    "selloff",
    "sell-off",
    "rally",
    "volatility",
    "implied move",
    "options flow",
    "positioning",
}

RECENCY_KEYWORDS = {
    "today",
    "latest",
    "breaking",
    "this week",
    "yesterday",
    "overnight",
    "now",
}

LONG_QUERY_CHARS = 120
DEFAULT_LIMIT = 2

_WS = re.compile(r"\s+")


def _norm(query: str) -> str:
    return _WS.sub(" ", (query or "").strip())


def _has_any(text: str, words: Iterable[str]) -> bool:
    padded = f" {text} "
    return any(w in padded for w in words)


def score_query(query: str) -> int:
    lowered = _norm(query).lower()
    score = 0
    if _has_any(lowered, VERIFICATION_KEYWORDS):
        score += 4
    if _has_any(lowered, MARKET_REACTION_KEYWORDS):
        score += 3
    if _has_any(lowered, {f" {w} " for w in RECENCY_KEYWORDS}):
        score += 2
    if len(lowered) > LONG_QUERY_CHARS:
        score -= 1
    return score


def rank_key(*, score: int, order: int) -> tuple[int, int]:
    return (score, -order)


def rank_web_queries(queries: Iterable[str], limit: int = DEFAULT_LIMIT) -> List[str]:
    """Dedupe (case-insensitive), score, return the best `limit` (ties keep input order)."""
    seen = set()
    unique: List[str] = []
    for q in queries or []:
        if not isinstance(q, str):
            continue
        text = _norm(q)
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        unique.append(text)

    ranked = sorted(
        enumerate(unique),
        key=lambda pair: rank_key(score=score_query(pair[1]), order=pair[0]),
        reverse=True,
    )
    return [q for _, q in ranked[: max(0, min(limit, DEFAULT_LIMIT))]]
