"""
Token/dollar accounting and stage timing.

Everything here is pure and total: bad inputs count as zero, nothing raises,
and nothing feeds back into control flow.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any

from schemas.analysis import StageCost


@dataclass(frozen=True)
class PriceTable:
    input_per_million: float = 0.0
    output_per_million: float = 0.0
    per_request: float = 0.0


# Defaults match the providers' list prices at the time of writing.
LLM_PRICES = PriceTable(input_per_million=1.75, output_per_million=14.0)
RESEARCH_PRICES = PriceTable(input_per_million=1.0, output_per_million=1.0, per_request=0.005)


def _non_negative(v: Any) -> float:
    try:
        n = float(v)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(n) or n < 0:
        return 0.0
    return n


def cost(tokens_in: Any, tokens_out: Any, price_table: PriceTable, requests: Any = 0) -> float:
    return (
        _non_negative(tokens_in) / 1e6 * price_table.input_per_million
        + _non_negative(tokens_out) / 1e6 * price_table.output_per_million
        + _non_negative(requests) * price_table.per_request
    )


def now() -> float:
    return time.perf_counter()


def elapsed_ms(start: float, end: float) -> int:
    return max(0, int(round((_non_negative(end) - _non_negative(start)) * 1000)))


def add_usage(
    stage: StageCost,
    *,
    prompt_tokens: Any = 0,
    completion_tokens: Any = 0,
    requests: Any = 0,
    price_table: PriceTable,
) -> StageCost:
    """Return a new StageCost with the usage (and its price) added."""
    p = int(_non_negative(prompt_tokens))
    c = int(_non_negative(completion_tokens))
    r = int(_non_negative(requests))
    return StageCost(
        prompt_tokens=stage.prompt_tokens + p,
        completion_tokens=stage.completion_tokens + c,
        requests=stage.requests + r,
        cost=stage.cost + cost(p, c, price_table, r),
    )


def merge_costs(*stages: StageCost) -> StageCost:
    return StageCost(
        prompt_tokens=sum(s.prompt_tokens for s in stages),
        completion_tokens=sum(s.completion_tokens for s in stages),
        requests=sum(s.requests for s in stages),
        cost=sum(s.cost for s in stages),
    )


def total_cost(*stages: StageCost) -> float:
    return sum(s.cost for s in stages)
