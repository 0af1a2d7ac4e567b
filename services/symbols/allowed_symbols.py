"""
Allow-list Resolver: the closed set of symbols the pipeline may reference.

Static catalog first; when FMP is configured, its stock/forex/commodity lists
are merged in. The merged set is cached (24h by default).
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, List, Literal, Optional

from services.cache.cache_backend import cache_get, cache_set
from services.market_data.fmp_client import FMPClient, MarketDataError
from services.symbols import symbol_catalog

logger = logging.getLogger(__name__)

CACHE_KEY = "allowlist:v1"
DEFAULT_TTL_SEC = 24 * 3600
PROMPT_STOCK_EXAMPLES = 200

_STOCK_RE = re.compile(r"^[A-Z0-9.]{1,10}$")
_COMMODITY_RE = re.compile(r"^[A-Z0-9]{2,10}$")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")


@dataclass(frozen=True)
class AllowedSymbols:
    allowed: FrozenSet[str]
    prompt_fragment: str
    source: Literal["fmp_api", "static"] = "static"


def build_prompt_fragment() -> str:
    stocks = list(dict.fromkeys(symbol_catalog.STOCKS_ETFS))[:PROMPT_STOCK_EXAMPLES]
    return "\n".join(
        [
            f"- Forex (use ONLY these exact 6-letter symbols): {', '.join(symbol_catalog.FOREX)}",
            f"- Commodities (use ONLY these): {', '.join(symbol_catalog.COMMODITIES)}",
            f"- Indices (use ONLY these): {', '.join(symbol_catalog.INDICES)}",
            f"- Crypto (use ONLY these BASEUSD symbols): {', '.join(symbol_catalog.CRYPTO)}",
            "- Stocks/ETFs: use ONLY the exact ticker (no suffix). "
            f"Examples: {', '.join(stocks)}. "
            'Do NOT use "AAPLUSD" or "SBUXUSD" - use "AAPL", "SBUX".',
        ]
    )


def _rows_symbols(rows: Any) -> Iterable[str]:
    if not isinstance(rows, list):
        return []
    out: List[str] = []
    for row in rows:
        if isinstance(row, dict):
            s = row.get("symbol") or row.get("ticker")
            if isinstance(s, str):
                out.append(s.strip().upper())
    return out


def merge_symbol_lists(stocks: Any, forex: Any, commodities: Any) -> FrozenSet[str]:
    allowed = {s.upper() for s in symbol_catalog.ALL_SYMBOLS}
    for s in _rows_symbols(forex):
        s = _NON_ALNUM.sub("", s)
        if len(s) == 6:
            allowed.add(s)
    for s in _rows_symbols(commodities):
        if _COMMODITY_RE.match(s):
            allowed.add(s)
    for s in _rows_symbols(stocks):
        if _STOCK_RE.match(s):
            allowed.add(s)
    return frozenset(allowed)


class AllowedSymbolsResolver:
    def __init__(self, fmp: Optional[FMPClient] = None, ttl_seconds: int = DEFAULT_TTL_SEC):
        self.fmp = fmp
        self.ttl_seconds = ttl_seconds

    async def _fetch_list(self, path: str) -> Any:
        try:
            return await self.fmp.get_json(path) if self.fmp else None
        except MarketDataError as e:
            logger.warning("allowlist.fetch_failed path=%s err=%s", path, e)
            return None

    async def resolve(self) -> AllowedSymbols:
        prompt = build_prompt_fragment()

        # redis calls are blocking
        cached = await asyncio.to_thread(cache_get, CACHE_KEY)
        if isinstance(cached, dict) and isinstance(cached.get("symbols"), list):
            return AllowedSymbols(
                allowed=frozenset(cached["symbols"]),
                prompt_fragment=prompt,
                source=cached.get("source") or "static",
            )

        if self.fmp is None or not self.fmp.enabled:
            allowed = merge_symbol_lists(None, None, None)
            return AllowedSymbols(allowed=allowed, prompt_fragment=prompt, source="static")

        stocks, forex, commodities = await asyncio.gather(
            self._fetch_list("/stock-list"),
            self._fetch_list("/forex-list"),
            self._fetch_list("/commodities-list"),
        )
        allowed = merge_symbol_lists(stocks, forex, commodities)
        source = "fmp_api" if any(isinstance(x, list) and x for x in (stocks, forex, commodities)) else "static"
        logger.info("allowlist.resolved source=%s size=%s", source, len(allowed))

        await asyncio.to_thread(cache_set, CACHE_KEY, {"symbols": sorted(allowed), "source": source}, self.ttl_seconds)
        return AllowedSymbols(allowed=allowed, prompt_fragment=prompt, source=source)
