"""
Symbol Validator.

Two filters, both total (they never raise, they only drop):

- validate_symbols: bare market-data symbols checked against the allow-list,
  with a couple of cheap repairs (exchange prefix, stray USD suffix).
- filter_chart_symbols: EXCHANGE:SYMBOL chart identifiers checked against the
  chart grammar only. Non-matching entries are dropped, never rewritten.
"""
from __future__ import annotations

import re
from typing import AbstractSet, Any, Iterable, List, Optional

CHART_SYMBOL_RE = re.compile(r"^[A-Za-z0-9]+:[A-Za-z0-9.!]+$")

EXCHANGE_PREFIXES = (
    "BINANCE", "COINBASE", "BITSTAMP", "KRAKEN", "BYBIT", "CRYPTO",
    "NASDAQ", "NYSE", "AMEX", "ARCA", "BATS",
    "FX", "FX_IDC", "OANDA", "FOREXCOM", "SAXO",
    "TVC", "CBOE", "SP", "DJ", "CME", "CME_MINI", "COMEX", "NYMEX", "CBOT", "ICEUS",
)

_MIN_LEN_FOR_USD_STRIP = 7


def _clean(candidate: Any) -> str:
    return str(candidate or "").strip().upper().replace("$", "")


def _strip_exchange(symbol: str) -> str:
    if ":" not in symbol:
        return symbol
    prefix, rest = symbol.split(":", 1)
    if prefix in EXCHANGE_PREFIXES or prefix.isalnum():
        return rest
    return symbol


def _resolve(symbol: str, allowed: AbstractSet[str]) -> Optional[str]:
    if symbol in allowed:
        return symbol

    bare = _strip_exchange(symbol)
    if bare in allowed:
        return bare

    # AAPLUSD -> AAPL, SBUXUSD -> SBUX (crypto BASEUSD pairs match above first)
    if bare.endswith("USD") and len(bare) >= _MIN_LEN_FOR_USD_STRIP:
        base = bare[:-3]
        if base in allowed:
            return base
    return None


def validate_symbols(candidates: Optional[Iterable[Any]], allowed: AbstractSet[str]) -> List[str]:
    out: List[str] = []
    if not isinstance(candidates, (list, tuple)):
        return out
    for c in candidates:
        sym = _clean(c)
        if not sym:
            continue
        resolved = _resolve(sym, allowed)
        if resolved and resolved not in out:
            out.append(resolved)
    return out


def is_chart_symbol(value: Any) -> bool:
    return isinstance(value, str) and bool(CHART_SYMBOL_RE.match(value.strip()))


def filter_chart_symbols(candidates: Optional[Iterable[Any]]) -> List[str]:
    out: List[str] = []
    if not isinstance(candidates, (list, tuple)):
        return out
    for c in candidates:
        if not is_chart_symbol(c):
            continue
        s = c.strip()
        if s not in out:
            out.append(s)
    return out
