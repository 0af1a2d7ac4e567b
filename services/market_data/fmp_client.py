# services/market_data/fmp_client.py
"""
Financial Modeling Prep (stable API) client.

fetch() contract: returns a payload, or None when the provider simply has no
data for the request. Only transport-level failures (timeouts, connection
errors, exhausted retries, rejected credentials) raise MarketDataError.
"""
from __future__ import annotations

import asyncio
import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from services.market_data.request_types import MAX_SYMBOLS_PER_REQUEST, REQUEST_TYPES

logger = logging.getLogger(__name__)

FMP_STABLE_BASE_URL = "https://financialmodelingprep.com/stable"
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
AUTH_STATUS_CODES = {401, 403}

INTERVAL_MINUTES = {"1min": 1, "5min": 5, "15min": 15, "30min": 30, "1hour": 60, "4hour": 240}


class MarketDataError(RuntimeError):
    """Raised when the market-data provider cannot be reached or rejects us."""


class _RetryableStatus(Exception):
    def __init__(self, status: int):
        super().__init__(f"retryable status {status}")
        self.status = status


def _as_date(as_of: Optional[str]) -> date:
    if as_of:
        try:
            return datetime.fromisoformat(as_of.replace("Z", "+00:00")).date()
        except ValueError:
            try:
                return date.fromisoformat(as_of[:10])
            except ValueError:
                pass
    return datetime.now(timezone.utc).date()


def _int_param(params: Dict[str, Any], key: str, default: int, lo: int, hi: int) -> int:
    try:
        v = int(params.get(key) or default)
    except (TypeError, ValueError, OverflowError):
        v = default
    return max(lo, min(hi, v))


def _period_params(params: Dict[str, Any]) -> Dict[str, Any]:
    period = params.get("period") if params.get("period") in ("annual", "quarter") else "annual"
    return {"period": period, "limit": _int_param(params, "limit", 1, 1, 5)}


def _technical_params(default_length: int) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    def build(params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "periodLength": _int_param(params, "period_length", default_length, 2, 100),
            "timeframe": str(params.get("timeframe") or "1day"),
        }
    return build


# request type -> (path, params builder). Symbol-scoped endpoints get ?symbol= added.
SYMBOL_ENDPOINTS: Dict[str, Tuple[str, Callable[[Dict[str, Any]], Dict[str, Any]]]] = {
    "quote": ("/quote", lambda p: {}),
    "profile": ("/profile", lambda p: {}),
    "income_statement": ("/income-statement", _period_params),
    "balance_sheet": ("/balance-sheet-statement", _period_params),
    "cash_flow": ("/cash-flow-statement", _period_params),
    "key_metrics": ("/key-metrics", _period_params),
    "ratios": ("/ratios", _period_params),
    "earnings": ("/earnings", lambda p: {}),
    "dividends": ("/dividends", lambda p: {}),
    "analyst_estimates": ("/analyst-estimates", lambda p: {"period": "annual", "limit": 2}),
    "price_target": ("/price-target-summary", lambda p: {}),
    "key_executives": ("/key-executives", lambda p: {}),
    "insider_trading": ("/insider-trading/statistics", lambda p: {}),
    "rsi": ("/technical-indicators/rsi", _technical_params(14)),
    "atr": ("/technical-indicators/atr", _technical_params(14)),
    "bollinger_bands": ("/technical-indicators/bollinger", _technical_params(20)),
}


def _has_data(data: Any) -> bool:
    if data is None:
        return False
    if isinstance(data, (list, dict)):
        return len(data) > 0
    return True


class FMPClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = FMP_STABLE_BASE_URL,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    # ---- low level ----

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
        reraise=True,
    )
    async def _get(self, path: str, params: Dict[str, Any]) -> Optional[Any]:
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            r = await client.get(f"{self.base_url}{path}", params={**params, "apikey": self.api_key})
        if r.status_code in RETRY_STATUS_CODES:
            raise _RetryableStatus(r.status_code)
        if r.status_code in AUTH_STATUS_CODES:
            raise MarketDataError(f"FMP rejected credentials (status {r.status_code})")
        if r.status_code >= 400:
            logger.info("fmp.no_data path=%s status=%s", path, r.status_code)
            return None
        try:
            return r.json()
        except ValueError:
            return None

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            return await self._get(path, params or {})
        except MarketDataError:
            raise
        except (httpx.HTTPError, _RetryableStatus) as e:
            raise MarketDataError(f"FMP request failed path={path}: {e}") from e

    async def _per_symbol(
        self,
        symbols: Sequence[str],
        call: Callable[[str], Any],
    ) -> Optional[Dict[str, Any]]:
        if not symbols:
            return None
        results = await asyncio.gather(*(call(s) for s in symbols), return_exceptions=True)
        out: Dict[str, Any] = {}
        errors: List[BaseException] = []
        for sym, res in zip(symbols, results):
            if isinstance(res, BaseException):
                errors.append(res)
                continue
            if _has_data(res):
                out[sym] = res
        if not out and errors:
            raise errors[0] if isinstance(errors[0], MarketDataError) else MarketDataError(str(errors[0]))
        return out or None

    # ---- public ----

    async def fetch(
        self,
        request_type: str,
        symbols: Sequence[str],
        params: Optional[Dict[str, Any]] = None,
        as_of: Optional[str] = None,
    ) -> Optional[Any]:
        if not self.enabled or request_type not in REQUEST_TYPES:
            return None

        params = params or {}
        syms = [s for s in symbols if s][:MAX_SYMBOLS_PER_REQUEST]
        day = _as_date(as_of)

        if request_type in SYMBOL_ENDPOINTS:
            path, build = SYMBOL_ENDPOINTS[request_type]
            extra = build(params)
            return await self._per_symbol(
                syms, lambda s: self.get_json(path, {"symbol": s, **extra})
            )

        if request_type == "batch_quote":
            if not syms:
                return None
            data = await self.get_json("/batch-quote", {"symbols": ",".join(syms)})
            return data if _has_data(data) else None

        if request_type == "intraday":
            interval = params.get("interval") if params.get("interval") in INTERVAL_MINUTES else "1hour"
            lookback = _int_param(params, "lookback_minutes", 120, 1, 4320)
            limit = max(1, math.ceil(lookback / INTERVAL_MINUTES[interval]))

            async def candles(sym: str) -> Optional[Dict[str, Any]]:
                data = await self.get_json(f"/historical-chart/{interval}", {"symbol": sym})
                if not isinstance(data, list) or not data:
                    return None
                return {"interval": interval, "lookback_minutes": lookback, "candles": data[:limit]}

            return await self._per_symbol(syms, candles)

        if request_type == "eod":
            days = _int_param(params, "lookback_days", 30, 1, 365)
            window = {"from": (day - timedelta(days=days)).isoformat(), "to": day.isoformat()}
            return await self._per_symbol(
                syms, lambda s: self.get_json("/historical-price-eod/light", {"symbol": s, **window})
            )

        if request_type == "earnings_calendar":
            window = {
                "from": (day - timedelta(days=7)).isoformat(),
                "to": (day + timedelta(days=30)).isoformat(),
            }
            data = await self.get_json("/earnings-calendar", window)
        elif request_type == "economic_indicators":
            data = await self.get_json(
                "/economic-indicators",
                {
                    "name": str(params.get("indicator_name") or "GDP"),
                    "from": (day - timedelta(days=365)).isoformat(),
                    "to": day.isoformat(),
                },
            )
        else:  # treasury_rates
            data = await self.get_json(
                "/treasury-rates",
                {"from": (day - timedelta(days=30)).isoformat(), "to": day.isoformat()},
            )
        return data if _has_data(data) else None
