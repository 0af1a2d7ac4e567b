from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Tuple

MarketDataType = Literal[
    "quote",
    "batch_quote",
    "profile",
    "intraday",
    "eod",
    "income_statement",
    "balance_sheet",
    "cash_flow",
    "key_metrics",
    "ratios",
    "earnings",
    "dividends",
    "analyst_estimates",
    "price_target",
    "earnings_calendar",
    "economic_indicators",
    "treasury_rates",
    "key_executives",
    "insider_trading",
    "rsi",
    "atr",
    "bollinger_bands",
]


@dataclass(frozen=True)
class RequestTypeInfo:
    description: str
    per_symbol: bool = True


REQUEST_TYPES: Dict[str, RequestTypeInfo] = {
    "quote": RequestTypeInfo("latest price quote"),
    "batch_quote": RequestTypeInfo("latest price quotes"),
    "profile": RequestTypeInfo("company profile and market capitalization"),
    "intraday": RequestTypeInfo("intraday price action"),
    "eod": RequestTypeInfo("recent daily closing prices"),
    "income_statement": RequestTypeInfo("latest income statement figures"),
    "balance_sheet": RequestTypeInfo("latest balance sheet figures"),
    "cash_flow": RequestTypeInfo("latest cash flow statement"),
    "key_metrics": RequestTypeInfo("key valuation metrics"),
    "ratios": RequestTypeInfo("financial ratios"),
    "earnings": RequestTypeInfo("earnings history and surprises"),
    "dividends": RequestTypeInfo("dividend history"),
    "analyst_estimates": RequestTypeInfo("analyst consensus estimates"),
    "price_target": RequestTypeInfo("analyst price target consensus"),
    "earnings_calendar": RequestTypeInfo("upcoming earnings calendar", per_symbol=False),
    "economic_indicators": RequestTypeInfo("latest economic indicator readings", per_symbol=False),
    "treasury_rates": RequestTypeInfo("current US treasury yields", per_symbol=False),
    "key_executives": RequestTypeInfo("key executives"),
    "insider_trading": RequestTypeInfo("recent insider trading activity"),
    "rsi": RequestTypeInfo("RSI technical reading"),
    "atr": RequestTypeInfo("average true range volatility"),
    "bollinger_bands": RequestTypeInfo("Bollinger band levels"),
}

SUPPORTED_TYPES: Tuple[str, ...] = tuple(REQUEST_TYPES)

MAX_REQUESTS = 12
MAX_SYMBOLS_PER_REQUEST = 10


def is_supported(request_type: str) -> bool:
    return request_type in REQUEST_TYPES


def describe(request_type: str) -> str:
    info = REQUEST_TYPES.get(request_type)
    return info.description if info else request_type.replace("_", " ")


DATA_MENU = """
MARKET DATA MENU - add items to "data_requests": each item = { "type": "<type below>", "symbols": ["from ALLOWED list"] }, plus "params" only when needed.
Rule: use ONLY symbols from the ALLOWED SYMBOLS list. 1-5 requests are enough.

[Price]
- quote -> live price (symbols)
- batch_quote -> several prices in one call (symbols)
- intraday -> candles (symbols; params: interval=1min|5min|15min|30min|1hour|4hour, lookback_minutes)
- eod -> daily closes (symbols; params: lookback_days)

[Company]
- profile -> profile, market cap (symbols)
- key_executives -> executives (symbols)

[Financial statements]
- income_statement, balance_sheet, cash_flow -> (symbols; params: period=annual|quarter, limit)
- key_metrics, ratios -> (symbols; params: period, limit)

[Earnings / dividends]
- earnings -> earnings history (symbols)
- dividends -> dividends (symbols)
- earnings_calendar -> calendar (no symbols; dates are automatic)

[Analysts]
- analyst_estimates, price_target -> (symbols)

[Macro]
- economic_indicators -> (params: indicator_name=GDP|unemploymentRate|CPI|inflationRate)
- treasury_rates -> treasury curve (no symbols)

[Technicals]
- rsi -> (symbols; params: period_length=14, timeframe=1day)
- atr -> (symbols; params: period_length=14, timeframe=1day)
- bollinger_bands -> (symbols; params: period_length=20, timeframe=1day)

[Other]
- insider_trading -> insider activity (symbols)

Example: [{"type":"quote","symbols":["AAPL"]},{"type":"rsi","symbols":["AAPL"]},{"type":"earnings","symbols":["AAPL"]}]
""".strip()
