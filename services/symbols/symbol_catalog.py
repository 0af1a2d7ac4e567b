# Canonical market-data symbols (bare tickers, no exchange prefix).
from __future__ import annotations

from typing import Tuple

FOREX: Tuple[str, ...] = (
    # majors
    "EURUSD", "GBPUSD", "USDJPY", "USDCHF", "AUDUSD", "USDCAD", "NZDUSD",
    # crosses
    "EURJPY", "EURGBP", "EURCHF", "EURAUD", "EURNZD", "EURCAD", "EURSEK", "EURNOK", "EURTRY", "EURPLN",
    "GBPJPY", "GBPCHF", "GBPAUD", "GBPNZD", "GBPCAD", "GBPTRY",
    "AUDJPY", "NZDJPY", "CADJPY", "CHFJPY", "AUDNZD", "AUDCAD", "AUDCHF", "NZDCAD", "NZDCHF", "CADCHF",
    # EM
    "USDMXN", "USDTRY", "USDZAR", "USDSEK", "USDNOK", "USDDKK", "USDPLN", "USDHUF", "USDCZK",
    "USDSGD", "USDHKD", "USDINR", "USDTHB", "USDCNH", "USDKRW",
)

COMMODITIES: Tuple[str, ...] = (
    "GCUSD",  # gold
    "SIUSD",  # silver
    "CLUSD",  # WTI
    "NGUSD",  # natural gas
    "HGUSD",  # copper
    "PLUSD", "PAUSD",
    "ZCUSD", "ZWUSD", "ZSUSD",
    "CCUSD", "CTUSD", "SBUSD", "KCUSD",
)

INDICES: Tuple[str, ...] = ("SPX", "DXY", "VIX", "NDX", "DJI", "RUT")

CRYPTO: Tuple[str, ...] = (
    "BTCUSD", "ETHUSD", "SOLUSD", "XRPUSD", "BNBUSD", "DOGEUSD", "ADAUSD", "AVAXUSD",
    "LINKUSD", "DOTUSD", "LTCUSD", "SHIBUSD", "TRXUSD", "ETCUSD", "XLMUSD", "NEARUSD",
    "APTUSD", "ARBUSD", "OPUSD", "SUIUSD", "PEPEUSD", "UNIUSD", "ATOMUSD", "FILUSD",
    "HBARUSD", "ALGOUSD", "ICPUSD", "AAVEUSD", "INJUSD", "RNDRUSD",
)

STOCKS_ETFS: Tuple[str, ...] = (
    # tech
    "AAPL", "MSFT", "GOOGL", "GOOG", "AMZN", "META", "NVDA", "TSLA", "AMD", "INTC", "CRM", "ORCL",
    "ADBE", "NFLX", "CSCO", "AVGO", "QCOM", "TXN", "AMAT", "MU", "LRCX", "KLAC", "MRVL", "CRWD",
    "PANW", "SNOW", "PLTR", "COIN", "MSTR", "SHOP", "UBER", "ABNB", "SPOT", "SMCI", "ARM", "TSM",
    # financials
    "JPM", "BAC", "WFC", "GS", "MS", "C", "SCHW", "BLK", "AXP", "V", "MA", "PYPL", "COF", "SOFI",
    # healthcare
    "UNH", "JNJ", "PFE", "ABBV", "MRK", "LLY", "TMO", "ABT", "BMY", "AMGN", "GILD", "VRTX", "MRNA", "NVO",
    # consumer
    "WMT", "PG", "KO", "PEP", "COST", "HD", "LOW", "TGT", "NKE", "SBUX", "MCD", "CMG", "DIS",
    "F", "GM", "RIVN", "NIO", "BABA", "PDD",
    # energy / industrials / materials
    "XOM", "CVX", "COP", "SLB", "OXY", "CAT", "DE", "HON", "UPS", "RTX", "LMT", "BA", "GE",
    "FDX", "DAL", "UAL", "FCX", "NEM", "NUE",
    # ETFs
    "SPY", "QQQ", "IWM", "DIA", "VOO", "VTI", "EFA", "EEM", "FXI", "EWZ", "EWJ", "TLT", "IEF",
    "SHY", "HYG", "LQD", "GLD", "SLV", "USO", "UNG", "XLE", "XLF", "XLK", "XLV", "XLI", "XLP",
    "XLY", "XLU", "XLRE", "SMH", "SOXX", "ARKK", "IBIT", "TQQQ", "SQQQ",
)

NON_STOCKS: Tuple[str, ...] = FOREX + COMMODITIES + INDICES + CRYPTO

ALL_SYMBOLS: Tuple[str, ...] = NON_STOCKS + STOCKS_ETFS
