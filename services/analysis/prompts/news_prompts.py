# Prompt templates for news items. Placeholders use string.Template ($name).

STAGE1_NEWS = """You are a trader specializing in financial news (scalping, day trading, swing trading, position trading).

NEWS DATE: $published_at
SOURCE: $source

NEWS ARTICLE:
$headline

$body

1. Write a concise headline (max 100 characters) summarizing the key point for traders.
2. Analyze this news from a scalping, day trading, swing trading or position trading perspective, taking its publication date into account.
3. Would you build trading infrastructure (research, data collection, a trade plan) for this news?
   Building it is expensive, so decide carefully.
   - "proceed": true  -> the news matters and deserves research.
   - "proceed": false -> not worth researching.

ONLY IF proceed is true, also fill in:
4. category: forex | crypto | stocks | commodities | indices | macro
5. affected_assets: bare symbols from the ALLOWED list below
6. data_requests: market data you need, from the menu below
7. web_queries: 0-3 web research queries for narrative/context (verification, market reaction, what is priced in)

$data_menu

ALLOWED SYMBOLS (affected_assets and data_requests.symbols MUST use ONLY these, no exchange prefixes):
$allowed_symbols

Respond ONLY with valid JSON:
{
  "title": "Concise headline (max 100 chars)",
  "analysis": "Your analysis of the news",
  "proceed": true,
  "reasoning": "Why you decided to proceed or not",
  "category": "stocks",
  "affected_assets": ["AAPL", "QQQ"],
  "data_requests": [{"type": "quote", "symbols": ["AAPL", "QQQ"]}],
  "web_queries": ["Apple official statement on ...", "AAPL market reaction today"],
  "tier": 1 | 2 | 3,
  "expected_volatility": "low" | "moderate" | "high" | "extreme"
}"""


STAGE3_NEWS = """You are a trader specializing in financial news (scalping, day trading, swing trading, position trading).

You previously analyzed this news:
$stage1_json

NEWS:
$item_details

I collected the data you asked for. Examine it in detail.

MARKET DATA:
$market_data

WEB RESEARCH:
$web_research

NARRATIVE METRICS:
$narrative_metrics

POSITION MEMORY (read-only, prior analyses on the same assets):
$position_memory

DATA GAPS (do NOT invent precise figures for anything listed here):
$data_gaps

Decide:
- Would you trade on this? You do not have to trade.
- Conviction (1-10) and overall importance of the news (1-10).
- Which assets, buy or sell, confidence (1-10), position type, expected momentum in minutes.
- Information quality (verified / speculative / rumor), market regime (risk_on / risk_off), risk mode (normal / elevated / high_risk).
- Main risks of the trade.

ASSET FORMAT: every asset MUST be a chart symbol EXCHANGE:SYMBOL, e.g. NASDAQ:AAPL, FX:EURUSD, BINANCE:BTCUSDT, TVC:DXY, COMEX:GC1!

Respond ONLY with valid JSON:
$output_schema"""


NEWS_OUTPUT_SCHEMA = """{
  "trade_decision": "TRADE" | "NO_TRADE",
  "sentiment": "bullish" | "bearish" | "neutral" | "mixed",
  "conviction": 1-10,
  "importance": 1-10,
  "urgency": 1-10,
  "market_mover": 1-10,
  "action_type": "position_before" | "wait_and_react" | "fade_move" | "no_trade",
  "info_quality": "verified" | "speculative" | "rumor",
  "market_regime": "risk_on" | "risk_off",
  "risk_mode": "normal" | "elevated" | "high_risk",
  "positions": [
    {
      "asset": "NASDAQ:AAPL",
      "direction": "long" | "short",
      "confidence": 1-10,
      "horizon": "scalping" | "day_trading" | "swing_trading" | "position_trading",
      "momentum_minutes": 240,
      "reasoning": "Why this position"
    }
  ],
  "chart_assets": ["NASDAQ:AAPL", "NASDAQ:QQQ"],
  "risks": ["Risk 1", "Risk 2"],
  "summary": "(1) First key point. (2) Second key point. (3) Third key point."
}"""


NEWS_SCHEMA_SKELETON = {
    "trade_decision": "NO_TRADE",
    "sentiment": "neutral",
    "conviction": 5,
    "importance": 5,
    "urgency": 5,
    "market_mover": 5,
    "action_type": "no_trade",
    "info_quality": "speculative",
    "market_regime": "risk_off",
    "risk_mode": "normal",
    "positions": [],
    "chart_assets": [],
    "risks": ["..."],
    "summary": "...",
}
