# Prompt templates for scheduled events (macro/crypto, earnings, IPO).
# Placeholders use string.Template ($name); literal dollar signs are written $$.

_STAGE1_CONSTRAINTS = """IMPORTANT CONSTRAINTS (must follow):
- Price/market data comes from the market data provider only. In "data_requests" list exactly what you need from the menu below.
$data_menu
- "web_queries": web research queries for narrative/context (0-3 max).

ALLOWED SYMBOLS (CRITICAL: affected_assets and data_requests.symbols MUST use ONLY these):
$allowed_symbols
- Do NOT use prefixes (no "FX:", "NASDAQ:"). Output the bare symbol only."""


STAGE1_MACRO = """You are an event-driven macro analyst. You are receiving an upcoming economic/financial EVENT (not a news article).

This event will happen soon. Classify it and determine what data is needed for a full trade-ready analysis.
ALL events proceed to the full analysis; this step is ONLY for classification and data planning.

EVENT DATE: $event_date
EVENT NAME: $event_name
COUNTRY: $country
CURRENCY: $currency
IMPORTANCE: $importance
FORECAST: $forecast
PREVIOUS: $previous

""" + _STAGE1_CONSTRAINTS + """

TASKS:
1. Create a concise title for this event (max 80 chars).
2. Explain briefly why this event matters (2-3 sentences).
3. Classify the event tier:
   - TIER 1: FOMC, NFP, CPI, ECB/BOJ/BOE decisions, GDP -> expect 1-3% moves
   - TIER 2: PCE, PPI, Retail Sales, PMI -> expect 0.5-1.5% moves
   - TIER 3: Housing, Confidence, Trade Balance -> expect 0.2-0.5% moves
4. Category: forex | crypto | stocks | commodities | indices | macro
5. affected_assets: symbols from the ALLOWED list, one or many
6. data_requests: what market data you need
7. web_queries: 0-3 queries (whisper numbers, expectations, components traders watch)

Respond ONLY with valid JSON:
{
  "title": "string (max 80 chars)",
  "analysis": "Why this event matters (2-3 sentences)",
  "category": "forex",
  "affected_assets": ["SPY", "EURUSD"],
  "data_requests": [
    {"type": "quote", "symbols": ["SPY", "EURUSD"]},
    {"type": "intraday", "symbols": ["SPY"], "params": {"interval": "5min", "lookback_minutes": 120}}
  ],
  "web_queries": ["CPI whisper number expectations", "What components traders focus on for CPI"],
  "tier": 1 | 2 | 3,
  "expected_volatility": "low" | "moderate" | "high" | "extreme"
}"""


STAGE1_EARNINGS = """You are an equity analyst specializing in earnings events. You are receiving an upcoming EARNINGS report.

Classify it and determine data needs. ALL events proceed to the full analysis.

COMPANY: $symbol ($company_name)
EARNINGS DATE: $event_date
EPS ESTIMATE: $eps_estimate
REVENUE ESTIMATE: $revenue_estimate
PREVIOUS EPS: $previous_eps

""" + _STAGE1_CONSTRAINTS + """

TASKS:
1. Create a concise title (max 80 chars).
2. Explain why this earnings report matters (2-3 sentences).
3. Classify the event tier:
   - TIER 1: Mega-cap (AAPL, NVDA, MSFT, AMZN, GOOGL, META, TSLA) -> market-moving
   - TIER 2: Large-cap / sector leaders -> sector impact
   - TIER 3: Mid/small-cap -> stock-specific
4. Category: always "stocks" for earnings
5. affected_assets: the stock plus related ETFs and sympathy plays
6. data_requests: quote, profile, earnings, key_metrics, etc.
7. web_queries: whisper EPS, guidance expectations, key metrics

Respond ONLY with valid JSON:
{
  "title": "NVDA Q4 Earnings",
  "analysis": "Why this earnings report matters...",
  "category": "stocks",
  "affected_assets": ["NVDA", "SMH", "QQQ", "AMD"],
  "data_requests": [
    {"type": "quote", "symbols": ["NVDA", "SMH", "AMD"]},
    {"type": "profile", "symbols": ["NVDA"]},
    {"type": "earnings", "symbols": ["NVDA"]}
  ],
  "web_queries": ["NVDA whisper EPS", "NVDA data center revenue expectations"],
  "tier": 1 | 2 | 3,
  "expected_volatility": "low" | "moderate" | "high" | "extreme"
}"""


STAGE1_IPO = """You are an IPO analyst. You are receiving an upcoming IPO event.

Classify it and determine data needs. ALL events proceed to the full analysis.

COMPANY: $company_name
IPO DATE: $event_date
SYMBOL: $symbol
EXCHANGE: $exchange
PRICE RANGE: $price_range_low - $price_range_high
SHARES OFFERED: $shares

""" + _STAGE1_CONSTRAINTS + """

TASKS:
1. Create a concise title (max 80 chars).
2. Explain why this IPO matters (2-3 sentences).
3. Classify the event tier:
   - TIER 1: High-profile/unicorn IPO (>10B valuation)
   - TIER 2: Notable IPO (>1B valuation)
   - TIER 3: Smaller IPO
4. Category: always "stocks" for IPOs
5. affected_assets: comparable companies, sector ETFs
6. data_requests: quotes for comparables and sector ETFs
7. web_queries: demand, valuation, institutional interest

Respond ONLY with valid JSON:
{
  "title": "Reddit IPO",
  "analysis": "Why this IPO matters...",
  "category": "stocks",
  "affected_assets": ["XLK", "QQQ", "SNAP", "META"],
  "data_requests": [{"type": "quote", "symbols": ["SNAP", "META", "XLK"]}],
  "web_queries": ["Reddit IPO demand", "Reddit IPO valuation vs comparables"],
  "tier": 1 | 2 | 3,
  "expected_volatility": "low" | "moderate" | "high" | "extreme"
}"""


_STAGE3_CONTEXT = """You previously classified this event:
$stage1_json

EVENT DETAILS:
$item_details

COLLECTED MARKET DATA:
$market_data

WEB RESEARCH:
$web_research

NARRATIVE METRICS:
$narrative_metrics

POSITION MEMORY (READ-ONLY, from the news analysis system):
$position_memory
- Use it to AVOID CONFLICTING with existing news-based positions.
- If an open position could be invalidated by this event, say so in risks.

DATA GAPS (do NOT invent precise figures for anything listed here):
$data_gaps"""


_STAGE3_RULES = """CRITICAL REQUIREMENTS:
A) Use REAL price levels from the collected market data for entry, stop_loss and take_profit.
B) Include a time horizon on every trade: intraday | 1-2 days | 3-5 days.
C) ANY scenario can be "no_trade"; a scenario can have 1, 2 or more trades on different assets.
D) Every asset MUST be a chart symbol EXCHANGE:SYMBOL, e.g. FX:EURUSD, TVC:DXY, CBOE:VIX, SP:SPX, NASDAQ:NDX, COMEX:GC1!
E) trade_decision is "TRADE" only when at least one position is worth taking before the event."""


STAGE3_MACRO = """You are a senior macro strategist specializing in event-driven trading.

This is the ONLY analysis run for this event. It must stay useful while the event is upcoming, live and past,
so cover ALL 5 outcomes with complete playbooks.

""" + _STAGE3_CONTEXT + """

SCENARIOS (all 5 are mandatory):
1. big_beat (> +15% vs forecast)
2. small_beat (+5% to +15%)
3. inline (-5% to +5%)
4. small_miss (-5% to -15%)
5. big_miss (< -15%)

""" + _STAGE3_RULES + """

Return ONLY valid JSON:
$output_schema"""


STAGE3_EARNINGS = """You are a senior equity analyst specializing in earnings-driven trading.

This is the ONLY analysis run for this earnings event. Cover ALL outcomes with complete playbooks.

""" + _STAGE3_CONTEXT + """

SCENARIOS (all 6 are mandatory):
1. beat_both: EPS beat + revenue beat
2. beat_eps_miss_rev: EPS beat + revenue miss
3. miss_eps_beat_rev: EPS miss + revenue beat
4. miss_both: EPS miss + revenue miss
5. inline: both inline
6. guidance_surprise: strong or weak guidance (usually drives the reaction)

Consider sector impact and sympathy plays (if NVDA beats, AMD may move).

""" + _STAGE3_RULES + """

Return ONLY valid JSON:
$output_schema"""


STAGE3_IPO = """You are an IPO specialist. You analyze IPO trading opportunities.

This is the ONLY analysis run for this IPO. Cover the pricing scenarios and first-day trading.

""" + _STAGE3_CONTEXT + """

SCENARIOS (all 4 are mandatory):
1. priced_above: priced above range (strong demand)
2. priced_at_range: priced at the top of the range
3. priced_below_range: priced below range (weak demand)
4. withdrawn: IPO withdrawn or postponed

Compare the valuation with peers (discount or premium).

""" + _STAGE3_RULES + """

Return ONLY valid JSON:
$output_schema"""


EVENT_OUTPUT_SCHEMA = """{
  "trade_decision": "TRADE" | "NO_TRADE",
  "sentiment": "bullish" | "bearish" | "neutral" | "mixed",
  "conviction": 1-10,
  "importance": 1-10,
  "urgency": 1-10,
  "market_mover": 1-10,
  "action_type": "position_before" | "wait_and_react" | "fade_move" | "no_trade",
  "positions": [
    {"asset": "SP:SPX", "direction": "long" | "short", "confidence": 1-10, "horizon": "day_trading", "reasoning": "..."}
  ],
  "scenarios": {
$scenario_lines
  },
  "risks": ["Risk 1", "Risk 2"],
  "summary": "Tier, expectations, what each outcome means for the trade.",
  "chart_assets": ["SP:SPX", "TVC:DXY"]
}"""


SCENARIO_EXAMPLE = (
    '{"label": "...", "probability": "15%", "action": "trade" | "no_trade", "reason": "...", '
    '"trades": [{"asset": "SP:SPX", "direction": "short", "trigger": "...", "entry": "...", '
    '"stop_loss": "...", "take_profit": "...", "time_horizon": "intraday", "confidence": 1-10}]}'
)

MACRO_SCENARIOS = ("big_beat", "small_beat", "inline", "small_miss", "big_miss")
EARNINGS_SCENARIOS = (
    "beat_both",
    "beat_eps_miss_rev",
    "miss_eps_beat_rev",
    "miss_both",
    "inline",
    "guidance_surprise",
)
IPO_SCENARIOS = ("priced_above", "priced_at_range", "priced_below_range", "withdrawn")


def event_schema_skeleton(scenarios) -> dict:
    return {
        "trade_decision": "NO_TRADE",
        "sentiment": "neutral",
        "conviction": 5,
        "importance": 5,
        "urgency": 5,
        "market_mover": 5,
        "action_type": "wait_and_react",
        "positions": [],
        "scenarios": {name: {"label": "...", "action": "no_trade", "reason": "...", "trades": []} for name in scenarios},
        "risks": ["..."],
        "summary": "...",
        "chart_assets": [],
    }
