from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


ItemType = Literal["news", "macro", "earnings", "ipo", "crypto"]

Category = Literal["forex", "crypto", "stocks", "commodities", "indices", "macro"]
Volatility = Literal["low", "moderate", "high", "extreme"]
Tier = Literal[1, 2, 3]

TradeDecision = Literal["TRADE", "NO_TRADE"]
Sentiment = Literal["bullish", "bearish", "neutral", "mixed"]
ActionType = Literal["position_before", "wait_and_react", "fade_move", "no_trade"]
Direction = Literal["long", "short"]
Horizon = Literal["scalping", "day_trading", "swing_trading", "position_trading"]
InfoQuality = Literal["verified", "speculative", "rumor"]
MarketRegime = Literal["risk_on", "risk_off"]
RiskMode = Literal["normal", "elevated", "high_risk"]
MemorySignal = Literal["BUY", "SELL", "HOLD"]

Score = Annotated[int, Field(ge=1, le=10)]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Inputs ──────────────────────────────────────────────────────────────

class NewsInput(_Frozen):
    item_type: Literal["news"] = "news"
    headline: str = Field(min_length=1, max_length=500)
    body: str = Field(default="", max_length=50000)
    published_at: str
    source: Optional[str] = None
    url: Optional[str] = None

    @field_validator("headline", "body")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    def as_of(self) -> str:
        return self.published_at

    def label(self) -> str:
        return self.headline[:100]


class _EventBase(_Frozen):
    name: str = ""
    date: str
    time: str = ""
    timezone: str = "UTC"

    def as_of(self) -> str:
        return f"{self.date}T{self.time}" if self.time else self.date

    def label(self) -> str:
        return self.name


class MacroEventInput(_EventBase):
    item_type: Literal["macro"] = "macro"
    country: str = ""
    currency: str = ""
    importance: str = ""
    forecast: Optional[float] = None
    previous: Optional[float] = None
    forecast_low: Optional[float] = None
    forecast_median: Optional[float] = None
    forecast_high: Optional[float] = None


class CryptoEventInput(MacroEventInput):
    item_type: Literal["crypto"] = "crypto"  # type: ignore[assignment]


class EarningsEventInput(_EventBase):
    item_type: Literal["earnings"] = "earnings"
    symbol: str
    company_name: str = ""
    eps_estimate: Optional[float] = None
    revenue_estimate: Optional[float] = None
    previous_eps: Optional[float] = None

    def label(self) -> str:
        return self.name or f"{self.symbol} earnings"


class IpoEventInput(_EventBase):
    item_type: Literal["ipo"] = "ipo"
    company_name: str
    symbol: Optional[str] = None
    exchange: Optional[str] = None
    price_range_low: Optional[float] = None
    price_range_high: Optional[float] = None
    ipo_price: Optional[float] = None
    shares: Optional[float] = None

    def label(self) -> str:
        return self.name or f"{self.company_name} IPO"


AnalysisInput = Annotated[
    Union[NewsInput, MacroEventInput, CryptoEventInput, EarningsEventInput, IpoEventInput],
    Field(discriminator="item_type"),
]


# ── Stage 1 ─────────────────────────────────────────────────────────────

class DataRequest(_Frozen):
    type: str
    symbols: List[str] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict)


class Stage1Result(_Frozen):
    title: str
    analysis: str = ""
    reasoning: str = ""
    category: Category = "macro"
    affected_assets: List[str] = Field(default_factory=list)
    data_requests: List[DataRequest] = Field(default_factory=list)
    web_queries: List[str] = Field(default_factory=list, max_length=3)
    proceed: bool = False
    tier: Tier = 2
    expected_volatility: Volatility = "moderate"
    is_fallback: bool = False


# ── Stage 2 ─────────────────────────────────────────────────────────────

class WebSnippet(_Frozen):
    query: str
    text: str
    citations: List[str] = Field(default_factory=list)
    origin: Literal["ranked", "fallback"] = "ranked"


class NarrativeMetrics(_Frozen):
    model_config = ConfigDict(frozen=True, extra="ignore")

    bias: Sentiment
    priced_in_0_10: int = Field(ge=0, le=10)
    confidence_0_10: int = Field(ge=0, le=10)
    second_order_effects: List[str] = Field(default_factory=list)
    invalidation_triggers: List[str] = Field(default_factory=list)


class ExternalDataBundle(_Frozen):
    market_data: Optional[Dict[str, Any]] = None
    web_snippets: List[WebSnippet] = Field(default_factory=list)
    narrative_metrics: Optional[NarrativeMetrics] = None
    data_gaps: List[str] = Field(default_factory=list)

    def has_market_data(self) -> bool:
        return bool(self.market_data) and any(v is not None for v in self.market_data.values())


# ── Position memory ─────────────────────────────────────────────────────

class MemoryPosition(_Frozen):
    asset: str
    direction: MemorySignal
    confidence: Optional[int] = None


class MemoryAnalysis(_Frozen):
    date: str
    summary: str = Field(default="", max_length=600)
    positions: List[MemoryPosition] = Field(default_factory=list, max_length=5)


class AssetMemory(_Frozen):
    asset: str
    last_signal: Optional[MemorySignal] = None
    trend: List[MemorySignal] = Field(default_factory=list, max_length=5)
    recent_analyses: List[MemoryAnalysis] = Field(default_factory=list, max_length=3)


class PositionMemory(_Frozen):
    assets: List[AssetMemory] = Field(default_factory=list)

    def signal_for(self, asset_key: str) -> Optional[str]:
        for a in self.assets:
            if a.asset == asset_key:
                return a.last_signal
        return None


# ── Stage 3 ─────────────────────────────────────────────────────────────

class Position(_Frozen):
    asset: str
    direction: Direction
    confidence: Score = 5
    horizon: Horizon = "day_trading"
    momentum_minutes: Optional[int] = None
    reasoning: str = ""


class ScenarioTrade(_Frozen):
    asset: str
    direction: Direction
    trigger: str = ""
    entry: str = ""
    stop_loss: str = ""
    take_profit: str = ""
    time_horizon: str = ""
    confidence: Score = 5


class ScenarioPlan(_Frozen):
    name: str
    label: str = ""
    probability: Optional[str] = None
    action: Literal["trade", "no_trade"] = "no_trade"
    reason: str = ""
    trades: List[ScenarioTrade] = Field(default_factory=list)


class Stage3Decision(_Frozen):
    trade_decision: TradeDecision = "NO_TRADE"
    sentiment: Sentiment = "neutral"
    conviction: Score = 5
    importance: Score = 5
    urgency: Score = 5
    market_mover: Score = 5
    action_type: ActionType = "no_trade"
    positions: List[Position] = Field(default_factory=list)
    chart_assets: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    summary: str = ""
    info_quality: Optional[InfoQuality] = None
    market_regime: Optional[MarketRegime] = None
    risk_mode: Optional[RiskMode] = None
    scenarios: List[ScenarioPlan] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    is_fallback: bool = False


# ── Result ──────────────────────────────────────────────────────────────

class StageCost(_Frozen):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    requests: int = 0
    cost: float = 0.0


class CostSummary(_Frozen):
    stage1: StageCost = Field(default_factory=StageCost)
    stage2: StageCost = Field(default_factory=StageCost)
    stage3: StageCost = Field(default_factory=StageCost)
    total: float = 0.0


class TimingSummary(_Frozen):
    stage1_ms: int = 0
    stage2_ms: int = 0
    stage3_ms: int = 0
    total_ms: int = 0


class PipelineInfo(_Frozen):
    generated_at: str
    early_exit: bool = False
    synthesis_path: List[str] = Field(default_factory=list)
    models: Dict[str, str] = Field(default_factory=dict)


class AnalysisResult(_Frozen):
    input: AnalysisInput
    stage1: Stage1Result
    collected_data: Optional[ExternalDataBundle] = None
    position_memory: Optional[PositionMemory] = None
    stage3: Stage3Decision
    cost: CostSummary
    timing: TimingSummary
    pipeline: PipelineInfo


class BatchItemResult(_Frozen):
    input: AnalysisInput
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
