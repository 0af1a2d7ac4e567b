# services/analysis/normalize.py
"""
Stage 3 output -> Stage3Decision.

validate_and_normalize() is pure: it reads the parsed model output, never
mutates it, and always returns a decision that satisfies the invariants
(NO_TRADE has no positions, every asset is a chart symbol, every score is an
int in [1, 10]). Field names from both prompt generations are accepted.
"""
from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List, Optional

from schemas.analysis import (
    PositionMemory,
    Position,
    ScenarioPlan,
    ScenarioTrade,
    Stage1Result,
    Stage3Decision,
)
from services.analysis.position_memory import normalize_asset_key
from services.symbols.symbol_validator import filter_chart_symbols, is_chart_symbol

FALLBACK_SUMMARY = "Analysis failed due to parsing error."
FALLBACK_RISKS = ["JSON parse error - analysis incomplete"]
NO_POSITIONS_WARNING = "TRADE decision had no valid positions; downgraded to NO_TRADE"

MAX_RISKS = 10
MAX_POSITIONS = 10

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")
_SEP = re.compile(r"[\s\-]+")

DIRECTIONS = {
    "long": "long",
    "buy": "long",
    "bullish": "long",
    "short": "short",
    "sell": "short",
    "bearish": "short",
}

HORIZONS = {
    "scalping": "scalping",
    "scalp": "scalping",
    "day_trading": "day_trading",
    "day_trade": "day_trading",
    "daytrading": "day_trading",
    "intraday": "day_trading",
    "swing_trading": "swing_trading",
    "swing_trade": "swing_trading",
    "swing": "swing_trading",
    "position_trading": "position_trading",
    "position_trade": "position_trading",
    "position": "position_trading",
}

SENTIMENTS = ("bullish", "bearish", "neutral", "mixed")

INFO_QUALITY = {"verified": "verified", "speculative": "speculative", "rumor": "rumor", "rumour": "rumor"}
MARKET_REGIME = {"risk_on": "risk_on", "riskon": "risk_on", "risk_off": "risk_off", "riskoff": "risk_off"}
RISK_MODE = {
    "normal": "normal",
    "elevated": "elevated",
    "high_risk": "high_risk",
    "high": "high_risk",
}


def _key(v: Any) -> str:
    return _SEP.sub("_", str(v or "").strip().lower())


def _text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v.strip()
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return ""


def _dig(raw: Dict[str, Any], path: str) -> Any:
    cur: Any = raw
    for part in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


def _first(raw: Dict[str, Any], *paths: str) -> Any:
    for p in paths:
        v = _dig(raw, p)
        if v is not None and v != "":
            return v
    return None


def _str_list(v: Any, limit: int) -> List[str]:
    if not isinstance(v, list):
        return []
    out = [s.strip() for s in v if isinstance(s, str) and s.strip()]
    return list(dict.fromkeys(out))[:limit]


# ============================================================================
# SCALAR NORMALIZERS
# ============================================================================

def _number(v: Any) -> Optional[float]:
    if isinstance(v, bool) or v is None:
        return None
    try:
        n = float(str(v).strip().rstrip("%")) if isinstance(v, str) else float(v)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def clamp_score_10(v: Any, fallback: int) -> int:
    """Round half-up and clamp to [1, 10]; non-numeric gives the fallback."""
    n = _number(v)
    if n is None:
        return max(1, min(10, int(fallback)))
    return max(1, min(10, int(math.floor(n + 0.5))))


def clamp_confidence(v: Any, fallback: int = 5) -> int:
    """Like clamp_score_10, but values above 10 are read as percentages."""
    n = _number(v)
    if n is not None and n > 10:
        n = n / 10
    return clamp_score_10(n, fallback)


def derive_market_mover_score(tier: Any, volatility: Any) -> int:
    try:
        t = int(tier)
    except (TypeError, ValueError, OverflowError):
        t = 0
    base = 9 if t == 1 else 7 if t == 2 else 5
    vol = str(volatility or "").lower()
    if vol == "extreme":
        base += 2
    elif vol == "high":
        base += 1
    elif vol == "low":
        base -= 1
    return max(1, min(10, base))


def normalize_action(v: Any) -> Optional[str]:
    cleaned = _key(v)
    if cleaned in ("position_before", "positionbefore", "pre_position", "position"):
        return "position_before"
    if cleaned in ("wait_and_react", "wait_react", "wait_and_reaction"):
        return "wait_and_react"
    if cleaned in ("fade_move", "fade_the_move", "fade"):
        return "fade_move"
    if cleaned in ("no_trade", "notrade", "none"):
        return "no_trade"
    return None


def normalize_trade_decision(v: Any) -> Optional[str]:
    if isinstance(v, bool):
        return "TRADE" if v else "NO_TRADE"
    cleaned = _key(v)
    if cleaned in ("trade", "yes"):
        return "TRADE"
    if cleaned in ("no_trade", "notrade", "no", "none"):
        return "NO_TRADE"
    return None


def normalize_direction(v: Any) -> Optional[str]:
    return DIRECTIONS.get(_key(v))


def normalize_horizon(v: Any) -> str:
    return HORIZONS.get(_key(v), "day_trading")


def normalize_sentiment(v: Any) -> Optional[str]:
    s = _key(v)
    return s if s in SENTIMENTS else None


def _lookup(table: Dict[str, str], v: Any) -> Optional[str]:
    return table.get(_key(v))


def camel_to_snake(name: str) -> str:
    return _CAMEL.sub("_", name.strip()).lower()


# ============================================================================
# STRUCTURES
# ============================================================================

def _minutes(v: Any) -> Optional[int]:
    n = _number(v)
    if n is None or n < 0:
        return None
    return int(round(n))


def normalize_positions(raw_positions: Any) -> List[Position]:
    if not isinstance(raw_positions, list):
        return []
    out: List[Position] = []
    seen = set()
    for p in raw_positions:
        if not isinstance(p, dict):
            continue
        asset = p.get("asset")
        direction = normalize_direction(p.get("direction"))
        if not is_chart_symbol(asset) or direction is None:
            continue
        asset = asset.strip()
        if (asset, direction) in seen:
            continue
        seen.add((asset, direction))
        out.append(
            Position(
                asset=asset,
                direction=direction,
                confidence=clamp_confidence(p.get("confidence")),
                horizon=normalize_horizon(_first(p, "horizon", "trade_type", "time_horizon")),
                momentum_minutes=_minutes(_first(p, "momentum_minutes", "momentum_duration_minutes")),
                reasoning=_text(p.get("reasoning")),
            )
        )
    return out[:MAX_POSITIONS]


def _scenario_trades(raw_trades: Any) -> List[ScenarioTrade]:
    if not isinstance(raw_trades, list):
        return []
    out: List[ScenarioTrade] = []
    for t in raw_trades:
        if not isinstance(t, dict):
            continue
        asset = t.get("asset")
        direction = normalize_direction(t.get("direction"))
        if not is_chart_symbol(asset) or direction is None:
            continue
        out.append(
            ScenarioTrade(
                asset=asset.strip(),
                direction=direction,
                trigger=_text(t.get("trigger")),
                entry=_text(t.get("entry")),
                stop_loss=_text(_first(t, "stop_loss", "stopLoss")),
                take_profit=_text(_first(t, "take_profit", "takeProfit")),
                time_horizon=_text(_first(t, "time_horizon", "timeHorizon")),
                confidence=clamp_confidence(t.get("confidence")),
            )
        )
    return out


def normalize_scenarios(raw: Dict[str, Any]) -> List[ScenarioPlan]:
    """
    Accepts the unified `scenarios` map (plans with trades) as well as the older
    split shape (`scenarios` with probabilities + `scenarioPlaybook` with trades).
    """
    playbook = raw.get("scenarioPlaybook")
    scenarios = raw.get("scenarios")
    if not isinstance(playbook, dict):
        playbook = scenarios
        scenarios = None
    if isinstance(playbook, list):
        playbook = {str(p.get("name") or i): p for i, p in enumerate(playbook) if isinstance(p, dict)}
    if not isinstance(playbook, dict):
        return []
    probabilities = scenarios if isinstance(scenarios, dict) else {}

    plans: List[ScenarioPlan] = []
    for name, plan in playbook.items():
        if not isinstance(plan, dict):
            continue
        trades = _scenario_trades(plan.get("trades"))
        declared = normalize_action(plan.get("action"))
        action = "trade" if trades and declared != "no_trade" else "no_trade"
        extra = probabilities.get(name) if isinstance(probabilities.get(name), dict) else {}
        probability = _text(plan.get("probability")) or _text(extra.get("probability")) or None
        plans.append(
            ScenarioPlan(
                name=camel_to_snake(str(name)),
                label=_text(plan.get("label")),
                probability=probability,
                action=action,
                reason=_text(_first(plan, "reason", "notes")),
                trades=trades if action == "trade" else [],
            )
        )
    return plans


def _infer_sentiment(positions: Iterable[Position]) -> str:
    directions = {p.direction for p in positions}
    if directions == {"long"}:
        return "bullish"
    if directions == {"short"}:
        return "bearish"
    if directions:
        return "mixed"
    return "neutral"


def memory_conflicts(positions: Iterable[Position], memory: Optional[PositionMemory]) -> List[str]:
    if memory is None:
        return []
    warnings: List[str] = []
    for p in positions:
        signal = memory.signal_for(normalize_asset_key(p.asset))
        if (signal == "BUY" and p.direction == "short") or (signal == "SELL" and p.direction == "long"):
            warnings.append(f"{p.asset} {p.direction} conflicts with open {signal} signal in position memory")
    return warnings


# ============================================================================
# ENTRY POINTS
# ============================================================================

def fallback_decision(stage1: Stage1Result) -> Stage3Decision:
    return Stage3Decision(
        trade_decision="NO_TRADE",
        sentiment="neutral",
        conviction=5,
        importance=derive_market_mover_score(stage1.tier, stage1.expected_volatility),
        urgency=5,
        market_mover=derive_market_mover_score(stage1.tier, stage1.expected_volatility),
        action_type="no_trade",
        risks=list(FALLBACK_RISKS),
        summary=FALLBACK_SUMMARY,
        is_fallback=True,
    )


def early_exit_decision(stage1: Stage1Result) -> Stage3Decision:
    return Stage3Decision(
        trade_decision="NO_TRADE",
        sentiment="neutral",
        conviction=1,
        importance=1,
        urgency=1,
        market_mover=1,
        action_type="no_trade",
        risks=["News not worth building trading infrastructure"],
        summary=stage1.reasoning or stage1.analysis or stage1.title,
    )


def validate_and_normalize(
    raw: Optional[Dict[str, Any]],
    *,
    stage1: Stage1Result,
    item_type: str,
    memory: Optional[PositionMemory] = None,
) -> Stage3Decision:
    if not isinstance(raw, dict):
        return fallback_decision(stage1)

    warnings: List[str] = []
    positions = normalize_positions(raw.get("positions"))

    decision = normalize_trade_decision(_first(raw, "trade_decision", "tradeSetup.hasTrade"))
    if decision is None:
        decision = "TRADE" if positions else "NO_TRADE"
    if decision == "TRADE" and not positions:
        decision = "NO_TRADE"
        warnings.append(NO_POSITIONS_WARNING)
    if decision == "NO_TRADE":
        positions = []

    derived_mover = derive_market_mover_score(stage1.tier, stage1.expected_volatility)
    conviction = clamp_score_10(_first(raw, "conviction", "conviction_score", "preEventStrategy.conviction"), 5)
    action = normalize_action(
        _first(raw, "action_type", "recommended_approach", "preEventStrategy.recommendedApproach")
    )
    if action is None:
        action = "position_before" if decision == "TRADE" else "no_trade"

    chart_assets = filter_chart_symbols(_first(raw, "chart_assets", "tradingview_assets") or [])
    if not chart_assets:
        chart_assets = list(dict.fromkeys(p.asset for p in positions))

    warnings.extend(memory_conflicts(positions, memory))

    return Stage3Decision(
        trade_decision=decision,
        sentiment=normalize_sentiment(raw.get("sentiment")) or _infer_sentiment(positions),
        conviction=conviction,
        importance=clamp_score_10(_first(raw, "importance", "importance_score"), derived_mover),
        urgency=clamp_score_10(_first(raw, "urgency", "urgency_score"), conviction),
        market_mover=clamp_score_10(
            _first(raw, "market_mover", "market_mover_score", "market_impact"), derived_mover
        ),
        action_type=action,
        positions=positions,
        chart_assets=chart_assets,
        risks=_str_list(_first(raw, "risks", "main_risks", "keyRisks"), MAX_RISKS),
        summary=_text(_first(raw, "summary", "overall_assessment")) or stage1.analysis,
        info_quality=_lookup(INFO_QUALITY, raw.get("info_quality")),
        market_regime=_lookup(MARKET_REGIME, raw.get("market_regime")),
        risk_mode=_lookup(RISK_MODE, raw.get("risk_mode")),
        scenarios=normalize_scenarios(raw) if item_type != "news" else [],
        warnings=warnings,
    )
