"""
Prompt strategy map.

One PromptStrategy per item_type holds the Stage 1 / Stage 3 templates, the
function rendering the item's details, and the JSON skeleton used by the repair
prompt. Adding an item type means adding an entry here, nothing else.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from string import Template
from typing import Any, Callable, Dict, List, Optional, Sequence

from config.pipeline_config import ContextCaps
from schemas.analysis import ExternalDataBundle, NarrativeMetrics, PositionMemory, Stage1Result, WebSnippet
from services.analysis.prompts import event_prompts as ev
from services.analysis.prompts import news_prompts as nw

NO_MARKET_DATA = "(No market data available)"
NO_WEB_RESEARCH = "(No web research available)"
NO_NARRATIVE = "(No narrative metrics available)"
NO_MEMORY = "(No position memory available - no recent news trades on these assets)"
NO_GAPS = "(none)"

JSON_ONLY_SUFFIX = "\n\nRespond ONLY with valid JSON."


def _na(v: Any) -> str:
    if v is None or v == "":
        return "N/A"
    return str(v)


@dataclass(frozen=True)
class PromptStrategy:
    stage1_template: str
    stage3_template: str
    details: Callable[[Any], Dict[str, str]]
    details_block: Callable[[Any], str]
    output_schema: str
    schema_skeleton: Dict[str, Any]


# ── Item details ────────────────────────────────────────────────────────

def _news_details(item) -> Dict[str, str]:
    return {
        "headline": item.headline,
        "body": item.body,
        "published_at": item.published_at,
        "source": _na(item.source),
    }


def _news_block(item) -> str:
    return f"Date: {item.published_at}\nHeadline: {item.headline}\n\n{item.body}"


def _macro_details(item) -> Dict[str, str]:
    return {
        "event_date": item.as_of(),
        "event_name": item.name,
        "country": _na(item.country),
        "currency": _na(item.currency),
        "importance": _na(item.importance),
        "forecast": _na(item.forecast),
        "previous": _na(item.previous),
    }


def _macro_block(item) -> str:
    median = item.forecast_median if item.forecast_median is not None else item.forecast
    return (
        f"Event: {item.name}\n"
        f"Date: {item.date} {item.time} ({item.timezone})\n"
        f"Country: {_na(item.country)} | Currency: {_na(item.currency)} | Importance: {_na(item.importance)}\n"
        f"Forecast: {_na(item.forecast)}\n"
        f"Previous: {_na(item.previous)}\n"
        f"Forecast Range: Low {_na(item.forecast_low)} | Median {_na(median)} | High {_na(item.forecast_high)}"
    )


def _earnings_details(item) -> Dict[str, str]:
    return {
        "event_date": item.as_of(),
        "symbol": item.symbol,
        "company_name": item.company_name or item.symbol,
        "eps_estimate": _na(item.eps_estimate),
        "revenue_estimate": _na(item.revenue_estimate),
        "previous_eps": _na(item.previous_eps),
    }


def _earnings_block(item) -> str:
    return (
        f"Company: {item.symbol} ({item.company_name or item.symbol})\n"
        f"Date: {item.date} {item.time} ({item.timezone})\n"
        f"EPS Estimate: {_na(item.eps_estimate)}\n"
        f"Revenue Estimate: {_na(item.revenue_estimate)}\n"
        f"Previous EPS: {_na(item.previous_eps)}"
    )


def _ipo_details(item) -> Dict[str, str]:
    return {
        "event_date": item.as_of(),
        "company_name": item.company_name,
        "symbol": _na(item.symbol),
        "exchange": _na(item.exchange),
        "price_range_low": _na(item.price_range_low),
        "price_range_high": _na(item.price_range_high),
        "shares": _na(item.shares),
    }


def _ipo_block(item) -> str:
    return (
        f"Company: {item.company_name} ({_na(item.symbol)})\n"
        f"Exchange: {_na(item.exchange)}\n"
        f"Date: {item.date} {item.time} ({item.timezone})\n"
        f"Price Range: {_na(item.price_range_low)} - {_na(item.price_range_high)}\n"
        f"IPO Price: {_na(item.ipo_price)}\n"
        f"Shares Offered: {_na(item.shares)}"
    )


def _event_schema(scenarios: Sequence[str]) -> str:
    lines = ",\n".join(f'    "{name}": {ev.SCENARIO_EXAMPLE}' for name in scenarios)
    return Template(ev.EVENT_OUTPUT_SCHEMA).substitute(scenario_lines=lines)


_MACRO = PromptStrategy(
    stage1_template=ev.STAGE1_MACRO,
    stage3_template=ev.STAGE3_MACRO,
    details=_macro_details,
    details_block=_macro_block,
    output_schema=_event_schema(ev.MACRO_SCENARIOS),
    schema_skeleton=ev.event_schema_skeleton(ev.MACRO_SCENARIOS),
)

PROMPT_STRATEGIES: Dict[str, PromptStrategy] = {
    "news": PromptStrategy(
        stage1_template=nw.STAGE1_NEWS,
        stage3_template=nw.STAGE3_NEWS,
        details=_news_details,
        details_block=_news_block,
        output_schema=nw.NEWS_OUTPUT_SCHEMA,
        schema_skeleton=nw.NEWS_SCHEMA_SKELETON,
    ),
    "macro": _MACRO,
    "crypto": _MACRO,
    "earnings": PromptStrategy(
        stage1_template=ev.STAGE1_EARNINGS,
        stage3_template=ev.STAGE3_EARNINGS,
        details=_earnings_details,
        details_block=_earnings_block,
        output_schema=_event_schema(ev.EARNINGS_SCENARIOS),
        schema_skeleton=ev.event_schema_skeleton(ev.EARNINGS_SCENARIOS),
    ),
    "ipo": PromptStrategy(
        stage1_template=ev.STAGE1_IPO,
        stage3_template=ev.STAGE3_IPO,
        details=_ipo_details,
        details_block=_ipo_block,
        output_schema=_event_schema(ev.IPO_SCENARIOS),
        schema_skeleton=ev.event_schema_skeleton(ev.IPO_SCENARIOS),
    ),
}


def strategy_for(item_type: str) -> PromptStrategy:
    try:
        return PROMPT_STRATEGIES[item_type]
    except KeyError:
        raise ValueError(f"Unsupported item_type: {item_type}") from None


# ── Context blocks ──────────────────────────────────────────────────────

def _dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2, default=str)


def market_block(market_data: Optional[Dict[str, Any]], max_chars: int) -> str:
    if not market_data or all(v is None for v in market_data.values()):
        return NO_MARKET_DATA
    return _dumps(market_data)[:max_chars]


def web_block(snippets: Sequence[WebSnippet], caps: ContextCaps) -> str:
    if not snippets:
        return NO_WEB_RESEARCH
    parts: List[str] = []
    for i, s in enumerate(snippets[: caps.max_snippets], start=1):
        sources = ", ".join(s.citations[: caps.citations_per_snippet]) or "N/A"
        parts.append(f"({i}) QUERY: {s.query}\nANSWER:\n{s.text[: caps.snippet_chars]}\nSOURCES: {sources}")
    return "\n\n".join(parts)


def narrative_block(metrics: Optional[NarrativeMetrics]) -> str:
    if metrics is None:
        return NO_NARRATIVE
    return _dumps(metrics.model_dump())


def memory_block(memory: Optional[PositionMemory], max_chars: int) -> str:
    if memory is None or not memory.assets:
        return NO_MEMORY
    return _dumps(memory.model_dump(exclude_none=True))[:max_chars]


def gaps_block(gaps: Sequence[str]) -> str:
    if not gaps:
        return NO_GAPS
    return "\n".join(f"- {g}" for g in gaps)


def stage1_json(stage1: Stage1Result) -> str:
    return json.dumps(stage1.model_dump(exclude={"is_fallback"}), ensure_ascii=False, default=str)


# ── Renderers ───────────────────────────────────────────────────────────

def render_stage1(item, *, data_menu: str, allowed_fragment: str) -> str:
    strategy = strategy_for(item.item_type)
    values = dict(strategy.details(item))
    values.update(data_menu=data_menu, allowed_symbols=allowed_fragment)
    return Template(strategy.stage1_template).safe_substitute(values)


@dataclass(frozen=True)
class Stage3Context:
    item: Any
    stage1: Stage1Result
    bundle: ExternalDataBundle
    memory: Optional[PositionMemory] = None

    @property
    def strategy(self) -> PromptStrategy:
        return strategy_for(self.item.item_type)


def render_stage3(ctx: Stage3Context, caps: ContextCaps) -> str:
    strategy = ctx.strategy
    prompt = Template(strategy.stage3_template).safe_substitute(
        stage1_json=stage1_json(ctx.stage1),
        item_details=strategy.details_block(ctx.item),
        market_data=market_block(ctx.bundle.market_data, caps.market_chars),
        web_research=web_block(ctx.bundle.web_snippets, caps),
        narrative_metrics=narrative_block(ctx.bundle.narrative_metrics),
        position_memory=memory_block(ctx.memory, caps.memory_chars),
        data_gaps=gaps_block(ctx.bundle.data_gaps),
        output_schema=strategy.output_schema,
    )
    return prompt + JSON_ONLY_SUFFIX


def render_repair(ctx: Stage3Context, previous: str, *, full_caps: ContextCaps, caps: ContextCaps) -> str:
    """Regenerate-as-JSON prompt: schema skeleton, trimmed context, previous output."""
    strategy = ctx.strategy
    return "\n".join(
        [
            "You must return ONLY valid JSON matching the Stage 3 schema below.",
            "No markdown, no code fences, no commentary.",
            "If the previous output was empty or invalid, regenerate a correct JSON from scratch using the context.",
            "Rules:",
            "- Output MUST be a single JSON object.",
            "- Keep strings concise.",
            "- Ensure all required keys exist with correct inner structure.",
            "",
            "REQUIRED_SCHEMA (example skeleton):",
            _dumps(strategy.schema_skeleton),
            "",
            "CONTEXT_STAGE1_JSON:",
            stage1_json(ctx.stage1),
            "",
            "CONTEXT_ITEM_DETAILS:",
            strategy.details_block(ctx.item),
            "",
            "CONTEXT_MARKET_DATA:",
            market_block(ctx.bundle.market_data, full_caps.market_chars)[: caps.market_chars],
            "",
            "CONTEXT_WEB_RESEARCH:",
            web_block(ctx.bundle.web_snippets, full_caps)[: caps.snippet_chars],
            "",
            "CONTEXT_POSITION_MEMORY:",
            memory_block(ctx.memory, full_caps.memory_chars)[: caps.memory_chars],
            "",
            "PREVIOUS_OUTPUT_START",
            previous or "",
            "PREVIOUS_OUTPUT_END",
        ]
    )
