# services/analysis/classifier.py
"""
Stage 1: classify an item and plan the data to collect.

The LLM decides category, affected assets, market-data requests and web
queries. Its output is normalized here (field aliases from older prompt
generations are accepted) and every symbol goes through the allow-list.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from config.pipeline_config import PipelineConfig
from schemas.analysis import DataRequest, Stage1Result, StageCost
from services.analysis.cost_accounting import add_usage, elapsed_ms, now
from services.analysis.prompts.prompt_strategies import render_stage1
from services.helpers.ai.json_helpers import parse_json_safe
from services.llm.llm_service import LLMClient
from services.market_data.request_types import DATA_MENU, REQUEST_TYPES
from services.symbols.allowed_symbols import AllowedSymbols
from services.symbols.symbol_validator import validate_symbols

logger = logging.getLogger(__name__)

MAX_WEB_QUERIES = 3
MAX_TITLE_CHARS = 100

CATEGORIES = ("forex", "crypto", "stocks", "commodities", "indices", "macro")
VOLATILITIES = ("low", "moderate", "high", "extreme")
CATEGORY_ALIASES = {
    "cryptocurrency": "crypto",
    "fx": "forex",
    "currencies": "forex",
    "equities": "stocks",
    "stock": "stocks",
    "equity": "stocks",
    "commodity": "commodities",
    "index": "indices",
}

_TRUE = ("true", "yes", "1", "y")


# ============================================================================
# NORMALIZATION
# ============================================================================

def _first_present(raw: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in raw and raw[k] is not None:
            return raw[k]
    return None


def _as_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return v != 0
    if isinstance(v, str):
        return v.strip().lower() in _TRUE
    return default


def _as_text(v: Any) -> str:
    return v.strip() if isinstance(v, str) else ""


def _str_list(v: Any) -> List[str]:
    if not isinstance(v, list):
        return []
    return [s.strip() for s in v if isinstance(s, str) and s.strip()]


def normalize_category(v: Any) -> str:
    c = _as_text(v).lower()
    c = CATEGORY_ALIASES.get(c, c)
    return c if c in CATEGORIES else "macro"


def normalize_tier(v: Any) -> int:
    try:
        t = int(float(v))
    except (TypeError, ValueError, OverflowError):
        return 2
    return t if t in (1, 2, 3) else 2


def normalize_volatility(v: Any) -> str:
    vol = _as_text(v).lower()
    return vol if vol in VOLATILITIES else "moderate"


def _normalize_requests(v: Any, allowed) -> List[DataRequest]:
    if not isinstance(v, list):
        return []
    out: List[DataRequest] = []
    for entry in v:
        if not isinstance(entry, dict):
            continue
        rtype = _as_text(entry.get("type")).lower()
        info = REQUEST_TYPES.get(rtype)
        if info is None:
            logger.debug("stage1.unknown_request_type type=%s", rtype[:40])
            continue
        symbols = validate_symbols(entry.get("symbols") or [], allowed)
        if info.per_symbol and not symbols:
            continue
        params = entry.get("params") if isinstance(entry.get("params"), dict) else {}
        out.append(DataRequest(type=rtype, symbols=symbols, params=params))
    return out


def _web_queries(raw: Dict[str, Any]) -> List[str]:
    structured = _first_present(raw, "web_queries", "required_web_metrics")
    if structured is not None:
        queries = _str_list(structured)
    else:
        # legacy free-form field, only when nothing structured came back
        queries = _str_list(raw.get("required_data"))
    return list(dict.fromkeys(queries))[:MAX_WEB_QUERIES]


def fallback_stage1(item) -> Stage1Result:
    return Stage1Result(
        title=(item.label() or item.item_type)[:MAX_TITLE_CHARS],
        reasoning="Classification output could not be parsed.",
        category="macro",
        proceed=False,
        is_fallback=True,
    )


def normalize_stage1(raw: Optional[Dict[str, Any]], *, item, allowed) -> Stage1Result:
    """Map a parsed Stage 1 object onto Stage1Result; None gives the conservative default."""
    if not isinstance(raw, dict):
        return fallback_stage1(item)

    is_news = item.item_type == "news"
    proceed_raw = _first_present(raw, "proceed", "should_build_infrastructure")
    # scheduled events always go on to synthesis
    proceed = _as_bool(proceed_raw, False) if is_news else True

    title = _as_text(raw.get("title")) or item.label() or item.item_type

    return Stage1Result(
        title=title[:MAX_TITLE_CHARS],
        analysis=_as_text(raw.get("analysis")),
        reasoning=_as_text(_first_present(raw, "reasoning", "infrastructure_reasoning")),
        category=normalize_category(raw.get("category")),
        affected_assets=validate_symbols(raw.get("affected_assets") or [], allowed),
        data_requests=_normalize_requests(_first_present(raw, "data_requests", "fmp_requests"), allowed),
        web_queries=_web_queries(raw),
        proceed=proceed,
        tier=normalize_tier(_first_present(raw, "tier", "event_tier")),
        expected_volatility=normalize_volatility(raw.get("expected_volatility")),
    )


# ============================================================================
# CLASSIFIER
# ============================================================================

class Stage1Classifier:
    def __init__(self, llm: LLMClient, config: PipelineConfig):
        self.llm = llm
        self.config = config

    async def classify(self, item, allowed: AllowedSymbols) -> Tuple[Stage1Result, StageCost]:
        """LLMUnavailableError propagates; a malformed answer does not."""
        prompt = render_stage1(item, data_menu=DATA_MENU, allowed_fragment=allowed.prompt_fragment)

        t0 = now()
        completion = await self.llm.complete(
            prompt,
            max_tokens=self.config.stage1_max_tokens,
            reasoning_budget=self.config.stage1_reasoning,
        )
        usage = add_usage(
            StageCost(),
            prompt_tokens=completion.usage.prompt_tokens,
            completion_tokens=completion.usage.completion_tokens,
            requests=1,
            price_table=self.config.llm_prices,
        )

        raw = parse_json_safe(completion.content)
        if raw is None:
            logger.warning(
                "stage1.parse_failed item_type=%s content_len=%s",
                item.item_type,
                len(completion.content or ""),
            )
            logger.debug("stage1.raw_head %s", (completion.content or "")[:200])

        result = normalize_stage1(raw, item=item, allowed=allowed.allowed)
        logger.info(
            "stage1.done item_type=%s proceed=%s tier=%s category=%s requests=%s queries=%s elapsed_ms=%s",
            item.item_type,
            result.proceed,
            result.tier,
            result.category,
            len(result.data_requests),
            len(result.web_queries),
            elapsed_ms(t0, now()),
        )
        return result, usage
