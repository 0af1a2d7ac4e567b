# services/analysis/data_collector.py
"""
Stage 2: collect external data for the synthesizer.

Four activities run concurrently:
  1. deterministic market-data fetch (one slot per request type)
  2. ranked web research over the Stage 1 queries
  3. narrative metrics (one aggregated research query answered as JSON)
  4. fallback research for market-data slots that came back empty

Nothing here raises: every failure becomes a null slot plus a data gap.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from string import Template
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from config.pipeline_config import PipelineConfig
from schemas.analysis import DataRequest, ExternalDataBundle, NarrativeMetrics, Stage1Result, StageCost, WebSnippet
from services.analysis.cost_accounting import add_usage, elapsed_ms, merge_costs, now
from services.helpers.ai.json_helpers import parse_json_safe
from services.market_data.fmp_client import FMPClient, MarketDataError
from services.market_data.request_types import MAX_REQUESTS, MAX_SYMBOLS_PER_REQUEST, describe
from services.research.perplexity_client import PerplexityResearchClient, WebResearchResult
from services.research.query_ranking import rank_web_queries

logger = logging.getLogger(__name__)

NARRATIVE_SYSTEM_PROMPT = (
    "You are a markets narrative analyst. Answer ONLY with a JSON object, no prose, no code fences."
)

NARRATIVE_QUERY = """Assess the current market narrative for: $title
Assets: $assets

Return ONLY this JSON object:
{"bias": "bullish" | "bearish" | "neutral" | "mixed",
 "priced_in_0_10": 0-10,
 "confidence_0_10": 0-10,
 "second_order_effects": ["..."],
 "invalidation_triggers": ["..."]}"""


@dataclass
class _Partial:
    snippets: List[WebSnippet] = field(default_factory=list)
    gaps: List[str] = field(default_factory=list)
    usage: StageCost = field(default_factory=StageCost)


def merge_requests(requests: List[DataRequest]) -> List[DataRequest]:
    """One request per type (symbols unioned, first params win), capped."""
    merged: Dict[str, DataRequest] = {}
    for req in requests:
        prev = merged.get(req.type)
        if prev is None:
            if len(merged) >= MAX_REQUESTS:
                continue
            merged[req.type] = DataRequest(
                type=req.type,
                symbols=list(dict.fromkeys(req.symbols))[:MAX_SYMBOLS_PER_REQUEST],
                params=req.params,
            )
        else:
            symbols = list(dict.fromkeys(prev.symbols + req.symbols))[:MAX_SYMBOLS_PER_REQUEST]
            merged[req.type] = DataRequest(type=prev.type, symbols=symbols, params=prev.params)
    return list(merged.values())


def fallback_query(req: DataRequest, as_of: str) -> str:
    subject = ", ".join(req.symbols) if req.symbols else "the US market"
    return f"What is the {describe(req.type)} for {subject} as of {as_of}? Give specific numbers and dates."


class DataCollector:
    def __init__(
        self,
        market: Optional[FMPClient],
        research: Optional[PerplexityResearchClient],
        config: PipelineConfig,
    ):
        self.market = market
        self.research = research
        self.config = config

    @property
    def _research_enabled(self) -> bool:
        return self.research is not None and self.research.enabled

    async def collect(self, stage1: Stage1Result, as_of: str) -> Tuple[ExternalDataBundle, StageCost]:
        t0 = now()
        requests = merge_requests(stage1.data_requests)

        market_task = asyncio.ensure_future(self._fetch_market(requests, as_of))
        results = await asyncio.gather(
            market_task,
            self._ranked_research(stage1.web_queries),
            self._narrative(stage1),
            self._fallback_research(requests, market_task, as_of),
            return_exceptions=True,
        )

        market_data: Optional[Dict[str, Any]] = None
        narrative: Optional[NarrativeMetrics] = None
        gaps: List[str] = []
        ranked, fallback = _Partial(), _Partial()
        usage = StageCost()

        market_res, ranked_res, narrative_res, fallback_res = results
        if isinstance(market_res, BaseException):
            logger.error("stage2.market_failed err=%s", market_res)
            gaps.append("market data: collection failed")
        else:
            market_data, market_gaps = market_res
            gaps.extend(market_gaps)

        if isinstance(ranked_res, BaseException):
            logger.error("stage2.research_failed err=%s", ranked_res)
            gaps.append("web research: collection failed")
        else:
            ranked = ranked_res

        if isinstance(narrative_res, BaseException):
            logger.error("stage2.narrative_failed err=%s", narrative_res)
        else:
            narrative, narrative_usage = narrative_res
            usage = merge_costs(usage, narrative_usage)

        if isinstance(fallback_res, BaseException):
            logger.error("stage2.fallback_failed err=%s", fallback_res)
        else:
            fallback = fallback_res

        gaps.extend(ranked.gaps)
        gaps.extend(fallback.gaps)
        usage = merge_costs(usage, ranked.usage, fallback.usage)

        bundle = ExternalDataBundle(
            market_data=market_data,
            web_snippets=ranked.snippets + fallback.snippets,
            narrative_metrics=narrative,
            data_gaps=list(dict.fromkeys(gaps)),
        )
        logger.info(
            "stage2.done requests=%s market_slots=%s snippets=%s narrative=%s gaps=%s elapsed_ms=%s",
            len(requests),
            sum(1 for v in (market_data or {}).values() if v is not None),
            len(bundle.web_snippets),
            narrative is not None,
            len(bundle.data_gaps),
            elapsed_ms(t0, now()),
        )
        return bundle, usage

    # ------------------------------------------------------------------
    # market data
    # ------------------------------------------------------------------

    async def _fetch_one(self, req: DataRequest, as_of: str) -> Tuple[Optional[Any], Optional[str]]:
        label = f"{req.type} {','.join(req.symbols)}".strip()
        if self.market is None or not self.market.enabled:
            return None, f"market data unavailable: {label} (no provider configured)"
        try:
            payload = await self.market.fetch(req.type, req.symbols, req.params, as_of)
        except MarketDataError as e:
            logger.warning("stage2.market_error type=%s err=%s", req.type, e)
            return None, f"market data failed: {label}"
        if payload is None:
            return None, f"market data empty: {label}"
        return payload, None

    async def _fetch_market(
        self, requests: List[DataRequest], as_of: str
    ) -> Tuple[Optional[Dict[str, Any]], List[str]]:
        if not requests:
            return None, []
        results = await asyncio.gather(*(self._fetch_one(r, as_of) for r in requests))
        slots: Dict[str, Any] = {}
        gaps: List[str] = []
        for req, (payload, gap) in zip(requests, results):
            slots[req.type] = payload
            if gap:
                gaps.append(gap)
        return slots, gaps

    # ------------------------------------------------------------------
    # research
    # ------------------------------------------------------------------

    async def _search(self, query: str, origin: str, partial: _Partial, system: Optional[str] = None) -> None:
        kwargs = {"system": system} if system else {}
        res: Optional[WebResearchResult] = await self.research.search(query, **kwargs)
        partial.usage = add_usage(
            partial.usage,
            prompt_tokens=res.prompt_tokens if res else 0,
            completion_tokens=res.completion_tokens if res else 0,
            requests=1,
            price_table=self.config.research_prices,
        )
        if res is None:
            partial.gaps.append(f"web research returned nothing: {query[:120]}")
            return
        partial.snippets.append(WebSnippet(query=query, text=res.text, citations=res.citations, origin=origin))

    async def _run_queries(self, queries: List[str], origin: str) -> _Partial:
        partials = [_Partial() for _ in queries]
        await asyncio.gather(*(self._search(q, origin, p) for q, p in zip(queries, partials)))
        out = _Partial()
        for p in partials:
            out.snippets.extend(p.snippets)
            out.gaps.extend(p.gaps)
            out.usage = merge_costs(out.usage, p.usage)
        return out

    async def _ranked_research(self, queries: List[str]) -> _Partial:
        selected = rank_web_queries(queries, limit=self.config.max_ranked_queries)
        if not selected:
            return _Partial()
        if not self._research_enabled:
            return _Partial(gaps=["web research unavailable (no provider configured)"])
        return await self._run_queries(selected, "ranked")

    async def _fallback_research(
        self, requests: List[DataRequest], market_task: "asyncio.Future", as_of: str
    ) -> _Partial:
        if not self._research_enabled or not requests:
            return _Partial()
        slots, _ = await market_task
        missing = [r for r in requests if (slots or {}).get(r.type) is None]
        if not missing:
            return _Partial()
        queries = [fallback_query(r, as_of) for r in missing[: self.config.max_fallback_queries]]
        logger.info("stage2.fallback_research missing=%s issued=%s", len(missing), len(queries))
        return await self._run_queries(queries, "fallback")

    async def _narrative(self, stage1: Stage1Result) -> Tuple[Optional[NarrativeMetrics], StageCost]:
        if not self.config.enable_narrative_metrics or not self._research_enabled:
            return None, StageCost()
        query = Template(NARRATIVE_QUERY).safe_substitute(
            title=stage1.title,
            assets=", ".join(stage1.affected_assets) or "broad market",
        )
        res = await self.research.search(query, system=NARRATIVE_SYSTEM_PROMPT)
        usage = add_usage(
            StageCost(),
            prompt_tokens=res.prompt_tokens if res else 0,
            completion_tokens=res.completion_tokens if res else 0,
            requests=1,
            price_table=self.config.research_prices,
        )
        if res is None:
            return None, usage
        parsed = parse_json_safe(res.text)
        if parsed is None:
            logger.info("stage2.narrative_unparseable len=%s", len(res.text))
            return None, usage
        try:
            return NarrativeMetrics.model_validate(parsed), usage
        except ValidationError as e:
            logger.info("stage2.narrative_invalid errors=%s", e.error_count())
            return None, usage
