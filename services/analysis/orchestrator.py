# services/analysis/orchestrator.py
"""
analyze(item) = allow-list -> Stage 1 -> (early exit | Stage 2 + memory -> Stage 3).

Only an unreachable LLM during Stage 1 escapes; once Stage 1 has answered,
every later failure degrades into gaps or the fallback decision.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from prometheus_client import Counter, Histogram

from config.pipeline_config import PipelineConfig
from schemas.analysis import (
    AnalysisResult,
    BatchItemResult,
    CostSummary,
    ExternalDataBundle,
    PipelineInfo,
    PositionMemory,
    Stage1Result,
    StageCost,
    TimingSummary,
)
from services.analysis.classifier import Stage1Classifier
from services.analysis.cost_accounting import elapsed_ms, now, total_cost
from services.analysis.data_collector import DataCollector
from services.analysis.normalize import early_exit_decision, validate_and_normalize
from services.analysis.position_memory import PositionMemoryReader
from services.analysis.prompts.prompt_strategies import Stage3Context
from services.analysis.synthesizer import Stage3Synthesizer, SynthesisOutcome, SynthesisState
from services.llm.llm_service import LLMClient, build_llm_client
from services.market_data.fmp_client import FMPClient
from services.research.perplexity_client import PerplexityResearchClient
from services.symbols.allowed_symbols import AllowedSymbolsResolver

logger = logging.getLogger(__name__)

# ============================================================================
# METRICS
# ============================================================================

STAGE_DURATION = Histogram(
    "tradesignal_stage_duration_seconds",
    "Time spent per pipeline stage",
    ["stage"],
)
PIPELINE_OUTCOMES = Counter(
    "tradesignal_pipeline_outcomes_total",
    "Completed analyses by outcome",
    ["item_type", "outcome"],
)
PIPELINE_COST = Counter(
    "tradesignal_cost_usd_total",
    "Estimated provider spend in USD",
    ["stage"],
)


@dataclass(frozen=True)
class AnalyzeOptions:
    position_memory_reader: Optional[PositionMemoryReader] = None
    as_of: Optional[str] = None


class AnalysisOrchestrator:
    def __init__(
        self,
        config: PipelineConfig,
        llm: Optional[LLMClient] = None,
        research: Optional[PerplexityResearchClient] = None,
        market: Optional[FMPClient] = None,
        resolver: Optional[AllowedSymbolsResolver] = None,
    ):
        self.config = config
        self.llm = llm or build_llm_client(config.llm)
        self.research = research or PerplexityResearchClient(
            config.perplexity_api_key,
            model=config.perplexity_model,
            recency=config.perplexity_recency,
        )
        self.market = market or FMPClient(config.fmp_api_key, timeout_s=config.fmp_timeout_s)
        self.resolver = resolver or AllowedSymbolsResolver(self.market, ttl_seconds=config.allowlist_ttl_sec)

        self.classifier = Stage1Classifier(self.llm, config)
        self.collector = DataCollector(self.market, self.research, config)
        self.synthesizer = Stage3Synthesizer(self.llm, config)

    def _models(self) -> dict:
        models = {"llm": getattr(self.llm, "model", "") or ""}
        if self.research.enabled:
            models["research"] = self.research.model
        return models

    # ------------------------------------------------------------------

    async def analyze(self, item, options: Optional[AnalyzeOptions] = None) -> AnalysisResult:
        options = options or AnalyzeOptions()
        as_of = options.as_of or item.as_of()
        t_start = now()

        allowed = await self.resolver.resolve()

        t1 = now()
        stage1, stage1_cost = await self.classifier.classify(item, allowed)
        stage1_ms = elapsed_ms(t1, now())
        STAGE_DURATION.labels("stage1").observe(stage1_ms / 1000)

        if not stage1.proceed:
            return self._early_exit(item, stage1, stage1_cost, stage1_ms, t_start)

        t2 = now()
        bundle, stage2_cost, memory = await self._collect(item, stage1, as_of, options.position_memory_reader)
        stage2_ms = elapsed_ms(t2, now())
        STAGE_DURATION.labels("stage2").observe(stage2_ms / 1000)

        t3 = now()
        outcome = await self._synthesize(Stage3Context(item=item, stage1=stage1, bundle=bundle, memory=memory))
        decision = validate_and_normalize(outcome.raw, stage1=stage1, item_type=item.item_type, memory=memory)
        stage3_ms = elapsed_ms(t3, now())
        STAGE_DURATION.labels("stage3").observe(stage3_ms / 1000)

        cost = CostSummary(
            stage1=stage1_cost,
            stage2=stage2_cost,
            stage3=outcome.usage,
            total=total_cost(stage1_cost, stage2_cost, outcome.usage),
        )
        self._record(item.item_type, "fallback" if decision.is_fallback else decision.trade_decision.lower(), cost)

        logger.info(
            "pipeline.done item_type=%s decision=%s path=%s cost=%.5f total_ms=%s",
            item.item_type,
            decision.trade_decision,
            ">".join(outcome.path),
            cost.total,
            elapsed_ms(t_start, now()),
        )
        return AnalysisResult(
            input=item,
            stage1=stage1,
            collected_data=bundle,
            position_memory=memory,
            stage3=decision,
            cost=cost,
            timing=TimingSummary(
                stage1_ms=stage1_ms,
                stage2_ms=stage2_ms,
                stage3_ms=stage3_ms,
                total_ms=elapsed_ms(t_start, now()),
            ),
            pipeline=PipelineInfo(
                generated_at=datetime.now(timezone.utc).isoformat(),
                early_exit=False,
                synthesis_path=outcome.path,
                models=self._models(),
            ),
        )

    async def analyze_batch(self, items: Sequence, options: Optional[AnalyzeOptions] = None) -> List[BatchItemResult]:
        """Sequential on purpose: one item's failure is recorded, not raised."""
        out: List[BatchItemResult] = []
        for item in items:
            try:
                out.append(BatchItemResult(input=item, result=await self.analyze(item, options)))
            except Exception as e:
                logger.exception("pipeline.batch_item_failed item_type=%s", item.item_type)
                out.append(BatchItemResult(input=item, error=f"{type(e).__name__}: {e}"))
        return out

    # ------------------------------------------------------------------

    def _early_exit(self, item, stage1: Stage1Result, stage1_cost: StageCost, stage1_ms: int, t_start: float) -> AnalysisResult:
        cost = CostSummary(stage1=stage1_cost, total=total_cost(stage1_cost))
        self._record(item.item_type, "early_exit", cost)
        logger.info("pipeline.early_exit item_type=%s fallback=%s", item.item_type, stage1.is_fallback)
        return AnalysisResult(
            input=item,
            stage1=stage1,
            stage3=early_exit_decision(stage1),
            cost=cost,
            timing=TimingSummary(stage1_ms=stage1_ms, total_ms=elapsed_ms(t_start, now())),
            pipeline=PipelineInfo(
                generated_at=datetime.now(timezone.utc).isoformat(),
                early_exit=True,
                models=self._models(),
            ),
        )

    async def _read_memory(
        self, reader: Optional[PositionMemoryReader], stage1: Stage1Result, as_of: str
    ) -> Optional[PositionMemory]:
        if reader is None or not stage1.affected_assets:
            return None
        assets = stage1.affected_assets[: self.config.memory_max_assets]
        try:
            return await reader.read(assets, as_of, stage1.category)
        except Exception as e:
            logger.warning("memory.read_failed err=%s", e)
            return None

    async def _collect(self, item, stage1: Stage1Result, as_of: str, reader: Optional[PositionMemoryReader]):
        collected, memory = await asyncio.gather(
            self.collector.collect(stage1, as_of),
            self._read_memory(reader, stage1, as_of),
            return_exceptions=True,
        )
        if isinstance(memory, BaseException):
            memory = None
        if isinstance(collected, BaseException):
            logger.error("stage2.failed item_type=%s err=%s", item.item_type, collected)
            return ExternalDataBundle(data_gaps=["external data collection failed"]), StageCost(), memory
        bundle, cost = collected
        return bundle, cost, memory

    async def _synthesize(self, ctx: Stage3Context) -> SynthesisOutcome:
        try:
            return await self.synthesizer.synthesize(ctx)
        except Exception:
            logger.exception("stage3.failed item_type=%s", ctx.item.item_type)
            return SynthesisOutcome(raw=None, path=[SynthesisState.FALLBACK.value], usage=StageCost())

    def _record(self, item_type: str, outcome: str, cost: CostSummary) -> None:
        PIPELINE_OUTCOMES.labels(item_type, outcome).inc()
        for stage, c in (("stage1", cost.stage1), ("stage2", cost.stage2), ("stage3", cost.stage3)):
            if c.cost > 0:
                PIPELINE_COST.labels(stage).inc(c.cost)
