# services/analysis/synthesizer.py
"""
Stage 3 synthesis as an explicit state machine.

    ATTEMPT --empty--> RETRY --fail--> REPAIR --fail--> FALLBACK
       |  \--unparseable-------------^    |                |
       +--ok--> DONE   RETRY --ok--> DONE +--ok--> DONE    +--> DONE

Every handler returns the next state. A failed LLM call inside a state is
logged and treated as empty content, so the machine always terminates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.pipeline_config import PipelineConfig
from schemas.analysis import StageCost
from services.analysis.cost_accounting import add_usage
from services.analysis.prompts.prompt_strategies import Stage3Context, render_repair, render_stage3
from services.helpers.ai.json_helpers import parse_json_safe
from services.llm.llm_service import LLMClient

logger = logging.getLogger(__name__)


class SynthesisState(str, Enum):
    ATTEMPT = "ATTEMPT"
    RETRY = "RETRY"
    REPAIR = "REPAIR"
    FALLBACK = "FALLBACK"
    DONE = "DONE"


@dataclass(frozen=True)
class SynthesisOutcome:
    raw: Optional[Dict[str, Any]]
    path: List[str]
    usage: StageCost


@dataclass
class _Run:
    ctx: Stage3Context
    content: str = ""
    raw: Optional[Dict[str, Any]] = None
    usage: StageCost = field(default_factory=StageCost)
    path: List[str] = field(default_factory=list)


class Stage3Synthesizer:
    def __init__(self, llm: LLMClient, config: PipelineConfig):
        self.llm = llm
        self.config = config
        self._handlers: Dict[SynthesisState, Callable[[_Run], Awaitable[SynthesisState]]] = {
            SynthesisState.ATTEMPT: self._attempt,
            SynthesisState.RETRY: self._retry,
            SynthesisState.REPAIR: self._repair,
            SynthesisState.FALLBACK: self._fallback,
        }

    async def synthesize(self, ctx: Stage3Context) -> SynthesisOutcome:
        run = _Run(ctx=ctx)
        state = SynthesisState.ATTEMPT
        while state is not SynthesisState.DONE:
            run.path.append(state.value)
            state = await self._handlers[state](run)
        logger.info(
            "stage3.done item_type=%s path=%s parsed=%s prompt_tokens=%s completion_tokens=%s",
            ctx.item.item_type,
            ">".join(run.path),
            run.raw is not None,
            run.usage.prompt_tokens,
            run.usage.completion_tokens,
        )
        return SynthesisOutcome(raw=run.raw, path=list(run.path), usage=run.usage)

    # ------------------------------------------------------------------

    async def _call(self, run: _Run, prompt: str, max_tokens: int, label: str) -> str:
        try:
            completion = await self.llm.complete(
                prompt,
                max_tokens=max_tokens,
                reasoning_budget=self.config.stage3_reasoning,
            )
        except Exception as e:
            logger.warning("stage3.call_failed state=%s err=%s", label, e)
            return ""
        run.usage = add_usage(
            run.usage,
            prompt_tokens=completion.usage.prompt_tokens,
            completion_tokens=completion.usage.completion_tokens,
            requests=1,
            price_table=self.config.llm_prices,
        )
        content = completion.content or ""
        logger.debug("stage3.response state=%s content_len=%s head=%s", label, len(content), content[:200])
        return content

    def _parse(self, run: _Run) -> bool:
        run.raw = parse_json_safe(run.content) if run.content.strip() else None
        return run.raw is not None

    async def _attempt(self, run: _Run) -> SynthesisState:
        prompt = render_stage3(run.ctx, self.config.full_caps)
        run.content = await self._call(run, prompt, self.config.stage3_max_tokens, "attempt")
        if not run.content.strip():
            logger.warning("stage3.empty_content retrying with shorter prompt")
            return SynthesisState.RETRY
        if self._parse(run):
            return SynthesisState.DONE
        logger.warning("stage3.parse_failed attempt content_len=%s", len(run.content))
        return SynthesisState.REPAIR

    async def _retry(self, run: _Run) -> SynthesisState:
        prompt = render_stage3(run.ctx, self.config.retry_caps)
        run.content = await self._call(run, prompt, self.config.retry_max_tokens, "retry")
        if self._parse(run):
            return SynthesisState.DONE
        return SynthesisState.REPAIR

    async def _repair(self, run: _Run) -> SynthesisState:
        prompt = render_repair(
            run.ctx,
            run.content,
            full_caps=self.config.full_caps,
            caps=self.config.repair_caps,
        )
        run.content = await self._call(run, prompt, self.config.stage3_max_tokens, "repair")
        if self._parse(run):
            logger.info("stage3.repair_recovered")
            return SynthesisState.DONE
        logger.error("stage3.repair_failed content_len=%s", len(run.content))
        return SynthesisState.FALLBACK

    async def _fallback(self, run: _Run) -> SynthesisState:
        run.raw = None
        return SynthesisState.DONE
