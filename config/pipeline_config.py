"""
Pipeline configuration.

Built once (usually from the environment at app startup) and injected into the
orchestrator; nothing in the pipeline reads os.environ on its own.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field

from services.analysis.cost_accounting import LLM_PRICES, RESEARCH_PRICES, PriceTable
from services.llm.llm_service import LLMConfig, ReasoningBudget

_REASONING_LEVELS = ("none", "low", "medium", "high")


class ConfigError(ValueError):
    """Raised for invalid configuration values."""


def _reasoning(value: str, default: ReasoningBudget) -> ReasoningBudget:
    v = (value or "").strip().lower()
    if not v:
        return default
    if v == "xhigh":
        return "high"
    if v not in _REASONING_LEVELS:
        raise ConfigError(f"Invalid reasoning effort: {value!r}")
    return v  # type: ignore[return-value]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ContextCaps:
    """Character caps for Stage 3 context blocks."""
    market_chars: int
    snippet_chars: int
    max_snippets: int
    citations_per_snippet: int
    memory_chars: int


FULL_CAPS = ContextCaps(market_chars=4000, snippet_chars=1500, max_snippets=6, citations_per_snippet=3, memory_chars=2000)
RETRY_CAPS = ContextCaps(market_chars=1500, snippet_chars=500, max_snippets=2, citations_per_snippet=2, memory_chars=800)
# repair prompt caps whole blocks rather than single snippets
REPAIR_CAPS = ContextCaps(market_chars=1500, snippet_chars=1200, max_snippets=6, citations_per_snippet=2, memory_chars=800)


@dataclass(frozen=True)
class PipelineConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)

    # Stage 1
    stage1_max_tokens: int = 1500
    stage1_reasoning: ReasoningBudget = "high"

    # Stage 3 (output-first: low reasoning so the budget goes to the JSON)
    stage3_max_tokens: int = 5500
    stage3_retry_max_tokens: int = 2500
    stage3_reasoning: ReasoningBudget = "low"

    # Web research
    perplexity_api_key: str = ""
    perplexity_model: str = "sonar"
    perplexity_recency: str = "week"
    max_ranked_queries: int = 2
    max_fallback_queries: int = 3
    enable_narrative_metrics: bool = True

    # Market data
    fmp_api_key: str = ""
    fmp_timeout_s: float = 15.0

    # Allow-list
    allowlist_ttl_sec: int = 24 * 3600

    # Position memory
    memory_max_assets: int = 8

    # Pricing
    llm_prices: PriceTable = LLM_PRICES
    research_prices: PriceTable = RESEARCH_PRICES

    # Context caps
    full_caps: ContextCaps = FULL_CAPS
    retry_caps: ContextCaps = RETRY_CAPS
    repair_caps: ContextCaps = REPAIR_CAPS

    @property
    def retry_max_tokens(self) -> int:
        return min(self.stage3_retry_max_tokens, self.stage3_max_tokens)

    @staticmethod
    def from_env() -> "PipelineConfig":
        return PipelineConfig(
            llm=LLMConfig.from_env(),
            stage1_max_tokens=_env_int("STAGE1_MAX_TOKENS", 1500),
            stage1_reasoning=_reasoning(os.getenv("OPENAI_REASONING_EFFORT", ""), "high"),
            stage3_max_tokens=_env_int("OPENAI_STAGE3_MAX_TOKENS", 5500),
            stage3_retry_max_tokens=_env_int("STAGE3_RETRY_MAX_TOKENS", 2500),
            stage3_reasoning=_reasoning(os.getenv("OPENAI_STAGE3_REASONING_EFFORT", ""), "low"),
            perplexity_api_key=os.getenv("PERPLEXITY_API_KEY", ""),
            perplexity_model=os.getenv("PERPLEXITY_MODEL") or "sonar",
            perplexity_recency=os.getenv("PERPLEXITY_RECENCY") or "week",
            enable_narrative_metrics=_env_flag("ENABLE_NARRATIVE_METRICS", True),
            fmp_api_key=os.getenv("FMP_API_KEY", ""),
            fmp_timeout_s=float(os.getenv("FMP_TIMEOUT_S", "15")),
            allowlist_ttl_sec=_env_int("ALLOWLIST_TTL_SEC", 24 * 3600),
        )
