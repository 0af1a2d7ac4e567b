# services/llm/llm_service.py
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

ReasoningBudget = Literal["none", "low", "medium", "high"]


class LLMUnavailableError(RuntimeError):
    """Raised when the completion service cannot be reached or answers non-2xx."""


@dataclass(frozen=True)
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True)
class LLMCompletion:
    content: str
    usage: LLMUsage = field(default_factory=LLMUsage)


# ============================================================================
# PUBLIC INTERFACE
# ============================================================================

class LLMClient(Protocol):
    model: str

    async def complete(
        self, prompt: str, *, max_tokens: int, reasoning_budget: ReasoningBudget
    ) -> LLMCompletion:
        """Return the completion. content may be empty on success."""


@dataclass
class LLMConfig:
    provider: str = "openai"  # openai | anthropic | gemini | cloud
    timeout_s: float = 120.0

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-5.2"

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"

    # Gemini (Vertex AI)
    gemini_model: str = "gemini-2.5-flash"
    gcp_project_id: str = ""
    gcp_location: str = "us-central1"

    # Cloud gateway (optional)
    cloud_base_url: str = ""
    cloud_api_key: str = ""

    @staticmethod
    def from_env() -> "LLMConfig":
        return LLMConfig(
            provider=(os.getenv("AI_PROVIDER") or "openai").lower(),
            timeout_s=float(os.getenv("AI_TIMEOUT_S", "120")),

            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-5.2",

            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            anthropic_model=os.getenv("ANTHROPIC_MODEL") or "claude-sonnet-4-5",

            gemini_model=os.getenv("GEMINI_MODEL") or "gemini-2.5-flash",
            gcp_project_id=os.getenv("GCP_PROJECT_ID", ""),
            gcp_location=os.getenv("GCP_LOCATION") or "us-central1",

            cloud_base_url=os.getenv("CLOUD_LLM_BASE_URL", ""),
            cloud_api_key=os.getenv("CLOUD_LLM_API_KEY", ""),
        )


async def _post_json(url: str, *, headers: Dict[str, str], body: Dict[str, Any], timeout_s: float) -> Dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            r = await client.post(url, headers=headers, json=body)
            r.raise_for_status()
            return r.json()
    except httpx.HTTPStatusError as e:
        raise LLMUnavailableError(f"LLM API error {e.response.status_code}") from e
    except (httpx.HTTPError, ValueError) as e:
        raise LLMUnavailableError(f"LLM request failed: {e}") from e


# ============================================================================
# PROVIDER CLIENTS
# ============================================================================

class OpenAIClient:
    def __init__(self, api_key: str, model: str, timeout_s: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s

    async def complete(self, prompt: str, *, max_tokens: int, reasoning_budget: ReasoningBudget) -> LLMCompletion:
        data = await _post_json(
            "https://api.openai.com/v1/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            body={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_completion_tokens": max_tokens,
                "reasoning_effort": reasoning_budget,
            },
            timeout_s=self.timeout_s,
        )
        choice = (data.get("choices") or [{}])[0]
        content = (choice.get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}
        if not content:
            logger.info("llm.openai.empty_content finish_reason=%s", choice.get("finish_reason"))
        return LLMCompletion(
            content=content,
            usage=LLMUsage(
                prompt_tokens=int(usage.get("prompt_tokens") or 0),
                completion_tokens=int(usage.get("completion_tokens") or 0),
            ),
        )


class AnthropicClient:
    def __init__(self, api_key: str, model: str, timeout_s: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s

    async def complete(self, prompt: str, *, max_tokens: int, reasoning_budget: ReasoningBudget) -> LLMCompletion:
        # reasoning_budget is not mapped: extended thinking would eat into max_tokens.
        data = await _post_json(
            "https://api.anthropic.com/v1/messages",
            headers={
                "x-api-key": self.api_key,
                "Content-Type": "application/json",
                "anthropic-version": "2023-06-01",
            },
            body={
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
            timeout_s=self.timeout_s,
        )
        text = "".join(
            block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return LLMCompletion(
            content=text,
            usage=LLMUsage(
                prompt_tokens=int(usage.get("input_tokens") or 0),
                completion_tokens=int(usage.get("output_tokens") or 0),
            ),
        )


class GeminiClient:
    def __init__(self, model: str, *, project: str = "", location: str = "us-central1"):
        self.model = model
        self.project = project
        self.location = location

    def _thinking_level(self, budget: ReasoningBudget) -> str:
        lvl = {"none": "LOW", "low": "LOW", "medium": "MEDIUM", "high": "HIGH"}[budget]
        # pro models only accept LOW/HIGH
        if "pro" in self.model.lower() and lvl == "MEDIUM":
            return "HIGH"
        return lvl

    async def complete(self, prompt: str, *, max_tokens: int, reasoning_budget: ReasoningBudget) -> LLMCompletion:
        # google-genai SDK is sync-ish; run in thread.
        try:
            return await asyncio.to_thread(self._sync_call, prompt, max_tokens, reasoning_budget)
        except LLMUnavailableError:
            raise
        except Exception as e:
            raise LLMUnavailableError(f"Gemini request failed: {e}") from e

    def _sync_call(self, prompt: str, max_tokens: int, reasoning_budget: ReasoningBudget) -> LLMCompletion:
        from google import genai
        from google.genai import types

        client = genai.Client(vertexai=True, project=self.project or None, location=self.location)
        config = types.GenerateContentConfig(
            thinking_config=types.ThinkingConfig(thinking_level=self._thinking_level(reasoning_budget)),
            max_output_tokens=max_tokens,
        )
        resp = client.models.generate_content(model=self.model, contents=prompt, config=config)
        meta = getattr(resp, "usage_metadata", None)
        return LLMCompletion(
            content=getattr(resp, "text", None) or "",
            usage=LLMUsage(
                prompt_tokens=int(getattr(meta, "prompt_token_count", 0) or 0),
                completion_tokens=int(getattr(meta, "candidates_token_count", 0) or 0),
            ),
        )


class CloudLLMClient:
    def __init__(self, base_url: str, api_key: str, timeout_s: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.model = "cloud"

    async def complete(self, prompt: str, *, max_tokens: int, reasoning_budget: ReasoningBudget) -> LLMCompletion:
        data = await _post_json(
            f"{self.base_url}/v1/complete",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            body={"prompt": prompt, "max_tokens": max_tokens, "reasoning": reasoning_budget},
            timeout_s=self.timeout_s,
        )
        usage = data.get("usage") or {}
        return LLMCompletion(
            content=data.get("text") or "",
            usage=LLMUsage(
                prompt_tokens=int(usage.get("prompt_tokens") or 0),
                completion_tokens=int(usage.get("completion_tokens") or 0),
            ),
        )


def build_llm_client(cfg: Optional[LLMConfig] = None) -> LLMClient:
    cfg = cfg or LLMConfig.from_env()
    p = (cfg.provider or "openai").lower()

    if p == "anthropic":
        if not cfg.anthropic_api_key:
            raise ValueError("Missing ANTHROPIC_API_KEY")
        return AnthropicClient(cfg.anthropic_api_key, cfg.anthropic_model, cfg.timeout_s)

    if p == "gemini":
        return GeminiClient(cfg.gemini_model, project=cfg.gcp_project_id, location=cfg.gcp_location)

    if p == "cloud":
        if not cfg.cloud_base_url or not cfg.cloud_api_key:
            raise ValueError("Missing CLOUD_LLM_BASE_URL or CLOUD_LLM_API_KEY")
        return CloudLLMClient(cfg.cloud_base_url, cfg.cloud_api_key, cfg.timeout_s)

    if not cfg.openai_api_key:
        raise ValueError("Missing OPENAI_API_KEY")
    return OpenAIClient(cfg.openai_api_key, cfg.openai_model, cfg.timeout_s)
