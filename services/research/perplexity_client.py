from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from openai import AsyncOpenAI, OpenAIError

logger = logging.getLogger(__name__)

PPLX_BASE_URL = "https://api.perplexity.ai"

SYSTEM_PROMPT = (
    "You are a financial research assistant. Provide factual, data-driven answers with "
    "specific numbers, dates, and sources. Be concise but comprehensive. "
    "Focus on trading-relevant information."
)


@dataclass(frozen=True)
class WebResearchResult:
    text: str
    citations: List[str] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0


class PerplexityResearchClient:
    """
    Perplexity Sonar through the OpenAI-compatible SDK.

    search() never raises: any failure (missing key, transport, empty answer)
    comes back as None and is logged.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "sonar",
        recency: str = "week",  # day|week|month|year
        max_tokens: int = 1000,
        timeout_s: float = 30.0,
        base_url: str = PPLX_BASE_URL,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.recency = recency
        self.max_tokens = max_tokens
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_s, max_retries=1)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def search(self, query: str, *, system: str = SYSTEM_PROMPT) -> Optional[WebResearchResult]:
        if not self.enabled or not (query or "").strip():
            return None
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": query},
                ],
                temperature=0.1,
                max_tokens=self.max_tokens,
                # Perplexity-specific knobs live in extra_body
                extra_body={
                    "search_recency_filter": self.recency,
                    "return_citations": True,
                },
            )
        except OpenAIError as e:
            logger.warning("research.search_failed err=%s", type(e).__name__)
            return None

        text = ((resp.choices[0].message.content if resp.choices else None) or "").strip()
        if not text:
            return None

        citations = getattr(resp, "citations", None) or []
        usage = getattr(resp, "usage", None)
        return WebResearchResult(
            text=text,
            citations=[str(c) for c in citations if c],
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        )
