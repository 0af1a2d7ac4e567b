import asyncio
import json
import unittest
from unittest.mock import patch

import httpx

from services.llm.llm_service import (
    AnthropicClient,
    GeminiClient,
    LLMConfig,
    LLMUnavailableError,
    OpenAIClient,
    build_llm_client,
)

_RealAsyncClient = httpx.AsyncClient


def _mock_http(handler):
    seen = []

    def respond(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def factory(**kwargs):
        return _RealAsyncClient(transport=httpx.MockTransport(respond), **kwargs)

    return patch("services.llm.llm_service.httpx.AsyncClient", side_effect=factory), seen


class OpenAIClientTests(unittest.TestCase):
    def test_maps_content_and_usage(self) -> None:
        payload = {
            "choices": [{"message": {"content": '{"ok": true}'}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 120, "completion_tokens": 30},
        }
        mocked, seen = _mock_http(lambda r: httpx.Response(200, json=payload))
        with mocked:
            out = asyncio.run(OpenAIClient("sk", "gpt-test").complete("hi", max_tokens=500, reasoning_budget="low"))

        self.assertEqual(out.content, '{"ok": true}')
        self.assertEqual((out.usage.prompt_tokens, out.usage.completion_tokens), (120, 30))
        body = json.loads(seen[0].content)
        self.assertEqual(body["max_completion_tokens"], 500)
        self.assertEqual(body["reasoning_effort"], "low")
        self.assertEqual(seen[0].headers["Authorization"], "Bearer sk")

    def test_empty_content_is_not_an_error(self) -> None:
        payload = {"choices": [{"message": {"content": None}, "finish_reason": "length"}]}
        mocked, _ = _mock_http(lambda r: httpx.Response(200, json=payload))
        with mocked:
            out = asyncio.run(OpenAIClient("sk", "gpt-test").complete("hi", max_tokens=10, reasoning_budget="low"))
        self.assertEqual(out.content, "")

    def test_http_error_is_unavailable(self) -> None:
        mocked, _ = _mock_http(lambda r: httpx.Response(500, json={"error": "boom"}))
        with mocked, self.assertRaises(LLMUnavailableError):
            asyncio.run(OpenAIClient("sk", "gpt-test").complete("hi", max_tokens=10, reasoning_budget="low"))


class AnthropicClientTests(unittest.TestCase):
    def test_joins_text_blocks(self) -> None:
        payload = {
            "content": [{"type": "text", "text": '{"a":'}, {"type": "tool_use"}, {"type": "text", "text": " 1}"}],
            "usage": {"input_tokens": 7, "output_tokens": 3},
        }
        mocked, seen = _mock_http(lambda r: httpx.Response(200, json=payload))
        with mocked:
            out = asyncio.run(AnthropicClient("key", "claude-test").complete("hi", max_tokens=64, reasoning_budget="high"))
        self.assertEqual(out.content, '{"a": 1}')
        self.assertEqual(out.usage.prompt_tokens, 7)
        self.assertEqual(seen[0].headers["x-api-key"], "key")


class BuildClientTests(unittest.TestCase):
    def test_missing_keys_raise(self) -> None:
        with self.assertRaises(ValueError):
            build_llm_client(LLMConfig(provider="openai"))
        with self.assertRaises(ValueError):
            build_llm_client(LLMConfig(provider="anthropic"))
        with self.assertRaises(ValueError):
            build_llm_client(LLMConfig(provider="cloud", cloud_base_url="https://x.example"))

    def test_provider_selection(self) -> None:
        self.assertIsInstance(build_llm_client(LLMConfig(openai_api_key="sk")), OpenAIClient)
        self.assertIsInstance(build_llm_client(LLMConfig(provider="Gemini")), GeminiClient)

    def test_gemini_thinking_levels(self) -> None:
        self.assertEqual(GeminiClient("gemini-2.5-pro")._thinking_level("medium"), "HIGH")
        self.assertEqual(GeminiClient("gemini-2.5-flash")._thinking_level("medium"), "MEDIUM")
        self.assertEqual(GeminiClient("gemini-2.5-flash")._thinking_level("none"), "LOW")


if __name__ == "__main__":
    unittest.main()
