import asyncio
import json
import unittest

from schemas.analysis import ExternalDataBundle, Stage1Result, WebSnippet
from services.analysis.prompts.prompt_strategies import Stage3Context
from services.analysis.synthesizer import SynthesisState, Stage3Synthesizer
from pipeline_fakes import FakeLLM, make_config, news_item, stage1_json, stage3_json


def _ctx() -> Stage3Context:
    stage1 = Stage1Result(**json.loads(stage1_json()))
    bundle = ExternalDataBundle(
        market_data={"quote": {"AAPL": {"price": 201.5, "history": ["tick"] * 800}}},
        web_snippets=[
            WebSnippet(query=f"query {i}", text="long answer " * 200, citations=["https://a.example"])
            for i in range(4)
        ],
    )
    return Stage3Context(item=news_item(), stage1=stage1, bundle=bundle)


def _run(llm: FakeLLM):
    synthesizer = Stage3Synthesizer(llm, make_config())
    return asyncio.run(synthesizer.synthesize(_ctx()))


class Stage3SynthesizerTests(unittest.TestCase):
    def test_first_attempt_parses(self) -> None:
        llm = FakeLLM([stage3_json()])
        outcome = _run(llm)
        self.assertEqual(outcome.path, ["ATTEMPT"])
        self.assertEqual(outcome.raw["trade_decision"], "TRADE")
        self.assertEqual(outcome.usage.requests, 1)
        self.assertEqual(llm.calls[0]["max_tokens"], 5500)
        self.assertEqual(llm.calls[0]["reasoning_budget"], "low")
        self.assertTrue(llm.calls[0]["prompt"].endswith("Respond ONLY with valid JSON."))

    def test_empty_content_retries_once_with_shorter_prompt(self) -> None:
        llm = FakeLLM(["", stage3_json()])
        outcome = _run(llm)
        self.assertEqual(outcome.path, ["ATTEMPT", "RETRY"])
        self.assertEqual(len(llm.calls), 2)
        self.assertEqual(llm.calls[1]["max_tokens"], 2500)
        self.assertLess(len(llm.calls[1]["prompt"]), len(llm.calls[0]["prompt"]))
        self.assertIsNotNone(outcome.raw)

    def test_failed_retry_goes_to_repair(self) -> None:
        llm = FakeLLM(["", "", stage3_json()])
        outcome = _run(llm)
        self.assertEqual(outcome.path, ["ATTEMPT", "RETRY", "REPAIR"])
        repair_prompt = llm.calls[2]["prompt"]
        self.assertTrue(repair_prompt.startswith("You must return ONLY valid JSON"))
        self.assertIn("PREVIOUS_OUTPUT_START", repair_prompt)
        self.assertIn("PREVIOUS_OUTPUT_END", repair_prompt)
        self.assertEqual(llm.calls[2]["max_tokens"], 5500)
        self.assertEqual(outcome.usage.requests, 3)
        self.assertEqual(outcome.usage.prompt_tokens, 300)

    def test_unparseable_attempt_skips_retry(self) -> None:
        llm = FakeLLM(["Sure! The trade is long AAPL.", stage3_json()])
        outcome = _run(llm)
        self.assertEqual(outcome.path, ["ATTEMPT", "REPAIR"])
        self.assertIn("Sure! The trade is long AAPL.", llm.calls[1]["prompt"])

    def test_everything_fails_ends_in_fallback(self) -> None:
        llm = FakeLLM(["", "still not json", "nope"])
        outcome = _run(llm)
        self.assertEqual(outcome.path, ["ATTEMPT", "RETRY", "REPAIR", "FALLBACK"])
        self.assertIsNone(outcome.raw)
        self.assertEqual(len(llm.calls), 3)

    def test_call_exception_counts_as_empty(self) -> None:
        llm = FakeLLM([RuntimeError("socket closed"), stage3_json()])
        outcome = _run(llm)
        self.assertEqual(outcome.path, ["ATTEMPT", "RETRY"])
        # the failed call never produced usage
        self.assertEqual(outcome.usage.requests, 1)

    def test_all_calls_raise(self) -> None:
        llm = FakeLLM([RuntimeError("a"), RuntimeError("b"), RuntimeError("c")])
        outcome = _run(llm)
        self.assertEqual(outcome.path[-1], SynthesisState.FALLBACK.value)
        self.assertIsNone(outcome.raw)
        self.assertEqual(outcome.usage.requests, 0)


if __name__ == "__main__":
    unittest.main()
