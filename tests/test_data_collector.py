import asyncio
import unittest

from schemas.analysis import DataRequest, Stage1Result
from services.analysis.data_collector import NARRATIVE_SYSTEM_PROMPT, DataCollector, fallback_query, merge_requests
from services.research.perplexity_client import WebResearchResult
from pipeline_fakes import FakeMarket, FakeResearch, make_config

AS_OF = "2026-05-02T20:30:00Z"

NARRATIVE_JSON = (
    '{"bias": "bullish", "priced_in_0_10": 6, "confidence_0_10": 7, '
    '"second_order_effects": ["QQQ bid"], "invalidation_triggers": []}'
)


def _answer(narrative_text: str = NARRATIVE_JSON):
    def answer(query: str):
        if query.startswith("Assess the current market narrative"):
            return WebResearchResult(text=narrative_text, prompt_tokens=5, completion_tokens=5)
        return WebResearchResult(text=f"answer for {query}", citations=["https://a.example"], prompt_tokens=10, completion_tokens=20)

    return answer


def _stage1(requests=None, queries=None) -> Stage1Result:
    return Stage1Result(
        title="Apple buyback",
        affected_assets=["AAPL", "QQQ"],
        data_requests=requests if requests is not None else [DataRequest(type="quote", symbols=["AAPL", "QQQ"])],
        web_queries=queries if queries is not None else ["Apple official press release buyback", "AAPL market reaction today"],
        proceed=True,
    )


def _collect(stage1, market=None, research=None, **config):
    collector = DataCollector(market, research, make_config(**config))
    return asyncio.run(collector.collect(stage1, AS_OF))


class DataCollectorTests(unittest.TestCase):
    def test_happy_path(self) -> None:
        market = FakeMarket({"quote": {"AAPL": {"price": 201.5}}})
        research = FakeResearch(answer=_answer())
        bundle, usage = _collect(_stage1(), market, research)

        self.assertEqual(bundle.market_data, {"quote": {"AAPL": {"price": 201.5}}})
        self.assertEqual(len(bundle.web_snippets), 2)
        self.assertTrue(all(s.origin == "ranked" for s in bundle.web_snippets))
        self.assertEqual(bundle.narrative_metrics.bias, "bullish")
        self.assertEqual(bundle.data_gaps, [])
        # two ranked searches + one narrative search
        self.assertEqual(usage.requests, 3)
        self.assertEqual(usage.prompt_tokens, 25)
        self.assertIn(NARRATIVE_SYSTEM_PROMPT, research.systems)
        self.assertEqual(market.calls[0]["as_of"], AS_OF)

    def test_empty_slot_triggers_fallback_research(self) -> None:
        requests = [DataRequest(type="quote", symbols=["AAPL"]), DataRequest(type="profile", symbols=["AAPL"])]
        market = FakeMarket({"quote": {"AAPL": {"price": 1}}})
        research = FakeResearch(answer=_answer())
        bundle, _ = _collect(_stage1(requests=requests, queries=[]), market, research)

        self.assertIsNone(bundle.market_data["profile"])
        self.assertIn("market data empty: profile AAPL", bundle.data_gaps)
        fallback = [s for s in bundle.web_snippets if s.origin == "fallback"]
        self.assertEqual(len(fallback), 1)
        self.assertEqual(fallback[0].query, fallback_query(requests[1], AS_OF))

    def test_fallback_queries_are_capped(self) -> None:
        types = ["quote", "profile", "eod", "ratios", "earnings"]
        requests = [DataRequest(type=t, symbols=["AAPL"]) for t in types]
        research = FakeResearch(answer=_answer())
        bundle, _ = _collect(_stage1(requests=requests, queries=[]), FakeMarket(), research, enable_narrative_metrics=False)

        self.assertEqual(len(research.queries), 3)
        self.assertEqual(len(bundle.web_snippets), 3)
        self.assertEqual(len([g for g in bundle.data_gaps if g.startswith("market data empty")]), 5)

    def test_ranked_queries_limited_to_two(self) -> None:
        research = FakeResearch(answer=_answer())
        queries = ["Fed official statement", "yields reaction", "dollar today"]
        bundle, usage = _collect(_stage1(requests=[], queries=queries), None, research, enable_narrative_metrics=False)
        self.assertEqual(len(research.queries), 2)
        self.assertEqual(usage.requests, 2)
        self.assertEqual([s.query for s in bundle.web_snippets], ["Fed official statement", "yields reaction"])

    def test_market_error_is_a_gap(self) -> None:
        market = FakeMarket(fail=["quote"])
        bundle, _ = _collect(_stage1(queries=[]), market, FakeResearch(enabled=False))
        self.assertEqual(bundle.market_data, {"quote": None})
        self.assertIn("market data failed: quote AAPL,QQQ", bundle.data_gaps)
        self.assertFalse(bundle.has_market_data())

    def test_no_providers(self) -> None:
        bundle, usage = _collect(_stage1(), None, None)
        self.assertIn("market data unavailable: quote AAPL,QQQ (no provider configured)", bundle.data_gaps)
        self.assertIn("web research unavailable (no provider configured)", bundle.data_gaps)
        self.assertIsNone(bundle.narrative_metrics)
        self.assertEqual(bundle.web_snippets, [])
        self.assertEqual(usage.requests, 0)
        self.assertEqual(usage.cost, 0)

    def test_bad_narrative_json_is_dropped(self) -> None:
        research = FakeResearch(answer=_answer("The narrative is bullish."))
        bundle, usage = _collect(_stage1(requests=[], queries=[]), None, research)
        self.assertIsNone(bundle.narrative_metrics)
        self.assertEqual(usage.requests, 1)

    def test_out_of_range_narrative_is_dropped(self) -> None:
        research = FakeResearch(answer=_answer('{"bias": "bullish", "priced_in_0_10": 14, "confidence_0_10": 2}'))
        bundle, _ = _collect(_stage1(requests=[], queries=[]), None, research)
        self.assertIsNone(bundle.narrative_metrics)

    def test_empty_research_answer_is_a_gap(self) -> None:
        research = FakeResearch(answer=lambda q: None)
        bundle, usage = _collect(_stage1(requests=[], queries=["AAPL official statement"]), None, research)
        self.assertEqual(bundle.web_snippets, [])
        self.assertIn("web research returned nothing: AAPL official statement", bundle.data_gaps)
        # issued searches are billed even without an answer
        self.assertEqual(usage.requests, 2)


class MergeRequestsTests(unittest.TestCase):
    def test_one_request_per_type(self) -> None:
        merged = merge_requests(
            [
                DataRequest(type="quote", symbols=["AAPL"], params={"a": 1}),
                DataRequest(type="quote", symbols=["QQQ", "AAPL"], params={"b": 2}),
                DataRequest(type="treasury_rates"),
            ]
        )
        self.assertEqual([(r.type, r.symbols) for r in merged], [("quote", ["AAPL", "QQQ"]), ("treasury_rates", [])])
        self.assertEqual(merged[0].params, {"a": 1})

    def test_symbols_capped(self) -> None:
        merged = merge_requests([DataRequest(type="quote", symbols=[f"S{i}" for i in range(15)])])
        self.assertEqual(len(merged[0].symbols), 10)

    def test_fallback_query_without_symbols(self) -> None:
        q = fallback_query(DataRequest(type="treasury_rates"), AS_OF)
        self.assertEqual(q, f"What is the current US treasury yields for the US market as of {AS_OF}? Give specific numbers and dates.")


if __name__ == "__main__":
    unittest.main()
