import unittest

from schemas.analysis import AssetMemory, PositionMemory, Stage1Result
from services.analysis.normalize import (
    FALLBACK_RISKS,
    FALLBACK_SUMMARY,
    NO_POSITIONS_WARNING,
    camel_to_snake,
    clamp_confidence,
    clamp_score_10,
    derive_market_mover_score,
    early_exit_decision,
    fallback_decision,
    normalize_positions,
    normalize_scenarios,
    validate_and_normalize,
)


def _stage1(**overrides) -> Stage1Result:
    data = {"title": "Apple buyback", "analysis": "Buyback supports AAPL.", "tier": 1, "expected_volatility": "high"}
    data.update(overrides)
    return Stage1Result(**data)


class ScalarTests(unittest.TestCase):
    def test_clamp_score_rounds_half_up(self) -> None:
        self.assertEqual(clamp_score_10(7.5, 5), 8)
        self.assertEqual(clamp_score_10(6.49, 5), 6)
        self.assertEqual(clamp_score_10("9", 5), 9)

    def test_clamp_score_bounds_and_fallback(self) -> None:
        self.assertEqual(clamp_score_10(0, 5), 1)
        self.assertEqual(clamp_score_10(42, 5), 10)
        self.assertEqual(clamp_score_10("high", 6), 6)
        self.assertEqual(clamp_score_10(None, 6), 6)
        self.assertEqual(clamp_score_10(True, 4), 4)

    def test_confidence_percentages(self) -> None:
        self.assertEqual(clamp_confidence(85), 9)
        self.assertEqual(clamp_confidence("70%"), 7)
        self.assertEqual(clamp_confidence(6), 6)
        self.assertEqual(clamp_confidence(None), 5)

    def test_derive_market_mover_score(self) -> None:
        self.assertEqual(derive_market_mover_score(1, "extreme"), 10)
        self.assertEqual(derive_market_mover_score(1, "high"), 10)
        self.assertEqual(derive_market_mover_score(2, "moderate"), 7)
        self.assertEqual(derive_market_mover_score(3, "low"), 4)
        self.assertEqual(derive_market_mover_score("x", None), 5)
        self.assertEqual(derive_market_mover_score(float("inf"), "high"), 6)

    def test_camel_to_snake(self) -> None:
        self.assertEqual(camel_to_snake("bigBeat"), "big_beat")
        self.assertEqual(camel_to_snake("inline"), "inline")


class PositionTests(unittest.TestCase):
    def test_drops_non_chart_assets_and_unknown_directions(self) -> None:
        positions = normalize_positions(
            [
                {"asset": "NASDAQ:AAPL", "direction": "buy", "confidence": 80, "trade_type": "swing"},
                {"asset": "AAPL", "direction": "long"},
                {"asset": "FX:EURUSD", "direction": "sideways"},
                {"asset": "NASDAQ:AAPL", "direction": "long"},
                "junk",
            ]
        )
        self.assertEqual(len(positions), 1)
        p = positions[0]
        self.assertEqual((p.asset, p.direction, p.confidence, p.horizon), ("NASDAQ:AAPL", "long", 8, "swing_trading"))

    def test_caps_at_ten(self) -> None:
        raw = [{"asset": f"NYSE:T{i}", "direction": "short"} for i in range(15)]
        self.assertEqual(len(normalize_positions(raw)), 10)


class ScenarioTests(unittest.TestCase):
    def test_unified_shape(self) -> None:
        raw = {
            "scenarios": {
                "bigBeat": {
                    "label": "Actual well above forecast",
                    "action": "trade",
                    "trades": [{"asset": "FX:USDJPY", "direction": "long", "confidence": 70, "stopLoss": "148.0"}],
                },
                "inline": {"action": "trade", "trades": []},
            }
        }
        plans = normalize_scenarios(raw)
        self.assertEqual([p.name for p in plans], ["big_beat", "inline"])
        self.assertEqual(plans[0].action, "trade")
        self.assertEqual(plans[0].trades[0].confidence, 7)
        self.assertEqual(plans[0].trades[0].stop_loss, "148.0")
        # no trades means no_trade regardless of the declared action
        self.assertEqual(plans[1].action, "no_trade")

    def test_split_shape_merges_probabilities(self) -> None:
        raw = {
            "scenarios": {"big_beat": {"probability": "25%"}},
            "scenarioPlaybook": {
                "big_beat": {"action": "trade", "trades": [{"asset": "TVC:DXY", "direction": "bullish"}]}
            },
        }
        plans = normalize_scenarios(raw)
        self.assertEqual(len(plans), 1)
        self.assertEqual(plans[0].probability, "25%")
        self.assertEqual(plans[0].trades[0].direction, "long")

    def test_declared_no_trade_wins(self) -> None:
        raw = {"scenarios": {"miss": {"action": "no_trade", "trades": [{"asset": "FX:EURUSD", "direction": "short"}]}}}
        plan = normalize_scenarios(raw)[0]
        self.assertEqual(plan.action, "no_trade")
        self.assertEqual(plan.trades, [])

    def test_missing_is_empty(self) -> None:
        self.assertEqual(normalize_scenarios({}), [])


class ValidateAndNormalizeTests(unittest.TestCase):
    def test_none_gives_fallback(self) -> None:
        decision = validate_and_normalize(None, stage1=_stage1(), item_type="news")
        self.assertTrue(decision.is_fallback)
        self.assertEqual(decision.trade_decision, "NO_TRADE")
        self.assertEqual(decision.summary, FALLBACK_SUMMARY)
        self.assertEqual(decision.risks, FALLBACK_RISKS)
        self.assertEqual(decision.importance, 10)
        self.assertEqual(decision.positions, [])

    def test_trade_without_positions_is_downgraded(self) -> None:
        raw = {"trade_decision": "TRADE", "positions": [{"asset": "AAPL", "direction": "long"}], "conviction": 9}
        decision = validate_and_normalize(raw, stage1=_stage1(), item_type="news")
        self.assertEqual(decision.trade_decision, "NO_TRADE")
        self.assertEqual(decision.positions, [])
        self.assertIn(NO_POSITIONS_WARNING, decision.warnings)

    def test_no_trade_clears_positions(self) -> None:
        raw = {"trade_decision": "no_trade", "positions": [{"asset": "NASDAQ:AAPL", "direction": "long"}]}
        decision = validate_and_normalize(raw, stage1=_stage1(), item_type="news")
        self.assertEqual(decision.positions, [])
        self.assertEqual(decision.action_type, "no_trade")

    def test_legacy_aliases(self) -> None:
        raw = {
            "tradeSetup": {"hasTrade": True},
            "positions": [{"asset": "FX:EURUSD", "direction": "sell"}],
            "conviction_score": 7.5,
            "importance_score": 3,
            "market_impact": 12,
            "keyRisks": ["ECB surprise", "ECB surprise", ""],
            "overall_assessment": "Euro weakness likely.",
            "tradingview_assets": ["FX:EURUSD", "EURUSD"],
        }
        decision = validate_and_normalize(raw, stage1=_stage1(), item_type="macro")
        self.assertEqual(decision.trade_decision, "TRADE")
        self.assertEqual(decision.conviction, 8)
        self.assertEqual(decision.importance, 3)
        self.assertEqual(decision.urgency, 8)
        self.assertEqual(decision.market_mover, 10)
        self.assertEqual(decision.risks, ["ECB surprise"])
        self.assertEqual(decision.summary, "Euro weakness likely.")
        self.assertEqual(decision.chart_assets, ["FX:EURUSD"])
        self.assertEqual(decision.sentiment, "bearish")
        self.assertEqual(decision.action_type, "position_before")

    def test_chart_assets_default_to_position_assets(self) -> None:
        raw = {
            "trade_decision": "TRADE",
            "positions": [
                {"asset": "NASDAQ:AAPL", "direction": "long"},
                {"asset": "NASDAQ:QQQ", "direction": "short"},
            ],
        }
        decision = validate_and_normalize(raw, stage1=_stage1(), item_type="news")
        self.assertEqual(decision.chart_assets, ["NASDAQ:AAPL", "NASDAQ:QQQ"])
        self.assertEqual(decision.sentiment, "mixed")

    def test_scenarios_skipped_for_news(self) -> None:
        raw = {"scenarios": {"big_beat": {"trades": [{"asset": "FX:USDJPY", "direction": "long"}]}}}
        self.assertEqual(validate_and_normalize(raw, stage1=_stage1(), item_type="news").scenarios, [])
        self.assertEqual(len(validate_and_normalize(raw, stage1=_stage1(), item_type="macro").scenarios), 1)

    def test_optional_labels(self) -> None:
        raw = {"info_quality": "Rumour", "market_regime": "risk-off", "risk_mode": "high", "sentiment": "Bullish"}
        decision = validate_and_normalize(raw, stage1=_stage1(), item_type="news")
        self.assertEqual(decision.info_quality, "rumor")
        self.assertEqual(decision.market_regime, "risk_off")
        self.assertEqual(decision.risk_mode, "high_risk")
        self.assertEqual(decision.sentiment, "bullish")

    def test_memory_conflict_warning(self) -> None:
        memory = PositionMemory(assets=[AssetMemory(asset="AAPL", last_signal="SELL")])
        raw = {"trade_decision": "TRADE", "positions": [{"asset": "NASDAQ:AAPL", "direction": "long"}]}
        decision = validate_and_normalize(raw, stage1=_stage1(), item_type="news", memory=memory)
        self.assertEqual(len(decision.warnings), 1)
        self.assertIn("SELL", decision.warnings[0])

    def test_input_is_not_mutated(self) -> None:
        raw = {"trade_decision": "TRADE", "positions": [{"asset": "NASDAQ:AAPL", "direction": "buy"}]}
        snapshot = repr(raw)
        validate_and_normalize(raw, stage1=_stage1(), item_type="news")
        self.assertEqual(repr(raw), snapshot)


class CannedDecisionTests(unittest.TestCase):
    def test_early_exit(self) -> None:
        decision = early_exit_decision(_stage1(reasoning="Routine update."))
        self.assertEqual(
            (decision.conviction, decision.importance, decision.urgency, decision.market_mover), (1, 1, 1, 1)
        )
        self.assertEqual(decision.summary, "Routine update.")
        self.assertEqual(decision.risks, ["News not worth building trading infrastructure"])
        self.assertFalse(decision.is_fallback)

    def test_fallback_uses_tier(self) -> None:
        decision = fallback_decision(_stage1(tier=3, expected_volatility="low"))
        self.assertEqual(decision.importance, 4)
        self.assertEqual(decision.market_mover, 4)
        self.assertEqual(decision.conviction, 5)


if __name__ == "__main__":
    unittest.main()
