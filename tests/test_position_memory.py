import asyncio
import unittest
from datetime import datetime, timezone

from services.analysis.position_memory import (
    InMemoryPositionMemoryReader,
    MemoryRecord,
    build_position_memory,
    clamp_text,
    map_signal,
    normalize_asset_key,
    parse_timestamp,
)

AS_OF = "2026-05-30T12:00:00Z"


def _record(day: int, assets, signal=None, summary="", positions=None) -> MemoryRecord:
    return MemoryRecord(
        published_at=datetime(2026, 5, day, 12, tzinfo=timezone.utc),
        assets=list(assets),
        signal=signal,
        summary=summary,
        positions=positions or [],
    )


class HelperTests(unittest.TestCase):
    def test_normalize_asset_key(self) -> None:
        self.assertEqual(normalize_asset_key("BINANCE:BTCUSDT"), "BTCUSDT")
        self.assertEqual(normalize_asset_key("nasdaq:aapl"), "AAPL")
        self.assertEqual(normalize_asset_key("BRK.B"), "BRKB")
        self.assertEqual(normalize_asset_key(None), "")

    def test_map_signal(self) -> None:
        self.assertEqual(map_signal("STRONG_BUY"), "BUY")
        self.assertEqual(map_signal("short"), "SELL")
        self.assertEqual(map_signal("NO_TRADE"), "HOLD")
        self.assertEqual(map_signal(None), "HOLD")

    def test_clamp_text(self) -> None:
        self.assertEqual(clamp_text("abc", 5), "abc")
        self.assertEqual(clamp_text("abcdef", 4), "abc…")

    def test_parse_timestamp(self) -> None:
        self.assertEqual(parse_timestamp("2026-05-01T00:00:00Z").tzinfo, timezone.utc)
        self.assertEqual(parse_timestamp("2026-05-01").tzinfo, timezone.utc)
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(12))


class BuildPositionMemoryTests(unittest.TestCase):
    def test_no_usable_assets(self) -> None:
        self.assertIsNone(build_position_memory([], ["", None], AS_OF))

    def test_window_and_ordering(self) -> None:
        records = [
            _record(1, ["AAPL"], "BUY", "too old"),  # 29 days before as_of
            _record(10, ["NASDAQ:AAPL"], "SELL", "older"),
            _record(20, ["AAPL"], "NO_TRADE", "newest"),
            _record(25, ["MSFT"], "BUY", "other asset"),
        ]
        memory = build_position_memory(records, ["NASDAQ:AAPL", "TSLA"], AS_OF)

        self.assertEqual(len(memory.assets), 1)
        aapl = memory.assets[0]
        self.assertEqual(aapl.asset, "AAPL")
        # NO_TRADE is skipped for last_signal but still shows in the trend
        self.assertEqual(aapl.last_signal, "SELL")
        self.assertEqual(aapl.trend, ["HOLD", "SELL"])
        self.assertEqual([a.summary for a in aapl.recent_analyses], ["newest", "older"])

    def test_future_records_are_ignored(self) -> None:
        records = [_record(31, ["AAPL"], "BUY")]
        self.assertEqual(build_position_memory(records, ["AAPL"], AS_OF).assets, [])

    def test_date_only_as_of_covers_the_whole_day(self) -> None:
        records = [_record(30, ["AAPL"], "BUY", "same day")]
        memory = build_position_memory(records, ["AAPL"], "2026-05-30")
        self.assertEqual(memory.assets[0].last_signal, "BUY")
        self.assertEqual(build_position_memory(records, ["AAPL"], "2026-05-29").assets, [])

    def test_caps(self) -> None:
        records = [_record(day, ["EURUSD"], "BUY", f"day {day}") for day in range(10, 20)]
        memory = build_position_memory(records, ["FX:EURUSD"], AS_OF)
        eur = memory.assets[0]
        self.assertEqual(len(eur.trend), 5)
        self.assertEqual(len(eur.recent_analyses), 3)
        self.assertEqual(eur.recent_analyses[0].summary, "day 19")

    def test_positions_and_summary_are_clamped(self) -> None:
        positions = [{"asset": f"NYSE:T{i}", "direction": "long", "confidence": "7"} for i in range(8)]
        records = [_record(20, ["AAPL"], "BUY", "x" * 900, positions)]
        analysis = build_position_memory(records, ["AAPL"], AS_OF).assets[0].recent_analyses[0]
        self.assertEqual(len(analysis.summary), 600)
        self.assertEqual(len(analysis.positions), 5)
        self.assertEqual(analysis.positions[0].direction, "BUY")
        self.assertEqual(analysis.positions[0].confidence, 7)

    def test_unusable_confidence_is_none(self) -> None:
        positions = [{"asset": "AAPL", "direction": "short", "confidence": float("inf")}, {"asset": "MSFT", "confidence": "high"}]
        records = [_record(20, ["AAPL"], "SELL", "s", positions)]
        analysis = build_position_memory(records, ["AAPL"], AS_OF).assets[0].recent_analyses[0]
        self.assertEqual([p.confidence for p in analysis.positions], [None, None])


class InMemoryReaderTests(unittest.TestCase):
    def test_reads_dict_records(self) -> None:
        reader = InMemoryPositionMemoryReader(
            [{"published_at": "2026-05-28T09:00:00Z", "assets": ["BTCUSD"], "signal": "SELL", "title": "BTC rejected"}]
        )
        memory = asyncio.run(reader.read(["BINANCE:BTCUSD"], AS_OF, "crypto"))
        self.assertEqual(memory.signal_for("BTCUSD"), "SELL")
        self.assertEqual(memory.assets[0].recent_analyses[0].summary, "BTC rejected")

    def test_window_is_configurable(self) -> None:
        reader = InMemoryPositionMemoryReader(
            [{"published_at": "2026-05-20T09:00:00Z", "assets": ["AAPL"], "signal": "BUY"}], window_days=3
        )
        self.assertEqual(asyncio.run(reader.read(["AAPL"], AS_OF, "stocks")).assets, [])


if __name__ == "__main__":
    unittest.main()
