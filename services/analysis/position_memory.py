# services/analysis/position_memory.py
"""
Read-only position memory.

Summarizes what earlier analyses said about the same assets so Stage 3 can
avoid contradicting open positions. The pipeline only reads it; whoever stores
analyses owns the records.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from schemas.analysis import AssetMemory, MemoryAnalysis, MemoryPosition, PositionMemory

WINDOW_DAYS = 28
MAX_TREND = 5
MAX_RECENT_ANALYSES = 3
MAX_POSITIONS_PER_ANALYSIS = 5
MAX_SUMMARY_CHARS = 600

_PREFIX = re.compile(
    r"^(BINANCE|COINBASE|KRAKEN|BYBIT|OKX|NASDAQ|NYSE|AMEX|FX|FX_IDC|FOREX|FOREXCOM|OANDA"
    r"|TVC|CBOE|SP|DJ|INDEX|XETR|COMEX|NYMEX):"
)
_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class PositionMemoryReader(Protocol):
    async def read(self, assets: Sequence[str], as_of: str, category: str) -> Optional[PositionMemory]:
        ...


@dataclass(frozen=True)
class MemoryRecord:
    """One stored analysis, as much of it as the memory needs."""
    published_at: datetime
    assets: List[str]
    signal: Optional[str] = None
    summary: str = ""
    positions: List[Dict[str, Any]] = field(default_factory=list)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "MemoryRecord":
        return MemoryRecord(
            published_at=parse_timestamp(d.get("published_at")) or datetime.now(timezone.utc),
            assets=[a for a in d.get("assets") or [] if isinstance(a, str)],
            signal=d.get("signal"),
            summary=str(d.get("summary") or d.get("title") or ""),
            positions=[p for p in d.get("positions") or [] if isinstance(p, dict)],
        )


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def normalize_asset_key(raw: Any) -> str:
    if not isinstance(raw, str):
        return ""
    return _NON_ALNUM.sub("", _PREFIX.sub("", raw.strip().upper()))


def map_signal(signal: Any) -> str:
    s = str(signal or "").upper()
    if "BUY" in s or s in ("LONG", "BULLISH"):
        return "BUY"
    if "SELL" in s or s in ("SHORT", "BEARISH"):
        return "SELL"
    return "HOLD"


def clamp_text(s: Any, max_len: int) -> str:
    text = str(s or "")
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"


def _confidence(v: Any) -> Optional[int]:
    try:
        return int(round(float(v)))
    except (TypeError, ValueError, OverflowError):
        return None


def _analysis(record: MemoryRecord) -> MemoryAnalysis:
    positions = []
    for p in record.positions[:MAX_POSITIONS_PER_ANALYSIS]:
        asset = p.get("asset")
        if not isinstance(asset, str) or not asset:
            continue
        positions.append(
            MemoryPosition(asset=asset, direction=map_signal(p.get("direction")), confidence=_confidence(p.get("confidence")))
        )
    return MemoryAnalysis(
        date=record.published_at.isoformat(),
        summary=clamp_text(record.summary or "-", MAX_SUMMARY_CHARS),
        positions=positions,
    )


def build_position_memory(
    records: Iterable[MemoryRecord],
    assets: Sequence[str],
    as_of: Optional[str] = None,
    window_days: int = WINDOW_DAYS,
) -> Optional[PositionMemory]:
    keys = list(dict.fromkeys(k for k in (normalize_asset_key(a) for a in assets or []) if k))
    if not keys:
        return None

    ref = parse_timestamp(as_of) or datetime.now(timezone.utc)
    if isinstance(as_of, str) and _DATE_ONLY.match(as_of.strip()):
        # a bare date covers the whole day
        ref += timedelta(days=1, microseconds=-1)
    since = ref - timedelta(days=window_days)

    in_window = sorted(
        (r for r in records if since <= r.published_at <= ref),
        key=lambda r: r.published_at,
        reverse=True,
    )
    indexed = [(r, {normalize_asset_key(a) for a in r.assets}) for r in in_window]

    out: List[AssetMemory] = []
    for key in keys:
        matched = [r for r, ks in indexed if key in ks]
        if not matched:
            continue
        signalled = [r for r in matched if r.signal]
        last = next((r for r in signalled if str(r.signal).upper() not in ("NO_TRADE", "NO TRADE")), None)
        out.append(
            AssetMemory(
                asset=key,
                last_signal=map_signal(last.signal) if last else None,
                trend=[map_signal(r.signal) for r in signalled[:MAX_TREND]],
                recent_analyses=[_analysis(r) for r in matched[:MAX_RECENT_ANALYSES]],
            )
        )
    return PositionMemory(assets=out)


class InMemoryPositionMemoryReader:
    def __init__(self, records: Iterable[Any], window_days: int = WINDOW_DAYS):
        self.records = [r if isinstance(r, MemoryRecord) else MemoryRecord.from_dict(r) for r in records]
        self.window_days = window_days

    async def read(self, assets: Sequence[str], as_of: str, category: str) -> Optional[PositionMemory]:
        return build_position_memory(self.records, assets, as_of, self.window_days)
