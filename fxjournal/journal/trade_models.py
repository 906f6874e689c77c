"""
Trade Data Models — Forex trade journal records
================================================

Trade          — one logged round-trip (entry → exit) on a currency pair
TradeSetup     — setup classification attached to a trade
TradePattern   — recognised chart pattern on a trade
PartialClose   — partial position exit
PositionEvent  — position history (entry, partial close, stop moves)

All models are dataclasses with to_dict()/from_dict() for JSON storage.
Timestamps are ISO-8601 strings for cross-platform compatibility.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List


# ── Enums ────────────────────────────────────────────────────

class TradeSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class LotType(str, Enum):
    STANDARD = "standard"
    MINI = "mini"
    MICRO = "micro"


LOT_SIZES = {
    LotType.STANDARD.value: 100_000,
    LotType.MINI.value: 10_000,
    LotType.MICRO.value: 1_000,
}


class PositionEventType(str, Enum):
    ENTRY = "entry"
    PARTIAL_CLOSE = "partial_close"
    FULL_CLOSE = "full_close"
    STOP_ADJUSTMENT = "stop_adjustment"
    TARGET_ADJUSTMENT = "target_adjustment"


def _new_id() -> str:
    return str(uuid.uuid4())[:16]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SUB-RECORDS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class TradeSetup:
    """Setup classification — what made us take the trade."""
    id: str = field(default_factory=_new_id)
    type: str = ""                # e.g. "trend_continuation", "breakout"
    timeframe: str = ""           # e.g. "H1", "H4"
    confluence: List[str] = field(default_factory=list)
    quality: int = 0              # 1-5 self-rating
    notes: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "TradeSetup":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class TradePattern:
    """Chart pattern observed on the trade."""
    id: str = field(default_factory=_new_id)
    type: str = ""                # e.g. "hammer", "double_top"
    timeframe: str = ""
    quality: int = 0
    confluence: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "TradePattern":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class PartialClose:
    """Part of the position closed before the final exit."""
    id: str = field(default_factory=_new_id)
    timestamp: str = ""
    lot_size: float = 0.0
    price: float = 0.0
    reason: str = ""
    remaining_lots: float = 0.0
    pnl_realized: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "PartialClose":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class PositionEvent:
    """Single step in the position's lifecycle."""
    id: str = field(default_factory=_new_id)
    timestamp: str = ""
    type: str = PositionEventType.ENTRY.value
    lot_size: float = 0.0
    price: float = 0.0
    total_position_size: float = 0.0
    average_price: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "PositionEvent":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TRADE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class Trade:
    """
    A single logged forex trade.

    Optional fields are None when the journal has no value for them; the
    loading service sorts such values after every defined value.
    """
    # ── Identity ──
    id: str = field(default_factory=_new_id)
    account_id: str = ""
    currency_pair: str = ""           # "EUR/USD", "GBP/JPY"
    tags: List[str] = field(default_factory=list)

    # ── Timing ──
    date: str = ""                    # ISO date of entry
    time_in: str = ""
    time_out: Optional[str] = None
    session: Optional[str] = None     # asian / european / us / overlap

    # ── Direction & pricing ──
    side: str = TradeSide.LONG.value
    entry_price: float = 0.0
    exit_price: Optional[float] = None
    spread: Optional[float] = None    # pips

    # ── Size ──
    lot_size: float = 0.0
    lot_type: str = LotType.STANDARD.value
    units: float = 0.0

    # ── Risk ──
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_amount: Optional[float] = None
    r_multiple: Optional[float] = None

    # ── Outcome ──
    pips: Optional[float] = None
    pnl: Optional[float] = None
    commission: float = 0.0
    swap: Optional[float] = None
    account_currency: str = "USD"

    # ── Analysis ──
    strategy: Optional[str] = None
    timeframe: Optional[str] = None
    confidence: Optional[int] = None
    notes: str = ""
    status: str = TradeStatus.OPEN.value

    # ── Enhanced (2.0.0) ──
    setup: Optional[TradeSetup] = None
    patterns: List[TradePattern] = field(default_factory=list)
    partial_closes: List[PartialClose] = field(default_factory=list)
    position_history: List[PositionEvent] = field(default_factory=list)

    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    updated_at: Optional[str] = None

    def __post_init__(self):
        if not self.units and self.lot_size:
            self.units = self.lot_size * LOT_SIZES.get(self.lot_type, LOT_SIZES["standard"])

    @property
    def symbol(self) -> str:
        return self.currency_pair

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED.value

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Trade":
        valid = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        setup = valid.get("setup")
        if isinstance(setup, dict):
            valid["setup"] = TradeSetup.from_dict(setup)
        valid["patterns"] = [
            TradePattern.from_dict(p) if isinstance(p, dict) else p
            for p in valid.get("patterns") or []
        ]
        valid["partial_closes"] = [
            PartialClose.from_dict(p) if isinstance(p, dict) else p
            for p in valid.get("partial_closes") or []
        ]
        valid["position_history"] = [
            PositionEvent.from_dict(p) if isinstance(p, dict) else p
            for p in valid.get("position_history") or []
        ]
        return cls(**valid)

    def close_trade(self, exit_price: float, pnl: float, time_out: str = "",
                    pips: Optional[float] = None):
        """Mark trade as closed with the final exit and outcome."""
        self.status = TradeStatus.CLOSED.value
        self.exit_price = exit_price
        self.pnl = pnl
        self.pips = pips
        self.time_out = time_out or datetime.now().isoformat()
        self.updated_at = datetime.now().isoformat()
