"""
Forex Trade Journal Records
===========================

trade_models.py — Trade plus its setup / pattern / partial-close sub-records
"""

from fxjournal.journal.trade_models import (
    Trade,
    TradeSetup,
    TradePattern,
    PartialClose,
    PositionEvent,
    TradeSide,
    TradeStatus,
    LotType,
    PositionEventType,
    LOT_SIZES,
)

__all__ = [
    "Trade", "TradeSetup", "TradePattern", "PartialClose", "PositionEvent",
    "TradeSide", "TradeStatus", "LotType", "PositionEventType", "LOT_SIZES",
]
