"""
Shared fixtures and synthetic trade generators for journal data-layer tests.

Generates a reproducible forex journal: majors and crosses, long/short,
open/closed, with some trades carrying setups, patterns and partial closes.
Some P&L values are left unset to exercise None-last ordering.
"""

from __future__ import annotations

import random
from datetime import date, timedelta

import pytest

from fxjournal.data.cache import CacheService
from fxjournal.data.loading import DataLoadingService, LoadingConfig
from fxjournal.journal.trade_models import PartialClose, Trade, TradePattern, TradeSetup
from fxjournal.monitoring.performance import PerformanceMonitorService, PerformanceThresholds
from fxjournal.storage.kv_store import InMemoryKeyValueStore
from fxjournal.versioning.data_versioning import DataVersioningService


PAIRS = ["EUR/USD", "GBP/USD", "USD/JPY", "AUD/USD", "EUR/GBP", "GBP/JPY"]
SETUP_TYPES = ["trend_continuation", "breakout", "reversal"]
PATTERN_TYPES = ["hammer", "engulfing", "double_top"]


# ─────────────────────────────────────────────────────────
# Synthetic Journal Generator
# ─────────────────────────────────────────────────────────

def generate_trades(
    count: int = 60,
    seed: int = 7,
    start_date: date = date(2024, 1, 2),
    missing_pnl_every: int = 9,
) -> list[Trade]:
    """Generate ``count`` trades, one per calendar day from ``start_date``.

    Every ``missing_pnl_every``-th trade is open with no P&L; every third
    trade has a setup, every fourth has patterns, every fifth a partial close.
    """
    rng = random.Random(seed)
    trades = []
    for i in range(count):
        day = start_date + timedelta(days=i)
        is_open = missing_pnl_every and i % missing_pnl_every == 0
        pnl = None if is_open else round(rng.uniform(-400, 600), 2)
        entry = round(rng.uniform(1.05, 1.35), 5)

        trade = Trade(
            id=f"T{i:04d}",
            account_id="ACC-1",
            currency_pair=PAIRS[i % len(PAIRS)],
            date=day.isoformat(),
            time_in="09:30",
            side="long" if i % 2 == 0 else "short",
            entry_price=entry,
            exit_price=None if is_open else round(entry + rng.uniform(-0.01, 0.01), 5),
            lot_size=round(rng.choice([0.1, 0.5, 1.0, 2.0]), 2),
            pnl=pnl,
            status="open" if is_open else "closed",
        )
        if i % 3 == 0:
            trade.setup = TradeSetup(id=f"S{i}", type=SETUP_TYPES[i % len(SETUP_TYPES)], timeframe="H1")
        if i % 4 == 0:
            trade.patterns = [TradePattern(id=f"P{i}", type=PATTERN_TYPES[i % len(PATTERN_TYPES)],
                                           timeframe="H4")]
        if i % 5 == 0:
            trade.partial_closes = [PartialClose(id=f"PC{i}", lot_size=0.1, price=entry)]
        trades.append(trade)
    return trades


# ─────────────────────────────────────────────────────────
# Pytest Fixtures
# ─────────────────────────────────────────────────────────

@pytest.fixture
def trades() -> list[Trade]:
    """60 synthetic trades across six pairs."""
    return generate_trades()


@pytest.fixture
def cache() -> CacheService:
    return CacheService(max_size=500, name="test")


@pytest.fixture
def monitor() -> PerformanceMonitorService:
    return PerformanceMonitorService(thresholds=PerformanceThresholds(), max_metrics=1000)


@pytest.fixture
def loader(cache) -> DataLoadingService:
    return DataLoadingService(cache, LoadingConfig(batch_size=10))


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def versioning(kv_store) -> DataVersioningService:
    return DataVersioningService(kv_store, backup_keep_count=5)
