"""Tests for settings, logging setup, the error hierarchy and the trade model."""

import json
import logging

import pytest

from fxjournal.journal.trade_models import PartialClose, Trade, TradeSetup
from fxjournal.utils import config
from fxjournal.utils.exceptions import (
    CacheError,
    ErrorCategory,
    JournalError,
    StorageQuotaError,
)
from fxjournal.utils.logger import get_logger, setup_logging, summarize_payload


@pytest.fixture
def clean_settings(monkeypatch):
    yield monkeypatch
    monkeypatch.undo()
    config.reload_settings()


class TestSettings:

    def test_defaults(self):
        s = config.Settings()
        assert s.cache_max_size == 100
        assert s.metric_log_size == 1000
        assert s.threshold_cache_hit_rate == 80.0
        assert s.backup_keep_count == 5

    def test_env_prefix(self, clean_settings):
        clean_settings.setenv("FXJOURNAL_CACHE_MAX_SIZE", "7")
        assert config.reload_settings().cache_max_size == 7
        assert config.get_settings().cache_max_size == 7


class TestLogging:

    def test_setup_logging_writes_json_lines(self, tmp_path):
        log_file = tmp_path / "logs" / "journal.log"
        root = logging.getLogger()
        before, before_level = list(root.handlers), root.level
        root.handlers = []
        try:
            setup_logging(level="info", log_file=str(log_file))
            get_logger("tests.journal").info("hello", n=1)
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = before
            root.setLevel(before_level)

        line = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert line["event"] == "hello"
        assert line["logger"] == "tests.journal"
        assert line["level"] == "info"
        assert line["n"] == 1

    def test_log_file_from_settings(self, clean_settings, tmp_path):
        log_file = tmp_path / "nested" / "fx.log"
        clean_settings.setenv("FXJOURNAL_LOG_FILE", str(log_file))
        config.reload_settings()
        root = logging.getLogger()
        before, before_level = list(root.handlers), root.level
        root.handlers = []
        try:
            setup_logging()
            assert log_file.parent.is_dir()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = before
            root.setLevel(before_level)

    def test_summarize_payload(self):
        assert summarize_payload({"b": 1, "a": 2}) == {"type": "dict", "size": 2, "keys": ["a", "b"]}
        assert summarize_payload([1, 2, 3]) == {"type": "list", "size": 3}
        assert summarize_payload("x") == {"type": "str"}


class TestErrors:

    def test_str_includes_category_and_key(self):
        err = CacheError("bad compute", key="trade_1")
        assert str(err) == "[cache] bad compute | Key: trade_1"
        assert isinstance(err, JournalError)

    def test_quota_error_carries_sizes(self):
        err = StorageQuotaError("k", 20, 10)
        assert err.category is ErrorCategory.STORAGE
        assert (err.required, err.quota) == (20, 10)


class TestTradeModel:

    def test_units_from_lot_size(self):
        assert Trade(lot_size=0.5).units == 50_000
        assert Trade(lot_size=2, lot_type="micro").units == 2_000

    def test_dict_round_trip_rebuilds_sub_records(self):
        trade = Trade(id="T1", currency_pair="EUR/USD", pnl=12.5,
                      setup=TradeSetup(id="S1", type="breakout", timeframe="H1"),
                      partial_closes=[PartialClose(id="PC1", lot_size=0.1)])
        data = trade.to_dict()
        data["unknown_field"] = "ignored"
        restored = Trade.from_dict(data)
        assert restored == trade
        assert isinstance(restored.setup, TradeSetup)

    def test_close_trade(self):
        trade = Trade(id="T1", currency_pair="GBP/USD")
        assert trade.symbol == "GBP/USD"
        assert not trade.is_closed
        trade.close_trade(exit_price=1.27, pnl=-40.0, pips=-8)
        assert trade.is_closed
        assert trade.pnl == -40.0
        assert trade.time_out
