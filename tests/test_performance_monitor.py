"""Tests for the performance monitor: bounded log, thresholds, measurement, summaries."""

import asyncio
import json
import time
from types import SimpleNamespace

import pytest

from fxjournal.data.cache import CacheService
from fxjournal.monitoring import performance
from fxjournal.monitoring.performance import (
    MetricCategory,
    MetricName,
    PerformanceMetric,
    PerformanceMonitorService,
    PerformanceThresholds,
)


def metric(name, value, category=MetricCategory.DATA, age=0.0, **metadata):
    return PerformanceMetric(name=name, value=value, category=category,
                             timestamp=time.time() - age, metadata=metadata)


class TestMetricLog:

    def test_log_is_capped_and_evicts_oldest(self, monitor):
        for i in range(1001):
            monitor.record_metric(metric("custom", float(i)))
        values = [m.value for m in monitor.get_all_metrics()]
        assert len(values) == 1000
        assert values[0] == 1.0
        assert values[-1] == 1000.0

    def test_disabled_monitor_drops_metrics(self, monitor):
        monitor.set_enabled(False)
        assert monitor.record_metric(metric(MetricName.DATA_LOAD_TIME, 9999)) is None
        assert len(monitor) == 0
        monitor.set_enabled(True)
        monitor.record_metric(metric("custom", 1))
        assert len(monitor) == 1

    def test_metric_name_enum_is_normalised(self):
        m = metric(MetricName.LONG_TASK, 60, MetricCategory.RENDER)
        assert m.name == "long_task"
        assert m.to_dict()["category"] == "render"

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError):
            PerformanceMetric(name="x", value=1, category="rendr")


class TestThresholds:

    @pytest.mark.parametrize("name,value,breached", [
        (MetricName.CACHE_HIT_RATE, 50.0, True),
        (MetricName.CACHE_HIT_RATE, 95.0, False),
        (MetricName.COMPONENT_RENDER_TIME, 150.0, True),
        (MetricName.COMPONENT_RENDER_TIME, 20.0, False),
        (MetricName.DATA_LOAD_TIME, 501.0, True),
        (MetricName.MEMORY_USAGE, 250.0, True),
        (MetricName.COMPONENT_MOUNT_TIME, 75.0, True),
        (MetricName.LONG_TASK, 10_000.0, False),
        ("custom_metric", 10_000.0, False),
    ])
    def test_threshold_table(self, monitor, name, value, breached):
        result = monitor.record_metric(metric(name, value))
        assert (result is not None) == breached
        assert len(monitor) == 1

    def test_breach_details(self, monitor):
        breach = monitor.record_metric(metric(MetricName.DATA_LOAD_TIME, 800.0, operation="load"))
        assert breach.metric_name == "data_load_time"
        assert breach.threshold == 500.0
        assert breach.bound == "max"
        assert "Slow data load" in breach.message

    def test_custom_thresholds(self):
        strict = PerformanceMonitorService(PerformanceThresholds(render_time=5.0), max_metrics=10)
        assert strict.record_metric(metric(MetricName.COMPONENT_RENDER_TIME, 6.0)) is not None

    def test_defaults_come_from_settings(self):
        assert PerformanceThresholds.from_settings() == PerformanceThresholds()


class TestMeasurement:

    def test_measure_function_returns_result_unchanged(self, monitor):
        payload = {"rows": [1, 2, 3]}
        result = monitor.measure_function("compute_stats", lambda: payload, MetricCategory.DATA, {"k": "v"})
        assert result is payload
        recorded = monitor.get_metrics_by_name("compute_stats")
        assert len(recorded) == 1
        assert recorded[0].value >= 0
        assert recorded[0].metadata == {"k": "v"}

    def test_measure_function_records_on_exception(self, monitor):
        def fail():
            raise KeyError("x")

        with pytest.raises(KeyError):
            monitor.measure_function("failing", fail)
        assert len(monitor.get_metrics_by_name("failing")) == 1

    def test_bad_category_rejected_before_work_runs(self, monitor):
        calls = []
        with pytest.raises(ValueError):
            monitor.measure_function("x", lambda: calls.append(1), category="bogus")
        assert calls == []
        assert len(monitor) == 0

    @pytest.mark.asyncio
    async def test_bad_category_rejected_before_async_work_runs(self, monitor):
        calls = []

        async def work():
            calls.append(1)

        with pytest.raises(ValueError):
            await monitor.measure_async_function("x", work, category="bogus")
        assert calls == []

    @pytest.mark.asyncio
    async def test_measure_async_function(self, monitor):
        async def load():
            await asyncio.sleep(0.01)
            return "done"

        assert await monitor.measure_async_function("async_load", load) == "done"
        recorded = monitor.get_metrics_by_name("async_load")
        assert recorded[0].value >= 5

    @pytest.mark.asyncio
    async def test_measure_data_load(self, monitor):
        async def load():
            return [1]

        assert await monitor.measure_data_load("trades", load) == [1]
        recorded = monitor.get_metrics_by_name(MetricName.DATA_LOAD_TIME)
        assert recorded[0].metadata == {"operation": "trades"}

    def test_measure_render_and_mount(self, monitor):
        assert monitor.measure_render("TradeTable", lambda: "<table>") == "<table>"
        monitor.record_mount_time("TradeTable", 12.0)
        render = monitor.get_metrics_by_category(MetricCategory.RENDER)
        assert {m.name for m in render} == {"component_render_time", "component_mount_time"}


class TestCacheAndMemory:

    def test_record_cache_metrics(self, monitor):
        breach = monitor.record_cache_metrics(3, 4)
        assert breach is not None           # 75% < 80%
        m = monitor.get_metrics_by_name(MetricName.CACHE_HIT_RATE)[0]
        assert m.value == pytest.approx(75.0)
        assert m.metadata["miss_count"] == 1

    def test_zero_total_is_zero_rate(self, monitor):
        monitor.record_cache_metrics(0, 0)
        assert monitor.get_all_metrics()[0].value == 0.0

    def test_record_cache_stats(self, monitor):
        cache = CacheService(max_size=5)
        cache.set("a", 1)
        for _ in range(9):
            cache.get("a")
        cache.get("b")
        assert monitor.record_cache_stats(cache.get_stats()) is None
        assert monitor.get_all_metrics()[0].value == pytest.approx(90.0)

    def test_record_memory_usage_explicit(self, monitor):
        assert monitor.record_memory_usage(512.0) is not None
        assert monitor.get_all_metrics()[0].category is MetricCategory.DATA

    def test_record_memory_usage_sampled(self, monitor):
        monitor.record_memory_usage()
        m = monitor.get_all_metrics()[0]
        assert m.name == "memory_usage"
        assert m.value > 0

    def test_memory_sample_follows_current_rss(self, monitor, monkeypatch):
        samples = iter([400 * 1024 * 1024, 60 * 1024 * 1024])

        class FakeProcess:
            def memory_info(self):
                return SimpleNamespace(rss=next(samples))

        monkeypatch.setattr(performance.psutil, "Process", FakeProcess)
        monitor.record_memory_usage()
        monitor.record_memory_usage()
        assert [m.value for m in monitor.get_all_metrics()] == [400.0, 60.0]

    def test_user_interaction(self, monitor):
        monitor.record_user_interaction("open_trade", {"trade_id": "T1"})
        m = monitor.get_metrics_by_category(MetricCategory.USER)[0]
        assert m.metadata == {"action": "open_trade", "trade_id": "T1"}


class TestSummary:

    def test_averages_within_window(self, monitor):
        monitor.record_metric(metric(MetricName.COMPONENT_RENDER_TIME, 10, MetricCategory.RENDER))
        monitor.record_metric(metric(MetricName.COMPONENT_RENDER_TIME, 30, MetricCategory.RENDER))
        monitor.record_metric(metric(MetricName.DATA_LOAD_TIME, 100))
        monitor.record_metric(metric(MetricName.LONG_TASK, 70, MetricCategory.RENDER))
        monitor.record_metric(metric(MetricName.LONG_TASK, 90, MetricCategory.RENDER))
        monitor.record_metric(metric(MetricName.DATA_LOAD_TIME, 9999, age=600))  # outside window

        summary = monitor.get_performance_summary(time_window=300)

        assert summary.average_render_time == pytest.approx(20.0)
        assert summary.average_data_load_time == pytest.approx(100.0)
        assert summary.long_task_count == 2
        assert summary.total_metrics == 5
        assert summary.cache_hit_rate == 0.0
        assert summary.averages["long_task"] == pytest.approx(80.0)

    def test_clear_old_metrics(self, monitor):
        monitor.record_metric(metric("old", 1, age=1200))
        monitor.record_metric(metric("new", 1))
        assert monitor.clear_old_metrics(max_age=600) == 1
        assert [m.name for m in monitor.get_all_metrics()] == ["new"]

    def test_export_metrics_is_json(self, monitor):
        monitor.record_metric(metric(MetricName.DATA_LOAD_TIME, 42))
        exported = json.loads(monitor.export_metrics())
        assert exported["metrics"][0]["name"] == "data_load_time"
        assert exported["thresholds"]["data_load_time"] == 500.0
        assert exported["summary"]["average_data_load_time"] == 42

    def test_cleanup(self, monitor):
        monitor.record_metric(metric("x", 1))
        monitor.cleanup()
        assert monitor.get_all_metrics() == []

    def test_independent_instances(self):
        a = PerformanceMonitorService(max_metrics=5)
        b = PerformanceMonitorService(max_metrics=5)
        a.record_metric(metric("x", 1))
        assert len(b) == 0
