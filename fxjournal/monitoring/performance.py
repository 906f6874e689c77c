"""
Performance Monitor — timing samples, thresholds, rolling summaries
===================================================================

Keeps a bounded in-memory log of metrics (oldest dropped first) and checks
each recorded metric against a fixed threshold table. Breaches are logged
as warnings and returned to the caller; they never interrupt the measured
operation.
"""

from __future__ import annotations

import json
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

import psutil

from fxjournal.utils.config import get_settings
from fxjournal.utils.logger import get_logger

if TYPE_CHECKING:
    from fxjournal.data.cache import CacheStats

logger = get_logger(__name__)

T = TypeVar("T")


class MetricCategory(str, Enum):
    CACHE = "cache"
    RENDER = "render"
    DATA = "data"
    NETWORK = "network"
    USER = "user"


class MetricName(str, Enum):
    CACHE_HIT_RATE = "cache_hit_rate"
    COMPONENT_RENDER_TIME = "component_render_time"
    COMPONENT_MOUNT_TIME = "component_mount_time"
    DATA_LOAD_TIME = "data_load_time"
    MEMORY_USAGE = "memory_usage"
    LONG_TASK = "long_task"
    PAGE_LOAD_TIME = "page_load_time"
    RESOURCE_LOAD_TIME = "resource_load_time"
    USER_INTERACTION = "user_interaction"


@dataclass
class PerformanceMetric:
    name: str                       # MetricName value or a custom name
    value: float
    category: MetricCategory = MetricCategory.DATA
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.name, MetricName):
            self.name = self.name.value
        # Closed set: an unknown category string raises ValueError here.
        self.category = MetricCategory(self.category)
        if self.metadata is None:
            self.metadata = {}

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "value": self.value,
            "category": self.category.value,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }


@dataclass
class PerformanceThresholds:
    cache_hit_rate: float = 80.0        # minimum, %
    render_time: float = 100.0          # maximum, ms
    data_load_time: float = 500.0       # maximum, ms
    memory_usage: float = 100.0         # maximum, MB
    component_mount_time: float = 50.0  # maximum, ms

    @classmethod
    def from_settings(cls) -> "PerformanceThresholds":
        s = get_settings()
        return cls(
            cache_hit_rate=s.threshold_cache_hit_rate,
            render_time=s.threshold_render_time,
            data_load_time=s.threshold_data_load_time,
            memory_usage=s.threshold_memory_usage,
            component_mount_time=s.threshold_component_mount_time,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ThresholdBreach:
    metric_name: str
    value: float
    threshold: float
    bound: str          # "min" or "max"
    message: str


@dataclass
class PerformanceSummary:
    average_render_time: float = 0.0
    average_data_load_time: float = 0.0
    cache_hit_rate: float = 0.0
    memory_usage: float = 0.0
    long_task_count: int = 0
    total_metrics: int = 0
    averages: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


# metric name → (threshold attribute, bound, label, unit)
_THRESHOLD_TABLE = {
    MetricName.CACHE_HIT_RATE.value: ("cache_hit_rate", "min", "Low cache hit rate", "%"),
    MetricName.COMPONENT_RENDER_TIME.value: ("render_time", "max", "Slow component render", "ms"),
    MetricName.DATA_LOAD_TIME.value: ("data_load_time", "max", "Slow data load", "ms"),
    MetricName.MEMORY_USAGE.value: ("memory_usage", "max", "High memory usage", "MB"),
    MetricName.COMPONENT_MOUNT_TIME.value: ("component_mount_time", "max", "Slow component mount", "ms"),
}


def _process_memory_mb() -> float:
    """Current resident set size of this process in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


def _average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class PerformanceMonitorService:
    """
    Records metrics and evaluates them against thresholds.
    One instance per owner; nothing here is process-global.
    """

    def __init__(self, thresholds: Optional[PerformanceThresholds] = None,
                 max_metrics: Optional[int] = None):
        self.thresholds = thresholds or PerformanceThresholds.from_settings()
        self.max_metrics = max_metrics or get_settings().metric_log_size
        self._metrics: deque[PerformanceMetric] = deque(maxlen=self.max_metrics)
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def __len__(self) -> int:
        return len(self._metrics)

    # ─── Recording ──────────────────────────────────────────

    def record_metric(self, metric: PerformanceMetric) -> Optional[ThresholdBreach]:
        if not self._enabled:
            return None
        self._metrics.append(metric)
        return self.check_thresholds(metric)

    def record_metric_value(
        self,
        name: Union[MetricName, str],
        value: float,
        category: MetricCategory = MetricCategory.DATA,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ThresholdBreach]:
        return self.record_metric(PerformanceMetric(
            name=name, value=value, category=category, metadata=dict(metadata or {}),
        ))

    def check_thresholds(self, metric: PerformanceMetric) -> Optional[ThresholdBreach]:
        rule = _THRESHOLD_TABLE.get(metric.name)
        if rule is None:
            return None
        attr, bound, label, unit = rule
        threshold = getattr(self.thresholds, attr)
        breached = metric.value < threshold if bound == "min" else metric.value > threshold
        if not breached:
            return None

        message = f"{label}: {metric.value:.2f}{unit} (threshold: {threshold}{unit})"
        logger.warning(
            "performance_threshold_breached",
            metric=metric.name,
            value=metric.value,
            threshold=threshold,
            bound=bound,
            metadata=metric.metadata,
        )
        return ThresholdBreach(metric.name, metric.value, threshold, bound, message)

    def measure_function(
        self,
        name: Union[MetricName, str],
        fn: Callable[[], T],
        category: MetricCategory = MetricCategory.DATA,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        category = MetricCategory(category)
        started = time.perf_counter()
        try:
            return fn()
        finally:
            self.record_metric_value(name, (time.perf_counter() - started) * 1000, category, metadata)

    async def measure_async_function(
        self,
        name: Union[MetricName, str],
        fn: Callable[[], Awaitable[T]],
        category: MetricCategory = MetricCategory.DATA,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        category = MetricCategory(category)
        started = time.perf_counter()
        try:
            return await fn()
        finally:
            self.record_metric_value(name, (time.perf_counter() - started) * 1000, category, metadata)

    def measure_render(self, component_name: str, render_fn: Callable[[], T]) -> T:
        return self.measure_function(
            MetricName.COMPONENT_RENDER_TIME, render_fn, MetricCategory.RENDER,
            {"component_name": component_name},
        )

    def record_mount_time(self, component_name: str, mount_ms: float) -> Optional[ThresholdBreach]:
        return self.record_metric_value(
            MetricName.COMPONENT_MOUNT_TIME, mount_ms, MetricCategory.RENDER,
            {"component_name": component_name},
        )

    async def measure_data_load(self, operation: str, load_fn: Callable[[], Awaitable[T]]) -> T:
        return await self.measure_async_function(
            MetricName.DATA_LOAD_TIME, load_fn, MetricCategory.DATA, {"operation": operation},
        )

    def record_cache_metrics(self, hit_count: int, total_count: int) -> Optional[ThresholdBreach]:
        hit_rate = (hit_count / total_count * 100) if total_count > 0 else 0.0
        return self.record_metric_value(
            MetricName.CACHE_HIT_RATE, hit_rate, MetricCategory.CACHE,
            {"hit_count": hit_count, "total_count": total_count,
             "miss_count": total_count - hit_count},
        )

    def record_cache_stats(self, stats: CacheStats) -> Optional[ThresholdBreach]:
        return self.record_cache_metrics(stats.hits, stats.hits + stats.misses)

    def record_memory_usage(self, used_mb: Optional[float] = None) -> Optional[ThresholdBreach]:
        if used_mb is None:
            used_mb = _process_memory_mb()
        return self.record_metric_value(MetricName.MEMORY_USAGE, used_mb, MetricCategory.DATA)

    def record_user_interaction(self, action: str,
                                metadata: Optional[Dict[str, Any]] = None) -> None:
        now = time.time()
        self.record_metric(PerformanceMetric(
            name=MetricName.USER_INTERACTION, value=now, category=MetricCategory.USER,
            timestamp=now, metadata={"action": action, **(metadata or {})},
        ))

    # ─── Queries ────────────────────────────────────────────

    def _recent(self, time_window: Optional[float]) -> List[PerformanceMetric]:
        window = time_window if time_window is not None else get_settings().summary_window_seconds
        cutoff = time.time() - window
        return [m for m in self._metrics if m.timestamp > cutoff]

    def get_performance_summary(self, time_window: Optional[float] = None) -> PerformanceSummary:
        """Means per metric name over the trailing ``time_window`` seconds."""
        recent = self._recent(time_window)
        by_name: Dict[str, List[float]] = defaultdict(list)
        for metric in recent:
            by_name[metric.name].append(metric.value)

        return PerformanceSummary(
            average_render_time=_average(by_name.get(MetricName.COMPONENT_RENDER_TIME.value, [])),
            average_data_load_time=_average(by_name.get(MetricName.DATA_LOAD_TIME.value, [])),
            cache_hit_rate=_average(by_name.get(MetricName.CACHE_HIT_RATE.value, [])),
            memory_usage=_average(by_name.get(MetricName.MEMORY_USAGE.value, [])),
            long_task_count=len(by_name.get(MetricName.LONG_TASK.value, [])),
            total_metrics=len(recent),
            averages={name: _average(values) for name, values in by_name.items()},
        )

    def get_metrics_by_category(self, category: MetricCategory,
                                time_window: Optional[float] = None) -> List[PerformanceMetric]:
        category = MetricCategory(category)
        return [m for m in self._recent(time_window) if m.category is category]

    def get_metrics_by_name(self, name: Union[MetricName, str],
                            time_window: Optional[float] = None) -> List[PerformanceMetric]:
        name = name.value if isinstance(name, MetricName) else name
        return [m for m in self._recent(time_window) if m.name == name]

    def get_all_metrics(self) -> List[PerformanceMetric]:
        return list(self._metrics)

    def clear_old_metrics(self, max_age: float = 600.0) -> int:
        cutoff = time.time() - max_age
        kept = [m for m in self._metrics if m.timestamp > cutoff]
        removed = len(self._metrics) - len(kept)
        self._metrics = deque(kept, maxlen=self.max_metrics)
        return removed

    def export_metrics(self) -> str:
        return json.dumps({
            "metrics": [m.to_dict() for m in self._metrics],
            "thresholds": self.thresholds.to_dict(),
            "summary": self.get_performance_summary().to_dict(),
            "timestamp": time.time(),
        }, indent=2, default=str)

    def cleanup(self) -> None:
        self._metrics.clear()
