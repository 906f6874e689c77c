"""Performance monitoring — bounded metric log with threshold warnings."""

from fxjournal.monitoring.performance import (
    MetricCategory,
    MetricName,
    PerformanceMetric,
    PerformanceMonitorService,
    PerformanceSummary,
    PerformanceThresholds,
    ThresholdBreach,
)

__all__ = [
    "MetricCategory", "MetricName", "PerformanceMetric", "PerformanceMonitorService",
    "PerformanceSummary", "PerformanceThresholds", "ThresholdBreach",
]
