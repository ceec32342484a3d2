"""Prometheus metrics and in-process execution statistics."""

from autopilot.monitoring.metrics import ExecutionMetrics, ExecutionRecord, MetricsCollector

__all__ = ["ExecutionMetrics", "ExecutionRecord", "MetricsCollector"]
