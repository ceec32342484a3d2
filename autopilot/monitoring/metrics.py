"""
Metrics for workflow executions.
Integrates with Prometheus for metrics export.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any

import structlog
from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest

log = structlog.get_logger(__name__)

# Workflow execution metrics
workflow_executions = Counter(
    "autopilot_workflow_executions_total",
    "Total workflow executions",
    ["workflow", "status"],
)

workflow_duration = Histogram(
    "autopilot_workflow_duration_seconds",
    "Workflow execution duration",
    ["workflow"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 300, 900),
)

active_executions = Gauge("autopilot_active_executions", "Number of currently executing workflows")

queued_executions = Gauge("autopilot_queued_executions", "Number of callers waiting for the engine")

# Step metrics
step_executions = Counter(
    "autopilot_step_executions_total",
    "Total step executions",
    ["step_type", "status"],
)

step_duration = Histogram(
    "autopilot_step_duration_seconds",
    "Step execution duration",
    ["step_type"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1, 5, 30, 120, 300),
)

step_failures = Counter(
    "autopilot_step_failures_total",
    "Failed steps by failure kind",
    ["error_type"],
)

# Cache metrics
cache_hits = Counter("autopilot_cache_hits_total", "Cache hits", ["cache_name"])

cache_misses = Counter("autopilot_cache_misses_total", "Cache misses", ["cache_name"])

# Resource and recovery metrics
resource_rejections = Counter(
    "autopilot_resource_rejections_total",
    "Executions rejected for lack of resources",
    ["resource"],
)

rollbacks = Counter("autopilot_rollbacks_total", "Rollback attempts", ["success"])

automation_decisions = Counter(
    "autopilot_automation_decisions_total",
    "Automation level decisions",
    ["level"],
)

# System info
system_info = Info("autopilot_system", "Autopilot system information")


class MetricsCollector:
    """Collect and export metrics."""

    @staticmethod
    def record_workflow_execution(workflow: str, status: str, duration: float) -> None:
        """Record a finished workflow execution."""
        workflow_executions.labels(workflow=workflow, status=status).inc()
        workflow_duration.labels(workflow=workflow).observe(duration)
        log.debug("metric_recorded", metric="workflow_execution", workflow=workflow, status=status)

    @staticmethod
    def record_step_execution(step_type: str, success: bool, duration: float, error_type: str | None = None) -> None:
        step_executions.labels(step_type=step_type, status="success" if success else "failed").inc()
        step_duration.labels(step_type=step_type).observe(duration)
        if not success:
            step_failures.labels(error_type=error_type or "unknown").inc()

    @staticmethod
    def update_active_executions(count: int) -> None:
        active_executions.set(count)

    @staticmethod
    def update_queued_executions(count: int) -> None:
        queued_executions.set(count)

    @staticmethod
    def record_cache_hit(cache_name: str) -> None:
        cache_hits.labels(cache_name=cache_name).inc()

    @staticmethod
    def record_cache_miss(cache_name: str) -> None:
        cache_misses.labels(cache_name=cache_name).inc()

    @staticmethod
    def record_resource_rejection(resource: str) -> None:
        resource_rejections.labels(resource=resource).inc()
        log.warning("resource_rejection_recorded", resource=resource)

    @staticmethod
    def record_rollback(success: bool) -> None:
        rollbacks.labels(success=str(success)).inc()

    @staticmethod
    def record_automation_decision(level: str) -> None:
        automation_decisions.labels(level=level).inc()

    @staticmethod
    def set_system_info(**kwargs: Any) -> None:
        """Set system information."""
        system_info.info({k: str(v) for k, v in kwargs.items()})

    @staticmethod
    def get_metrics() -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest()


@dataclass(frozen=True)
class ExecutionRecord:
    execution_id: str
    workflow: str
    success: bool
    duration: float
    step_count: int
    cached: bool = False


class ExecutionMetrics:
    """In-process aggregates over recent executions.

    Keeps the last ``history_limit`` records for inspection and running
    totals over every execution since construction. Each record is also
    forwarded to ``MetricsCollector``.
    """

    def __init__(self, history_limit: int = 100) -> None:
        self._records: deque[ExecutionRecord] = deque(maxlen=history_limit)
        self.total = 0
        self.succeeded = 0
        self.failed = 0
        self.cached = 0
        self.total_duration = 0.0
        self.total_steps = 0

    def record(self, record: ExecutionRecord) -> None:
        self._records.append(record)
        self.total += 1
        if record.success:
            self.succeeded += 1
        else:
            self.failed += 1
        if record.cached:
            self.cached += 1
        self.total_duration += record.duration
        self.total_steps += record.step_count

        MetricsCollector.record_workflow_execution(
            record.workflow, "success" if record.success else "failed", record.duration
        )

    @property
    def recent(self) -> list[ExecutionRecord]:
        return list(self._records)

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.total if self.total else 0.0

    @property
    def success_rate(self) -> float:
        return self.succeeded / self.total if self.total else 0.0

    def snapshot(self) -> dict[str, Any]:
        return {
            "total_executions": self.total,
            "successful_executions": self.succeeded,
            "failed_executions": self.failed,
            "cached_executions": self.cached,
            "success_rate": self.success_rate,
            "average_duration": self.average_duration,
            "total_steps": self.total_steps,
        }
