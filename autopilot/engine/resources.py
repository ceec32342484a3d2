"""
Resource reservation for workflow executions.

The ResourceManager tracks memory, CPU share and concurrency across all
active executions. An allocation either fits entirely within the limits or
is rejected with ``ResourceExhaustedError``; there is no partial
reservation. The check and the commit happen under one ``asyncio.Lock`` so
concurrent callers cannot oversubscribe.

Example:
    >>> manager = ResourceManager(settings.resources)
    >>> allocation = await manager.allocate_resources("exec-1", ResourceRequirements(memory_mb=128))
    >>> await manager.release_resources("exec-1")
    True
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from autopilot.config.settings import ResourceSettings
from autopilot.exceptions import ResourceExhaustedError
from autopilot.models.domain import ResourceAllocation

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResourceRequirements:
    """Requested reservation; unset fields use the configured defaults."""

    memory_mb: float | None = None
    cpu_percent: float | None = None


@dataclass(frozen=True)
class ReleasedAllocation:
    allocation: ResourceAllocation
    released_at: datetime

    @property
    def held_seconds(self) -> float:
        return (self.released_at - self.allocation.allocated_at).total_seconds()


class ResourceManager:
    """Reserve and release capacity for executions.

    Attributes:
        settings: Limits and default per-execution requirements.
    """

    def __init__(self, settings: ResourceSettings | None = None) -> None:
        self.settings = settings or ResourceSettings()
        self._allocations: dict[str, ResourceAllocation] = {}
        self._history: deque[ReleasedAllocation] = deque(maxlen=self.settings.history_limit or None)
        self._rejections = 0
        self._lock = asyncio.Lock()

    async def allocate_resources(
        self, execution_id: str, requirements: ResourceRequirements | None = None
    ) -> ResourceAllocation:
        """Reserve capacity for ``execution_id``.

        Raises:
            ResourceExhaustedError: If memory, CPU or concurrency limits
                would be exceeded
            ValueError: If ``execution_id`` already holds an allocation
        """
        requirements = requirements or ResourceRequirements()
        memory = requirements.memory_mb if requirements.memory_mb is not None else self.settings.default_memory_mb
        cpu = requirements.cpu_percent if requirements.cpu_percent is not None else self.settings.default_cpu_percent

        async with self._lock:
            if execution_id in self._allocations:
                raise ValueError(f"Execution {execution_id} already holds an allocation")

            self._check_limits(execution_id, memory, cpu)

            allocation = ResourceAllocation(
                execution_id=execution_id,
                memory_mb=memory,
                cpu_percent=cpu,
                timeout=self.settings.allocation_timeout_seconds,
            )
            self._allocations[execution_id] = allocation
            active = len(self._allocations)

        log.info("resources_allocated", execution_id=execution_id, memory_mb=memory, cpu_percent=cpu, active=active)
        return allocation

    def _check_limits(self, execution_id: str, memory: float, cpu: float) -> None:
        # Caller holds the lock.
        active = len(self._allocations)
        if active >= self.settings.max_concurrent_executions:
            self._reject(execution_id, "concurrency", 1, active, self.settings.max_concurrent_executions)

        used_memory = sum(a.memory_mb for a in self._allocations.values())
        if used_memory + memory > self.settings.max_memory_mb:
            self._reject(execution_id, "memory", memory, used_memory, self.settings.max_memory_mb)

        used_cpu = sum(a.cpu_percent for a in self._allocations.values())
        if used_cpu + cpu > self.settings.max_cpu_percent:
            self._reject(execution_id, "cpu", cpu, used_cpu, self.settings.max_cpu_percent)

    def _reject(self, execution_id: str, resource: str, requested: float, in_use: float, limit: float) -> None:
        self._rejections += 1
        log.warning(
            "resources_exhausted",
            execution_id=execution_id,
            resource=resource,
            requested=requested,
            in_use=in_use,
            limit=limit,
        )
        raise ResourceExhaustedError(
            f"Insufficient {resource} for execution {execution_id}: "
            f"requested {requested}, in use {in_use}, limit {limit}",
            execution_id=execution_id,
            resource=resource,
            requested=requested,
            in_use=in_use,
            limit=limit,
        )

    async def release_resources(self, execution_id: str) -> bool:
        """Release the allocation held by ``execution_id``.

        Returns False, without error, if nothing is held.
        """
        async with self._lock:
            allocation = self._allocations.pop(execution_id, None)
            if allocation is None:
                return False
            self._history.append(ReleasedAllocation(allocation, datetime.now(UTC)))

        log.info("resources_released", execution_id=execution_id)
        return True

    async def get_resource_utilization(self) -> dict[str, float]:
        """Current usage as percentages of each limit."""
        async with self._lock:
            allocations = list(self._allocations.values())

        memory = sum(a.memory_mb for a in allocations)
        cpu = sum(a.cpu_percent for a in allocations)
        return {
            "memory": memory / self.settings.max_memory_mb * 100,
            "cpu": cpu / self.settings.max_cpu_percent * 100,
            "concurrency": len(allocations) / self.settings.max_concurrent_executions * 100,
        }

    def get_allocation(self, execution_id: str) -> ResourceAllocation | None:
        return self._allocations.get(execution_id)

    @property
    def active_count(self) -> int:
        return len(self._allocations)

    async def update_limits(
        self,
        max_memory_mb: float | None = None,
        max_cpu_percent: float | None = None,
        max_concurrent_executions: int | None = None,
    ) -> ResourceSettings:
        """Change limits for future allocations. Existing allocations are kept."""
        changes: dict[str, Any] = {}
        if max_memory_mb is not None:
            changes["max_memory_mb"] = max_memory_mb
        if max_cpu_percent is not None:
            changes["max_cpu_percent"] = max_cpu_percent
        if max_concurrent_executions is not None:
            changes["max_concurrent_executions"] = max_concurrent_executions

        async with self._lock:
            self.settings = ResourceSettings.model_validate({**self.settings.model_dump(), **changes})

        log.info("resource_limits_updated", **changes)
        return self.settings

    def get_statistics(self) -> dict[str, Any]:
        history = list(self._history)
        return {
            "active_allocations": len(self._allocations),
            "total_released": len(history),
            "rejections": self._rejections,
            "average_hold_seconds": (sum(h.held_seconds for h in history) / len(history)) if history else 0.0,
            "peak_memory_mb": max((h.allocation.memory_mb for h in history), default=0.0),
        }
