"""Bounded FIFO of callers waiting for the engine."""

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueuedExecution:
    execution_id: str
    workflow_name: str
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ExecutionQueue:
    """First-in first-out queue with a fixed capacity.

    The queue never blocks: ``enqueue`` reports a full queue by returning
    False and the caller decides what to do about it.

    Example:
        >>> queue = ExecutionQueue(max_size=2)
        >>> queue.enqueue(QueuedExecution("a", "deploy"))
        True
        >>> queue.dequeue().execution_id
        'a'
    """

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._items: deque[QueuedExecution] = deque()

    def enqueue(self, item: QueuedExecution) -> bool:
        if len(self._items) >= self.max_size:
            log.warning("execution_queue_full", execution_id=item.execution_id, max_size=self.max_size)
            return False
        self._items.append(item)
        return True

    def dequeue(self) -> QueuedExecution | None:
        if not self._items:
            return None
        return self._items.popleft()

    def peek(self) -> QueuedExecution | None:
        return self._items[0] if self._items else None

    def discard(self, execution_id: str) -> bool:
        """Remove a waiting entry by id, wherever it is in the queue."""
        for item in self._items:
            if item.execution_id == execution_id:
                self._items.remove(item)
                return True
        return False

    def clear(self) -> None:
        self._items.clear()

    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, execution_id: object) -> bool:
        return any(item.execution_id == execution_id for item in self._items)

    def get_stats(self) -> dict[str, Any]:
        return {
            "length": len(self._items),
            "max_size": self.max_size,
            "oldest_enqueued_at": self._items[0].enqueued_at if self._items else None,
            "newest_enqueued_at": self._items[-1].enqueued_at if self._items else None,
        }
