"""Workflow execution engine.

Key Components:
    - SequentialExecutionEngine: Orchestrates one execution at a time
    - StepRegistry / Step: Step lookup and the step interface
    - WorkflowContext / ContextKey: Per-execution data shared between steps
    - ExecutionQueue, ExecutionScheduler: Waiting callers and advisory scheduling
    - ResourceManager: Memory, CPU and concurrency accounting
    - WorkflowOptimizer: Pure workflow rewriting
    - ExecutionCache: TTL + LRU cache of successful results
"""

from autopilot.engine.cache import ExecutionCache, build_cache_key
from autopilot.engine.context import ContextKey, ExecutionContext, WorkflowContext, WorkflowState
from autopilot.engine.optimizer import WorkflowOptimizer
from autopilot.engine.queue import ExecutionQueue, QueuedExecution
from autopilot.engine.resources import ResourceManager, ResourceRequirements
from autopilot.engine.scheduler import ExecutionScheduler
from autopilot.engine.sequential import SequentialExecutionEngine
from autopilot.engine.steps import FunctionStep, Step, StepRegistry

__all__ = [
    "ContextKey",
    "ExecutionCache",
    "ExecutionContext",
    "ExecutionQueue",
    "ExecutionScheduler",
    "FunctionStep",
    "QueuedExecution",
    "ResourceManager",
    "ResourceRequirements",
    "SequentialExecutionEngine",
    "Step",
    "StepRegistry",
    "WorkflowContext",
    "WorkflowOptimizer",
    "WorkflowState",
    "build_cache_key",
]
