"""Custom exception hierarchy for the workflow autopilot.

This module defines the structured exceptions raised by the automation
core. Business-level failures (a step failing validation, a step timing
out) are never raised to callers; they are reported on the
``ExecutionResult``. The exceptions below cover the cases callers must
branch on: "retry later" versus "this will never succeed as given".

Exception Hierarchy:
    AutopilotError (base)
    ├── ConfigurationError
    ├── WorkflowDefinitionError
    │   └── StepResolutionError
    ├── ResourceExhaustedError
    ├── QueueFullError
    ├── PreferencePersistenceError
    ├── RollbackError
    ├── CacheCorruptionError
    └── ExecutionTimeoutError

Example Usage:
    >>> from autopilot.exceptions import ResourceExhaustedError
    >>> try:
    ...     await engine.execute_workflow(workflow, context)
    ... except ResourceExhaustedError as e:
    ...     await asyncio.sleep(backoff)
"""


class AutopilotError(Exception):
    """Base exception for all autopilot errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(AutopilotError):
    """Configuration-related errors.

    Raised when configuration files are invalid, missing, or contain
    incompatible settings (for example confidence weights that do not sum
    to 1.0).
    """

    pass


class WorkflowDefinitionError(AutopilotError):
    """A workflow is malformed and can never execute as given.

    Examples:
        - Workflow with zero steps
        - Step without a type
        - Unknown automation level in a preference
    """

    def __init__(self, message: str, workflow_name: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            workflow_name: Name of the offending workflow
        """
        self.workflow_name = workflow_name
        full_message = message
        if workflow_name:
            full_message = f"{message} (workflow: {workflow_name})"
        super().__init__(full_message)
        self.message = message


class StepResolutionError(WorkflowDefinitionError):
    """No executable step is registered for a step's name or type."""

    def __init__(self, step_name: str, step_type: str, workflow_name: str | None = None) -> None:
        self.step_name = step_name
        self.step_type = step_type
        super().__init__(
            f"No step registered for name '{step_name}' or type '{step_type}'",
            workflow_name=workflow_name,
        )


class ResourceExhaustedError(AutopilotError):
    """Requested capacity would exceed configured limits.

    Raised before any step runs. Callers may retry after a backoff.

    Attributes:
        execution_id: Execution that requested the resources
        resource: Which limit was hit ("memory", "cpu" or "concurrency")
        requested: Amount requested for the limited resource
        in_use: Amount currently allocated
        limit: Configured limit
    """

    def __init__(
        self,
        message: str,
        execution_id: str | None = None,
        resource: str | None = None,
        requested: float | None = None,
        in_use: float | None = None,
        limit: float | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            execution_id: Execution that requested the resources
            resource: Name of the exhausted resource
            requested: Requested amount
            in_use: Currently allocated amount
            limit: Configured limit
        """
        self.execution_id = execution_id
        self.resource = resource
        self.requested = requested
        self.in_use = in_use
        self.limit = limit

        full_message = message
        if execution_id:
            full_message = f"{message} (execution: {execution_id})"
        super().__init__(full_message)
        self.message = message

    @property
    def retryable(self) -> bool:
        """Resource exhaustion is always transient."""
        return True


class QueueFullError(AutopilotError):
    """The engine's execution queue is at capacity.

    Attributes:
        max_size: Configured queue capacity
    """

    def __init__(self, message: str, max_size: int | None = None) -> None:
        self.max_size = max_size
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return True


class PreferencePersistenceError(AutopilotError):
    """The preference store failed to persist an automation preference.

    Attributes:
        scope: "user" or "project"
        subject_id: The user or project id being written
    """

    def __init__(self, message: str, scope: str | None = None, subject_id: str | None = None) -> None:
        self.scope = scope
        self.subject_id = subject_id

        full_message = message
        if scope and subject_id:
            full_message = f"{message} ({scope}: {subject_id})"
        super().__init__(full_message)
        self.message = message


class RollbackError(AutopilotError):
    """The configured rollback strategy itself failed.

    Never raised to callers of the engine. It is logged and its message is
    attached to the execution result as auxiliary information.

    Attributes:
        failed_step_index: Index of the step that triggered the rollback
    """

    def __init__(self, message: str, failed_step_index: int | None = None) -> None:
        self.failed_step_index = failed_step_index
        super().__init__(message)


class CacheCorruptionError(AutopilotError):
    """A cache entry does not have the expected shape.

    Raised and handled inside the execution cache; the entry is evicted and
    the lookup is treated as a miss.
    """

    def __init__(self, message: str, cache_key: str | None = None) -> None:
        self.cache_key = cache_key
        super().__init__(message)


class ExecutionTimeoutError(AutopilotError):
    """A step exceeded its allotted time.

    Attributes:
        step_name: Name of the step that timed out
        timeout_seconds: The timeout that was exceeded
    """

    def __init__(self, message: str, step_name: str | None = None, timeout_seconds: float | None = None) -> None:
        self.step_name = step_name
        self.timeout_seconds = timeout_seconds
        if timeout_seconds and "timeout" not in message.lower():
            message = f"{message} (timeout: {timeout_seconds}s)"
        super().__init__(message)
