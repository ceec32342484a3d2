"""Workflow autopilot: automation-level decisions and sequential workflow execution.

The package decides how much autonomy to grant an automated task, then runs
the task's workflow one step at a time with resource accounting, step-list
optimization and result caching.

Example:
    >>> from autopilot.bootstrap import build_engine
    >>> from autopilot.config import AutopilotSettings
    >>> engine = build_engine(AutopilotSettings(), registry)
    >>> result = await engine.execute_workflow(workflow, WorkflowContext(), task=task)
"""

__version__ = "0.1.0"
