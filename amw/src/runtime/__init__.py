"""Trajectory runtime: state, templates, actions and the executor."""
from amw.src.runtime.actions import ActionRegistry, create_default_action_registry
from amw.src.runtime.event_log import RunLogger
from amw.src.runtime.executor import ReplayResult, TrajectoryExecutor, stdin_handoff
from amw.src.runtime.page_memory import TaskMemory
from amw.src.runtime.results import (
    ActionResult,
    AssertionResult,
    CaptureResult,
    NavigationResult,
    TextResult,
    ValueResult,
)
from amw.src.runtime.state import RuntimeArtifacts, RuntimeState
from amw.src.runtime.template import render_template_string, render_template_value

__all__ = [
    "ActionRegistry",
    "create_default_action_registry",
    "RunLogger",
    "ReplayResult",
    "TrajectoryExecutor",
    "stdin_handoff",
    "TaskMemory",
    "ActionResult",
    "AssertionResult",
    "CaptureResult",
    "NavigationResult",
    "TextResult",
    "ValueResult",
    "RuntimeArtifacts",
    "RuntimeState",
    "render_template_string",
    "render_template_value",
]
