"""
Trajectory executor.

Runs the steps of a trajectory strictly in order against one automation
surface. Each step is rendered, dispatched, optionally saved into ``vars``
and then checked against its guards. Step failures never escape
``replay``; they are reported through a ``ReplayResult`` and the run log.
"""
from __future__ import annotations

import asyncio
import copy
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from amw.src.errors import (
    STEP_FATAL_ERRORS,
    AutomationSurfaceError,
    GuardFailure,
    UnsupportedActionError,
    ValidationError,
)
from amw.src.runtime.actions import ActionRegistry, create_default_action_registry
from amw.src.runtime.event_log import RunLogger
from amw.src.runtime.page_memory import TaskMemory
from amw.src.runtime.results import ActionResult, TextResult, save_value_of
from amw.src.runtime.state import RuntimeState
from amw.src.runtime.template import render_template_value
from amw.src.trajectory.models import Guard, Step, Trajectory

HumanHandoff = Callable[[Step], Awaitable[None]]

HANDOFF_ACTION = "human_handoff"
_NAVIGATION_ACTIONS = {"open", "navigate"}
_URL_TRACKED_ACTIONS = {"click", "click_text", "fill", "type", "press", "wait"}
_FINDING_ACTIONS = {"copy_text"}


@dataclass(slots=True)
class ReplayResult:
    success: bool
    reason: str = ""
    executed_steps: int = 0
    latency_ms: int = 0
    failed_step_id: Optional[str] = None
    skipped_steps: List[str] = field(default_factory=list)
    generated_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "reason": self.reason,
            "executed_steps": self.executed_steps,
            "latency_ms": self.latency_ms,
            "failed_step_id": self.failed_step_id,
            "skipped_steps": list(self.skipped_steps),
            "generated_files": list(self.generated_files),
        }


async def stdin_handoff(step: Step) -> None:
    """Default handoff: wait for Enter on stdin without blocking the loop."""
    message = step.value or step.notes or "Manual action required"
    print(f"[HUMAN HANDOFF] {step.id}: {message}")
    await asyncio.to_thread(input, "Press Enter when done... ")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class TrajectoryExecutor:
    def __init__(
        self,
        surface: Any,
        logger: RunLogger,
        action_registry: Optional[ActionRegistry] = None,
        human_handoff: Optional[HumanHandoff] = None,
        initial_vars: Optional[Mapping[str, Any]] = None,
        context: Optional[Mapping[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.surface = surface
        self.logger = logger
        self.actions = action_registry or create_default_action_registry()
        self.human_handoff = human_handoff or stdin_handoff
        self.initial_vars = copy.deepcopy(dict(initial_vars or {}))
        self.context = dict(context or {})
        self.env = env
        self.runtime: Optional[RuntimeState] = None
        self.task_memory = TaskMemory()

    async def replay(self, trajectory: Trajectory) -> ReplayResult:
        started = time.monotonic()
        state = RuntimeState.create(self.initial_vars, self.context, self.env)
        self.runtime = state
        self.task_memory = TaskMemory()
        skipped: List[str] = []

        self.logger.event(
            "trajectory_start",
            {
                "trajectory_id": trajectory.trajectory_id,
                "version": trajectory.version,
                "steps": len(trajectory.steps),
            },
        )

        executed = 0
        for step in trajectory.steps:
            self.logger.event("step_start", {"step_id": step.id, "action": step.action})
            try:
                rendered, result = await self._run_step(step, state)
                executed += 1
                await self._enforce_guards(rendered)
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
                event_type = "guard_failed" if isinstance(exc, GuardFailure) else "step_error"
                payload: Dict[str, Any] = {"step_id": step.id, "action": step.action, "error": reason}
                if isinstance(exc, GuardFailure):
                    payload["guard"] = exc.guard
                else:
                    payload["error_type"] = type(exc).__name__
                self.logger.event(event_type, payload)

                if step.optional and not isinstance(exc, STEP_FATAL_ERRORS):
                    skipped.append(step.id)
                    self.logger.event("step_skipped", {"step_id": step.id, "reason": reason})
                    continue
                return ReplayResult(
                    success=False,
                    reason=reason,
                    executed_steps=executed,
                    latency_ms=_elapsed_ms(started),
                    failed_step_id=step.id,
                    skipped_steps=skipped,
                    generated_files=list(state.artifacts.generated_files),
                )
            self.logger.event("step_done", {"step_id": step.id, "result": result})

        latency_ms = _elapsed_ms(started)
        self.logger.event(
            "trajectory_done",
            {"trajectory_id": trajectory.trajectory_id, "latency_ms": latency_ms, "skipped_steps": skipped},
        )
        self.logger.event(
            "task_memory_summary",
            {"summary": self.task_memory.get_memory_summary(), "stats": self.task_memory.get_stats()},
        )
        self.logger.event("runtime_artifacts", state.artifacts.to_dict())
        return ReplayResult(
            success=True,
            reason="ok",
            executed_steps=executed,
            latency_ms=latency_ms,
            skipped_steps=skipped,
            generated_files=list(state.artifacts.generated_files),
        )

    async def _run_step(self, step: Step, state: RuntimeState) -> tuple[Step, Any]:
        rendered = Step.model_validate(render_template_value(step.model_dump(), state))

        if rendered.action == HANDOFF_ACTION:
            await self.human_handoff(rendered)
            result: Any = ActionResult(kind="handoff", data={"resumed": True})
        else:
            handler = self.actions.get(rendered.action)
            if handler is None:
                raise UnsupportedActionError(rendered.action)
            result = await handler(self.surface, state, rendered)

        state.last_result = result
        save_as = rendered.save_as or str(rendered.params.get("save_as") or "")
        if save_as:
            state.set_var(save_as, save_value_of(result))

        await self._track_page(rendered, result)
        return rendered, result

    async def _enforce_guards(self, step: Step) -> None:
        for guard in step.guards:
            if not await self._check_guard(guard):
                raise GuardFailure(step.id, guard.model_dump())

    async def _track_page(self, step: Step, result: Any) -> None:
        if step.action in _FINDING_ACTIONS and isinstance(result, TextResult):
            self.task_memory.add_finding(result.text)
        if step.action in _NAVIGATION_ACTIONS:
            url = result.url if isinstance(result, ActionResult) and result.url else step.target or step.value
            self.task_memory.record_visit(url)
        elif step.action in _URL_TRACKED_ACTIONS:
            try:
                url = await self.surface.get_url()
            except AutomationSurfaceError:
                return
            self.task_memory.record_visit(url)

    async def _check_guard(self, guard: Guard) -> bool:
        if guard.kind == "url_contains":
            passed = guard.value in await self.surface.get_url()
        elif guard.kind == "url_matches":
            try:
                pattern = re.compile(guard.value)
            except re.error as exc:
                raise ValidationError(f"Invalid url_matches pattern {guard.value!r}: {exc}") from exc
            passed = pattern.search(await self.surface.get_url()) is not None
        elif guard.kind == "snapshot_contains":
            snap = await self.surface.snapshot(False)
            passed = guard.value in str((snap or {}).get("tree") or "")
        else:
            raise ValidationError(f"Unknown guard kind: {guard.kind!r}")
        return (not passed) if guard.negate else passed
