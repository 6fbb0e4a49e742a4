"""Replay-first run orchestration over the trajectory memory."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from amw.src.browser.playwright_surface import PlaywrightSurface
from amw.src.errors import AutomationSurfaceError
from amw.src.runtime.actions import ActionRegistry
from amw.src.runtime.event_log import RunLogger
from amw.src.runtime.executor import HumanHandoff, ReplayResult, TrajectoryExecutor
from amw.src.trajectory.models import Trajectory, build_trajectory
from amw.src.utils.text import domain_from_site_or_url, short_id

from .retriever import HybridRetriever
from .store import MemoryStore

MODES = ("replay", "explore", "none")
REPLAY_CANDIDATES = 3


@dataclass(slots=True)
class RunRequest:
    site: str
    task_type: str
    intent: str
    vars: Dict[str, Any] = field(default_factory=dict)
    disable_replay: bool = False
    hold_open_ms: int = 0
    session: str = "amw"
    profile: str = "main"
    profile_dir: str = "./profiles"
    headed: bool = False
    browser: str = "chromium"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "site": self.site,
            "task_type": self.task_type,
            "intent": self.intent,
            "vars": dict(self.vars),
            "disable_replay": self.disable_replay,
            "hold_open_ms": self.hold_open_ms,
            "session": self.session,
            "profile": self.profile,
            "profile_dir": self.profile_dir,
            "headed": self.headed,
            "browser": self.browser,
        }


@dataclass(slots=True)
class RunOutcome:
    success: bool
    mode: str
    result: ReplayResult
    selected_trajectory_id: str = ""
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "mode": self.mode,
            "result": self.result.to_dict(),
            "selected_trajectory_id": self.selected_trajectory_id,
            "summary": self.summary,
        }


SurfaceFactory = Callable[[RunRequest], Any]


class MemoryOrchestrator:
    """
    Runs a request replay-first.

    The best stored trajectory (if any) is replayed once. When nothing is
    found or the replay fails, the caller's fallback steps are executed as
    an exploration and persisted only if they succeed.
    """

    def __init__(
        self,
        store: MemoryStore,
        data_dir: Path | str,
        surface_factory: Optional[SurfaceFactory] = None,
        human_handoff: Optional[HumanHandoff] = None,
        action_registry: Optional[ActionRegistry] = None,
    ):
        self.store = store
        self.data_dir = Path(data_dir)
        self.retriever = HybridRetriever(store)
        self.surface_factory = surface_factory or PlaywrightSurface.from_request
        self.human_handoff = human_handoff
        self.action_registry = action_registry

    async def run(self, request: RunRequest, fallback_steps: Optional[Sequence[Any]] = None) -> RunOutcome:
        logger = RunLogger(self.data_dir)
        surface = self.surface_factory(request)
        executor = TrajectoryExecutor(
            surface,
            logger,
            action_registry=self.action_registry,
            human_handoff=self.human_handoff,
            initial_vars=request.vars,
            context={"site": request.site, "task_type": request.task_type, "intent": request.intent},
        )
        try:
            logger.event("run_start", {"request": request.to_dict()})
            if request.disable_replay:
                logger.event("retrieval_skipped", {"reason": "disable_replay=true"})
            else:
                hits = self.retriever.search(request.site, request.task_type, request.intent, top_k=REPLAY_CANDIDATES)
                logger.event("retrieval_result", {"hits": self.retriever.format_hits(hits)})
                if hits:
                    outcome = await self._replay_stored(hits[0].trajectory, executor, logger)
                    if outcome is not None:
                        return outcome

            if not fallback_steps:
                result = ReplayResult(success=False, reason="No successful replay and no fallback steps provided")
                logger.event("run_failed", {"mode": "none", "reason": result.reason})
                summary = logger.summarize("failed", mode="none", reason=result.reason)
                return RunOutcome(success=False, mode="none", result=result, summary=summary)

            return await self._explore(request, fallback_steps, executor, logger)
        finally:
            if request.hold_open_ms > 0:
                logger.event("hold_open", {"hold_open_ms": request.hold_open_ms})
                await asyncio.sleep(request.hold_open_ms / 1000.0)
            try:
                await surface.close()
            except AutomationSurfaceError as exc:
                print(f"[WARN] Failed to close automation surface: {exc}")

    async def _replay_stored(
        self, trajectory: Trajectory, executor: TrajectoryExecutor, logger: RunLogger
    ) -> Optional[RunOutcome]:
        result = await executor.replay(trajectory)
        self.store.record_result(trajectory.trajectory_id, result.success, result.latency_ms)
        if not result.success:
            logger.event(
                "replay_failed",
                {
                    "trajectory_id": trajectory.trajectory_id,
                    "failed_step_id": result.failed_step_id,
                    "reason": result.reason,
                },
            )
            return None
        self.store.save_trajectory(trajectory)
        summary = logger.summarize(
            "success",
            mode="replay",
            trajectory_id=trajectory.trajectory_id,
            executed_steps=result.executed_steps,
        )
        return RunOutcome(
            success=True,
            mode="replay",
            result=result,
            selected_trajectory_id=trajectory.trajectory_id,
            summary=summary,
        )

    async def _explore(
        self,
        request: RunRequest,
        fallback_steps: Sequence[Any],
        executor: TrajectoryExecutor,
        logger: RunLogger,
    ) -> RunOutcome:
        trajectory = build_fallback_trajectory(request, fallback_steps)
        result = await executor.replay(trajectory)
        if result.success:
            self.store.save_trajectory(trajectory)
            self.store.record_result(trajectory.trajectory_id, True, result.latency_ms)
            summary = logger.summarize(
                "success",
                mode="explore",
                trajectory_id=trajectory.trajectory_id,
                executed_steps=result.executed_steps,
            )
            return RunOutcome(
                success=True,
                mode="explore",
                result=result,
                selected_trajectory_id=trajectory.trajectory_id,
                summary=summary,
            )

        logger.event(
            "run_failed",
            {"mode": "explore", "trajectory_id": trajectory.trajectory_id, "reason": result.reason},
        )
        summary = logger.summarize(
            "failed", mode="explore", trajectory_id=trajectory.trajectory_id, reason=result.reason
        )
        return RunOutcome(
            success=False,
            mode="explore",
            result=result,
            selected_trajectory_id=trajectory.trajectory_id,
            summary=summary,
        )


def build_fallback_trajectory(request: RunRequest, steps: Sequence[Any]) -> Trajectory:
    site = domain_from_site_or_url(request.site)
    return build_trajectory(
        trajectory_id=f"{site}_{request.task_type}_{short_id()}",
        site=site,
        task_type=request.task_type,
        intent=request.intent,
        steps=list(steps),
        metadata={"source": "fallback_steps"},
    )
