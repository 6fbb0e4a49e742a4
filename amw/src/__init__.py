"""AMW package root exposing the store, executor and orchestrator."""

from amw.src.memory import HybridRetriever, MemoryOrchestrator, MemoryStore, RunRequest
from amw.src.runtime import RunLogger, TrajectoryExecutor
from amw.src.trajectory import Step, Trajectory, build_trajectory

__all__ = [
    "HybridRetriever",
    "MemoryOrchestrator",
    "MemoryStore",
    "RunRequest",
    "RunLogger",
    "TrajectoryExecutor",
    "Step",
    "Trajectory",
    "build_trajectory",
]
