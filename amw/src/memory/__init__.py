"""AMW trajectory memory package."""

from .models import RetrievalHit, ScoreBreakdown, UsageStats
from .orchestrator import MemoryOrchestrator, RunOutcome, RunRequest, build_fallback_trajectory
from .retriever import HybridRetriever
from .store import MemoryStore

__all__ = [
    "RetrievalHit",
    "ScoreBreakdown",
    "UsageStats",
    "MemoryOrchestrator",
    "RunOutcome",
    "RunRequest",
    "build_fallback_trajectory",
    "HybridRetriever",
    "MemoryStore",
]
