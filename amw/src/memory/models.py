"""Data models for trajectory memory."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from amw.src.trajectory.models import Trajectory


@dataclass(slots=True)
class UsageStats:
    usage_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    avg_latency_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.usage_count <= 0:
            return 0.0
        return self.success_count / self.usage_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "usage_count": self.usage_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "avg_latency_ms": self.avg_latency_ms,
            "success_rate": self.success_rate,
        }


@dataclass(slots=True)
class ScoreBreakdown:
    site_match: float = 0.0
    task_match: float = 0.0
    lexical: float = 0.0
    semantic_lite: float = 0.0
    reliability: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "site_match": self.site_match,
            "task_match": self.task_match,
            "lexical": self.lexical,
            "semantic_lite": self.semantic_lite,
            "reliability": self.reliability,
        }


@dataclass(slots=True)
class RetrievalHit:
    trajectory: Trajectory
    score: float
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    stats: UsageStats = field(default_factory=UsageStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trajectory_id": self.trajectory.trajectory_id,
            "site": self.trajectory.site,
            "task_type": self.trajectory.task_type,
            "intent": self.trajectory.intent,
            "version": self.trajectory.version,
            "score": round(self.score, 6),
            "breakdown": self.breakdown.to_dict(),
            "stats": self.stats.to_dict(),
        }
