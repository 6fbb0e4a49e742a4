"""Hybrid lexical/trigram retrieval over stored trajectories."""
from __future__ import annotations

from typing import Iterable, Optional

from amw.src.trajectory.models import Trajectory
from amw.src.utils.text import domain_from_site_or_url, normalize_text, tokenize

from .models import RetrievalHit, ScoreBreakdown
from .store import MemoryStore

SITE_WEIGHT = 0.20
TASK_WEIGHT = 0.15
LEXICAL_WEIGHT = 0.30
SEMANTIC_WEIGHT = 0.25
RELIABILITY_WEIGHT = 0.10

RELIABILITY_USAGE_CAP = 20


def lexical_overlap(query_tokens: set[str], doc_tokens: set[str]) -> float:
    if not query_tokens or not doc_tokens:
        return 0.0
    return len(query_tokens & doc_tokens) / len(query_tokens)


def trigrams(text: str) -> set[str]:
    padded = f" {normalize_text(text)} "
    return {padded[i : i + 3] for i in range(len(padded) - 2)}


def semantic_lite(left: str, right: str) -> float:
    """Dice coefficient over space-padded character trigrams."""
    lset = trigrams(left)
    rset = trigrams(right)
    if not lset or not rset:
        return 0.0
    return 2.0 * len(lset & rset) / (len(lset) + len(rset))


def reliability(success_rate: float, usage_count: int) -> float:
    return 0.7 * success_rate + 0.3 * min(usage_count / RELIABILITY_USAGE_CAP, 1.0)


class HybridRetriever:
    def __init__(self, store: MemoryStore):
        self.store = store

    def _candidates(self, site: str, task_type: str) -> list[Trajectory]:
        tiers: list[tuple[Optional[str], Optional[str], int]] = [(site or None, task_type or None, 100)]
        if site:
            tiers.append((site, None, 200))
        if task_type:
            tiers.append((None, task_type, 200))
        for tier_site, tier_task, limit in tiers:
            rows = self.store.list_trajectories(site=tier_site, task_type=tier_task, limit=limit)
            if rows:
                return rows
        return []

    def _score(
        self,
        trajectory: Trajectory,
        *,
        site: str,
        task_type: str,
        intent: str,
        query_tokens: set[str],
    ) -> RetrievalHit:
        doc_text = " ".join([trajectory.intent, trajectory.task_type, trajectory.site, *trajectory.keywords])
        stats = self.store.get_stats(trajectory.trajectory_id)
        breakdown = ScoreBreakdown(
            site_match=1.0 if trajectory.site == site else 0.0,
            task_match=1.0 if trajectory.task_type == task_type else 0.0,
            lexical=lexical_overlap(query_tokens, set(tokenize(doc_text))),
            semantic_lite=semantic_lite(intent, trajectory.intent),
            reliability=reliability(stats.success_rate, stats.usage_count),
        )
        score = (
            SITE_WEIGHT * breakdown.site_match
            + TASK_WEIGHT * breakdown.task_match
            + LEXICAL_WEIGHT * breakdown.lexical
            + SEMANTIC_WEIGHT * breakdown.semantic_lite
            + RELIABILITY_WEIGHT * breakdown.reliability
        )
        return RetrievalHit(trajectory=trajectory, score=score, breakdown=breakdown, stats=stats)

    def search(self, site: str, task_type: str, intent: str, top_k: int = 3) -> list[RetrievalHit]:
        """
        Rank stored trajectories for a request.

        Returns at most ``top_k`` hits with positive scores, best first. Ties
        keep store order (most recently updated first).
        """
        site_norm = domain_from_site_or_url(site)
        task_norm = str(task_type or "").strip()
        intent_norm = normalize_text(intent)
        query_tokens = set(tokenize(f"{site_norm} {task_norm} {intent_norm}"))

        hits = [
            self._score(t, site=site_norm, task_type=task_norm, intent=intent_norm, query_tokens=query_tokens)
            for t in self._candidates(site_norm, task_norm)
        ]
        ranked = sorted((h for h in hits if h.score > 0), key=lambda h: h.score, reverse=True)
        return ranked[: max(0, int(top_k))]

    @staticmethod
    def format_hits(hits: Iterable[RetrievalHit]) -> list[dict]:
        return [hit.to_dict() for hit in hits]
