"""SQLite-backed trajectory store with per-trajectory usage statistics."""
from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

from amw.src.memory.models import UsageStats
from amw.src.trajectory.models import Trajectory, normalize_trajectory
from amw.src.utils.text import domain_from_site_or_url, utc_now_iso


def _steps_json(trajectory: Trajectory) -> str:
    return json.dumps([s.model_dump(mode="json") for s in trajectory.steps], ensure_ascii=False, sort_keys=True)


class MemoryStore:
    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path is not None else Path("./data") / "memory.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS trajectories (
                    trajectory_id TEXT PRIMARY KEY,
                    site TEXT NOT NULL,
                    task_type TEXT NOT NULL,
                    intent TEXT NOT NULL,
                    intent_signature TEXT NOT NULL,
                    keywords_json TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    usage_count INTEGER NOT NULL DEFAULT 0,
                    success_count INTEGER NOT NULL DEFAULT 0,
                    failure_count INTEGER NOT NULL DEFAULT 0,
                    avg_latency_ms REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    path_json TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_trajectories_site_task
                    ON trajectories(site, task_type, updated_at DESC);
                CREATE INDEX IF NOT EXISTS idx_trajectories_task
                    ON trajectories(task_type, updated_at DESC);
                CREATE INDEX IF NOT EXISTS idx_trajectories_signature
                    ON trajectories(intent_signature);
                """
            )

    def save_trajectory(self, trajectory: Trajectory | Mapping[str, Any]) -> Trajectory:
        """
        Insert or update a trajectory.

        Updates keep ``created_at`` and bump ``version`` only when the step
        list differs from the stored one. Usage counters are never touched.
        """
        incoming = trajectory if isinstance(trajectory, Trajectory) else normalize_trajectory(trajectory)
        now = utc_now_iso()
        with self._transaction() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT version, created_at, path_json FROM trajectories WHERE trajectory_id = ?",
                (incoming.trajectory_id,),
            ).fetchone()
            if row is None:
                stored = incoming.model_copy(update={"created_at": incoming.created_at or now, "updated_at": now})
            else:
                previous = normalize_trajectory(json.loads(row["path_json"]))
                version = int(row["version"])
                if _steps_json(previous) != _steps_json(incoming):
                    version += 1
                stored = incoming.model_copy(
                    update={"created_at": row["created_at"], "updated_at": now, "version": version}
                )
            doc = json.dumps(stored.to_record(), ensure_ascii=False)
            conn.execute(
                """
                INSERT INTO trajectories (
                    trajectory_id, site, task_type, intent, intent_signature, keywords_json,
                    version, created_at, updated_at, path_json
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(trajectory_id) DO UPDATE SET
                    site = excluded.site,
                    task_type = excluded.task_type,
                    intent = excluded.intent,
                    intent_signature = excluded.intent_signature,
                    keywords_json = excluded.keywords_json,
                    version = excluded.version,
                    updated_at = excluded.updated_at,
                    path_json = excluded.path_json
                """,
                (
                    stored.trajectory_id,
                    stored.site,
                    stored.task_type,
                    stored.intent,
                    stored.intent_signature,
                    json.dumps(stored.keywords, ensure_ascii=False),
                    stored.version,
                    stored.created_at,
                    stored.updated_at,
                    doc,
                ),
            )
        return stored

    def get_trajectory(self, trajectory_id: str) -> Optional[Trajectory]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT path_json FROM trajectories WHERE trajectory_id = ?",
                (trajectory_id,),
            ).fetchone()
        if row is None:
            return None
        return normalize_trajectory(json.loads(row["path_json"]))

    def list_trajectories(
        self,
        site: Optional[str] = None,
        task_type: Optional[str] = None,
        limit: int = 200,
    ) -> list[Trajectory]:
        """Most recently updated first."""
        clauses = []
        params: list[Any] = []
        if site:
            clauses.append("site = ?")
            params.append(domain_from_site_or_url(site))
        if task_type:
            clauses.append("task_type = ?")
            params.append(str(task_type))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(max(1, int(limit)))
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT path_json FROM trajectories
                {where}
                ORDER BY updated_at DESC, rowid DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [normalize_trajectory(json.loads(row["path_json"])) for row in rows]

    def record_result(self, trajectory_id: str, success: bool, latency_ms: float) -> None:
        """Fold one replay outcome into the usage counters. Unknown ids are ignored."""
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE trajectories SET
                    usage_count = usage_count + 1,
                    success_count = success_count + ?,
                    failure_count = failure_count + ?,
                    avg_latency_ms = ((avg_latency_ms * usage_count) + ?) / (usage_count + 1),
                    updated_at = ?
                WHERE trajectory_id = ?
                """,
                (
                    1 if success else 0,
                    0 if success else 1,
                    float(max(0.0, latency_ms)),
                    utc_now_iso(),
                    trajectory_id,
                ),
            )

    def get_stats(self, trajectory_id: str) -> UsageStats:
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT usage_count, success_count, failure_count, avg_latency_ms
                FROM trajectories WHERE trajectory_id = ?
                """,
                (trajectory_id,),
            ).fetchone()
        if row is None:
            return UsageStats()
        return UsageStats(
            usage_count=int(row["usage_count"]),
            success_count=int(row["success_count"]),
            failure_count=int(row["failure_count"]),
            avg_latency_ms=float(row["avg_latency_ms"]),
        )

    def count(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM trajectories").fetchone()
        return int(row["total"] if row else 0)
