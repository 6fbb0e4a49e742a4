"""
Structured run event log.

Every event is one JSON object per line in ``runs/<run_id>/events.jsonl``:

{
    "timestamp": "2026-01-05T09:12:44.120934+00:00",
    "run_id": "run_3f9a02c1",
    "event_type": "step_done",
    "payload": {"step_id": "s1", "result": {...}}
}
"""
from __future__ import annotations

import json
import time
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from amw.src.utils.text import short_id, utc_now_iso

EVENT_TYPES = (
    "run_start",
    "retrieval_result",
    "retrieval_skipped",
    "trajectory_start",
    "step_start",
    "step_done",
    "step_error",
    "guard_failed",
    "step_skipped",
    "trajectory_done",
    "task_memory_summary",
    "runtime_artifacts",
    "replay_failed",
    "hold_open",
    "run_failed",
)
ERROR_EVENT_TYPES = ("step_error", "guard_failed", "run_failed")


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        to_dict = getattr(value, "to_dict", None)
        return to_jsonable(to_dict() if callable(to_dict) else asdict(value))
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class RunLogger:
    """
    Append-only event log for one orchestrator run.

    With ``base_dir=None`` events are only kept in memory, which is what the
    tests and ad-hoc executors use.
    """

    def __init__(self, base_dir: Path | str | None = None, run_id: Optional[str] = None):
        self.run_id = run_id or short_id("run")
        self.started_at = time.monotonic()
        self._entries: List[Dict[str, Any]] = []
        self.run_dir: Optional[Path] = None
        self.events_file: Optional[Path] = None
        self.summary_file: Optional[Path] = None
        if base_dir is not None:
            self.run_dir = Path(base_dir) / "runs" / self.run_id
            self.run_dir.mkdir(parents=True, exist_ok=True)
            self.events_file = self.run_dir / "events.jsonl"
            self.summary_file = self.run_dir / "summary.json"

    def event(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        row = {
            "timestamp": utc_now_iso(),
            "run_id": self.run_id,
            "event_type": event_type,
            "payload": to_jsonable(payload or {}),
        }
        self._entries.append(row)
        if self.events_file is not None:
            with self.events_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(row, ensure_ascii=False) + "\n")
        return row

    def get_entries(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        if event_type is None:
            return self._entries.copy()
        return [e for e in self._entries if e["event_type"] == event_type]

    def read_events(self) -> List[Dict[str, Any]]:
        """Events as persisted on disk; unreadable lines are skipped."""
        if self.events_file is None or not self.events_file.exists():
            return self.get_entries()
        rows = []
        for line in self.events_file.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return rows

    def summarize(self, status: str, **extra: Any) -> Dict[str, Any]:
        events = self.read_events()
        error_events = [e for e in events if e.get("event_type") in ERROR_EVENT_TYPES]
        summary = {
            "run_id": self.run_id,
            "status": status,
            "elapsed_ms": int((time.monotonic() - self.started_at) * 1000),
            "events": len(events),
            "errors": len(error_events),
            "error_events": error_events[-5:],
            "finished_at": utc_now_iso(),
            **to_jsonable(extra),
        }
        if self.summary_file is not None:
            self.summary_file.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")
        return summary
