import json

from amw.src.runtime import NavigationResult, RunLogger, TaskMemory


def test_events_are_written_as_jsonl(tmp_path):
    logger = RunLogger(tmp_path, run_id="run_test")
    logger.event("run_start", {"request": {"site": "example.com"}})
    logger.event("step_done", {"step_id": "s1", "result": NavigationResult(url="https://example.com")})
    logger.event("step_error", {"step_id": "s2", "error": "boom"})

    lines = (tmp_path / "runs" / "run_test" / "events.jsonl").read_text(encoding="utf-8").splitlines()
    rows = [json.loads(line) for line in lines]
    assert [r["event_type"] for r in rows] == ["run_start", "step_done", "step_error"]
    assert set(rows[0]) == {"timestamp", "run_id", "event_type", "payload"}
    assert rows[1]["payload"]["result"] == {"kind": "navigation", "url": "https://example.com"}

    summary = logger.summarize("failed", mode="explore")
    assert summary["events"] == 3
    assert summary["errors"] == 1
    assert summary["mode"] == "explore"
    saved = json.loads((tmp_path / "runs" / "run_test" / "summary.json").read_text(encoding="utf-8"))
    assert saved["status"] == "failed"


def test_in_memory_logger():
    logger = RunLogger()
    logger.event("hold_open", {"hold_open_ms": 10})
    assert logger.run_id.startswith("run_")
    assert logger.events_file is None
    assert logger.get_entries("hold_open")[0]["payload"] == {"hold_open_ms": 10}


def test_task_memory_dedupes_trailing_slash():
    memory = TaskMemory()
    memory.record_visit("https://example.com/")
    memory.record_visit("https://example.com", title="Example")
    memory.add_finding("price is 10")
    memory.add_finding("price is 10")
    assert memory.get_stats() == {"pages": 1, "visits": 2, "findings": 1}
    summary = memory.get_memory_summary()
    assert "- Example (https://example.com/)" in summary
    assert "Findings:\n- price is 10" in summary
