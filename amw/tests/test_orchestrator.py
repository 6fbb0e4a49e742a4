import asyncio
import json

from conftest import FakeSurface

from amw.src.memory import MemoryOrchestrator, RunRequest
from amw.src.trajectory import build_trajectory

FALLBACK = [
    {"id": "s1", "action": "open", "target": "https://example.com/search"},
    {"id": "s2", "action": "fill", "target": "#q", "value": "{{query}}"},
]


class SurfaceFactory:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created = []

    def __call__(self, request):
        surface = FakeSurface(**self.kwargs)
        self.created.append(surface)
        return surface


def _request(**overrides):
    values = {"site": "example.com", "task_type": "search", "intent": "find shoes", "vars": {"query": "shoes"}}
    values.update(overrides)
    return RunRequest(**values)


def _orchestrator(store, tmp_path, factory=None):
    return MemoryOrchestrator(store, tmp_path / "data", surface_factory=factory or SurfaceFactory())


def test_explore_when_memory_is_empty(store, tmp_path):
    factory = SurfaceFactory()
    outcome = asyncio.run(_orchestrator(store, tmp_path, factory).run(_request(), FALLBACK))

    assert outcome.success is True
    assert outcome.mode == "explore"
    assert outcome.selected_trajectory_id.startswith("example.com_search_")
    saved = store.get_trajectory(outcome.selected_trajectory_id)
    assert saved.metadata == {"source": "fallback_steps"}
    assert store.get_stats(saved.trajectory_id).success_count == 1
    assert factory.created[0].filled["#q"] == "shoes"
    assert factory.created[0].closed is True


def test_replay_success_skips_fallback(store, tmp_path):
    stored = store.save_trajectory(
        build_trajectory(
            trajectory_id="known",
            site="example.com",
            task_type="search",
            intent="find shoes",
            steps=[{"id": "s1", "action": "open", "target": "https://example.com/known"}],
        )
    )
    factory = SurfaceFactory()
    outcome = asyncio.run(_orchestrator(store, tmp_path, factory).run(_request(), FALLBACK))

    assert outcome.success is True
    assert outcome.mode == "replay"
    assert outcome.selected_trajectory_id == "known"
    assert factory.created[0].calls[0] == ("open", "https://example.com/known")
    assert ("fill", "#q", "shoes") not in factory.created[0].calls
    assert store.count() == 1
    assert store.get_stats("known").usage_count == 1
    assert store.get_trajectory("known").created_at == stored.created_at


def test_failed_replay_falls_back_to_explore(store, tmp_path):
    store.save_trajectory(
        build_trajectory(
            trajectory_id="stale",
            site="example.com",
            task_type="search",
            intent="find shoes",
            steps=[{"id": "s1", "action": "open", "target": "https://example.com", "guards": [{"kind": "url_contains", "value": "/moved"}]}],
        )
    )
    orchestrator = _orchestrator(store, tmp_path)
    outcome = asyncio.run(orchestrator.run(_request(), FALLBACK))

    assert outcome.mode == "explore"
    assert outcome.success is True
    stats = store.get_stats("stale")
    assert stats.usage_count == 1
    assert stats.failure_count == 1
    assert store.count() == 2

    events_file = tmp_path / "data" / "runs"
    rows = []
    for path in events_file.glob("*/events.jsonl"):
        rows.extend(json.loads(line) for line in path.read_text(encoding="utf-8").splitlines())
    assert "replay_failed" in [r["event_type"] for r in rows]


def test_failed_explore_is_not_persisted(store, tmp_path):
    factory = SurfaceFactory(fail_on={"open"})
    outcome = asyncio.run(_orchestrator(store, tmp_path, factory).run(_request(), FALLBACK))

    assert outcome.success is False
    assert outcome.mode == "explore"
    assert outcome.result.failed_step_id == "s1"
    assert store.count() == 0
    assert outcome.summary["status"] == "failed"
    assert outcome.summary["errors"] >= 1
    assert factory.created[0].closed is True


def test_none_mode_without_fallback(store, tmp_path):
    outcome = asyncio.run(_orchestrator(store, tmp_path).run(_request()))
    assert outcome.success is False
    assert outcome.mode == "none"
    assert "no fallback steps" in outcome.result.reason
    assert outcome.selected_trajectory_id == ""


def test_disable_replay_forces_explore(store, tmp_path):
    store.save_trajectory(
        build_trajectory(
            trajectory_id="known",
            site="example.com",
            task_type="search",
            intent="find shoes",
            steps=[{"id": "s1", "action": "open", "target": "https://example.com/known"}],
        )
    )
    orchestrator = _orchestrator(store, tmp_path)
    outcome = asyncio.run(orchestrator.run(_request(disable_replay=True), FALLBACK))
    assert outcome.mode == "explore"
    assert store.get_stats("known").usage_count == 0


def test_hold_open_pauses_before_close(monkeypatch, store, tmp_path):
    slept = []
    real_sleep = asyncio.sleep

    async def fake_sleep(seconds):
        slept.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr("amw.src.memory.orchestrator.asyncio.sleep", fake_sleep)
    factory = SurfaceFactory()
    asyncio.run(_orchestrator(store, tmp_path, factory).run(_request(hold_open_ms=1500)))
    assert slept == [1.5]
    assert factory.created[0].closed is True
