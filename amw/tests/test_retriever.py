import pytest

from amw.src.memory import HybridRetriever
from amw.src.memory.retriever import lexical_overlap, reliability, semantic_lite, trigrams
from amw.src.trajectory import build_trajectory


def _save(store, trajectory_id, site, task_type, intent):
    return store.save_trajectory(
        build_trajectory(
            trajectory_id=trajectory_id,
            site=site,
            task_type=task_type,
            intent=intent,
            steps=[{"id": "s1", "action": "open", "target": f"https://{site}"}],
        )
    )


def test_search_prefers_same_site_and_task(store):
    _save(store, "google_search", "google.com", "web_search", "search openai news")
    _save(store, "wiki_search", "wikipedia.org", "research", "find openai history")
    store.record_result("google_search", True, 800)
    store.record_result("google_search", True, 900)

    hits = HybridRetriever(store).search("google.com", "web_search", "search openai latest news", top_k=2)
    assert hits
    assert hits[0].trajectory.trajectory_id == "google_search"
    assert all(0 < hit.score <= 1 for hit in hits)


def test_falls_back_to_site_then_task_type(store):
    _save(store, "login", "example.com", "login", "sign in to account")
    _save(store, "elsewhere", "other.org", "search", "look up shoes")
    retriever = HybridRetriever(store)

    by_site = retriever.search("example.com", "search", "find shoes")
    assert [h.trajectory.trajectory_id for h in by_site] == ["login"]

    by_task = retriever.search("unknown.net", "search", "find shoes")
    assert [h.trajectory.trajectory_id for h in by_task] == ["elsewhere"]


def test_zero_signal_candidate_is_dropped(store):
    _save(store, "t1", "example.com", "search", "find shoes")
    retriever = HybridRetriever(store)
    assert retriever.search("other.org", "login", "zzz") == []
    assert retriever.search("", "", "zzz") == []
    assert len(retriever.search("", "", "find shoes")) == 1


def test_reliability_is_monotonic_in_success(store):
    _save(store, "a", "example.com", "search", "find shoes")
    _save(store, "b", "example.com", "search", "find shoes")
    store.record_result("a", True, 100)
    store.record_result("b", False, 100)
    hits = HybridRetriever(store).search("example.com", "search", "find shoes")
    assert [h.trajectory.trajectory_id for h in hits] == ["a", "b"]
    assert hits[0].score > hits[1].score
    assert hits[0].breakdown.reliability > hits[1].breakdown.reliability


def test_top_k_and_stable_ties(store):
    for name in ("one", "two", "three", "four"):
        _save(store, name, "example.com", "search", "find shoes")
    hits = HybridRetriever(store).search("example.com", "search", "find shoes", top_k=3)
    assert [h.trajectory.trajectory_id for h in hits] == ["four", "three", "two"]


def test_score_helpers():
    assert lexical_overlap({"a", "b"}, {"a"}) == 0.5
    assert lexical_overlap(set(), {"a"}) == 0.0
    assert semantic_lite("find shoes", "find shoes") == 1.0
    assert semantic_lite("", "abc") < 1.0
    assert " fi" in trigrams("Find")
    assert reliability(1.0, 40) == pytest.approx(1.0)
    assert reliability(0.0, 0) == 0.0


def test_successful_intent_ranks_above_failing_one(store):
    _save(store, "A", "x", "search", "find widget")
    _save(store, "B", "x", "search", "buy widget")
    store.record_result("A", True, 100)
    store.record_result("B", False, 100)
    hits = HybridRetriever(store).search("x", "search", "find a widget now")
    assert [h.trajectory.trajectory_id for h in hits] == ["A", "B"]


def test_breakdown_reports_named_components(store):
    _save(store, "t1", "example.com", "search", "find shoes")
    hit = HybridRetriever(store).search("example.com", "search", "find shoes")[0]
    payload = hit.to_dict()["breakdown"]
    assert set(payload) == {"site_match", "task_match", "lexical", "semantic_lite", "reliability"}
    assert payload["site_match"] == 1.0
    assert payload["task_match"] == 1.0
