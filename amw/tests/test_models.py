import pytest

from amw.src.errors import ValidationError
from amw.src.trajectory import (
    DEFAULT_TIMEOUT_MS,
    build_trajectory,
    merge_keywords,
    normalize_step,
    normalize_trajectory,
)


def test_normalize_step_defaults():
    step = normalize_step({"action": "click", "target": "#go", "params": "oops"}, 2)
    assert step.id == "step_3"
    assert step.timeout_ms == DEFAULT_TIMEOUT_MS
    assert step.params == {}
    assert step.guards == []
    assert step.optional is False


def test_normalize_step_coerces_values():
    step = normalize_step(
        {
            "id": "s1",
            "action": "fill",
            "target": "#q",
            "value": 42,
            "timeout_ms": "1500",
            "guards": [{"kind": "url_contains", "value": "/search"}],
        }
    )
    assert step.value == "42"
    assert step.timeout_ms == 1500
    assert step.guards[0].negate is False


def test_normalize_step_blank_timeout_uses_default():
    assert normalize_step({"action": "click", "timeout_ms": ""}).timeout_ms == DEFAULT_TIMEOUT_MS


def test_normalize_step_rejects_non_numeric_timeout():
    with pytest.raises(ValidationError):
        normalize_step({"action": "click", "timeout_ms": "soon"})


def test_save_as_mirrored_into_params():
    top = normalize_step({"action": "get_url", "save_as": "page.url"})
    nested = normalize_step({"action": "get_url", "params": {"save_as": "page.url"}})
    assert top.save_as == nested.save_as == "page.url"
    assert top.params["save_as"] == nested.params["save_as"] == "page.url"


def test_merge_keywords_dedupes_and_includes_site_and_task():
    keywords = merge_keywords("google.com", "web_search", "Search  OpenAI news", ["News", "openai"])
    assert keywords == ["news", "openai", "search", "google.com", "web_search"]


def test_build_trajectory_signature_and_site():
    traj = build_trajectory(
        trajectory_id="t1",
        site="https://www.Example.com/login",
        task_type="login",
        intent="  Log in   to the Dashboard ",
        steps=[{"id": "s1", "action": "open", "target": "https://example.com"}],
    )
    assert traj.site == "www.example.com"
    assert traj.intent_signature == "log in to the dashboard"
    assert traj.created_at and traj.updated_at
    assert "dashboard" in traj.keywords


def test_normalization_is_idempotent():
    traj = build_trajectory(
        trajectory_id="t1",
        site="example.com",
        task_type="search",
        intent="find shoes",
        steps=[
            {"id": "s1", "action": "open", "target": "https://example.com"},
            {"id": "s2", "action": "get_url", "save_as": "u", "guards": [{"kind": "url_contains", "value": "ex"}]},
        ],
        amw_match_line="amw search shoes",
    )
    again = normalize_trajectory(traj.to_record())
    assert again == traj
    assert normalize_trajectory(again.to_record()) == again


def test_normalize_trajectory_requires_id():
    with pytest.raises(ValidationError):
        normalize_trajectory({"site": "example.com", "steps": []})


def test_duplicate_step_ids_are_rejected():
    with pytest.raises(ValidationError, match="Duplicate step id 'dup'"):
        build_trajectory(
            trajectory_id="t1",
            site="example.com",
            task_type="search",
            intent="find",
            steps=[{"id": "dup", "action": "open", "target": "https://a"}, {"id": "dup", "action": "click", "target": "#b"}],
        )


def test_default_step_id_clashing_with_explicit_id_is_rejected():
    with pytest.raises(ValidationError):
        build_trajectory(
            trajectory_id="t1",
            site="example.com",
            task_type="search",
            intent="find",
            steps=[{"id": "step_2", "action": "open", "target": "https://a"}, {"action": "click", "target": "#b"}],
        )
