import pytest

from amw.src.errors import TemplateResolutionError
from amw.src.runtime import NavigationResult, RuntimeState, render_template_string, render_template_value


def _state():
    return RuntimeState.create(
        {"query": "shoes", "user": {"name": "kim", "tags": ["a", "b"]}, "zero": 0},
        {"site": "example.com"},
        {"HOME_URL": "https://example.com"},
    )


def test_render_scopes():
    state = _state()
    assert render_template_string("q={{query}}", state) == "q=shoes"
    assert render_template_string("{{ vars.user.name }}", state) == "kim"
    assert render_template_string("{{context.site}}", state) == "example.com"
    assert render_template_string("{{env.HOME_URL}}/x", state) == "https://example.com/x"
    assert render_template_string("{{user.tags.1}}", state) == "b"
    assert render_template_string("{{zero}}", state) == "0"


def test_missing_token_raises():
    with pytest.raises(TemplateResolutionError) as excinfo:
        render_template_string("{{vars.nope}}", _state())
    assert "vars.nope" in str(excinfo.value)


def test_none_value_raises():
    state = _state()
    state.vars["empty"] = None
    with pytest.raises(TemplateResolutionError):
        render_template_string("{{empty}}", state)


def test_render_value_returns_new_structure():
    state = _state()
    original = {"target": "{{query}}", "params": {"items": ["{{context.site}}", 3]}, "timeout_ms": 100}
    rendered = render_template_value(original, state)
    assert rendered == {"target": "shoes", "params": {"items": ["example.com", 3]}, "timeout_ms": 100}
    assert original["target"] == "{{query}}"
    assert original["params"]["items"][0] == "{{context.site}}"


def test_no_expression_evaluation():
    state = _state()
    state.vars["1 + 1"] = "literal"
    assert render_template_string("{{1 + 1}}", state) == "literal"


def test_context_is_read_only():
    state = _state()
    with pytest.raises(TypeError):
        state.context["site"] = "other"


def test_attribute_lookup_is_limited_to_result_fields():
    state = _state()
    state.vars["s"] = "text"
    state.vars["nav"] = NavigationResult(url="https://example.com/a")
    assert render_template_string("{{nav.url}}", state) == "https://example.com/a"
    for token in ("{{s.upper}}", "{{nav.save_value}}", "{{query.__class__}}"):
        with pytest.raises(TemplateResolutionError):
            render_template_string(token, state)
