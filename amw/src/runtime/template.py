"""``{{token}}`` placeholder rendering against runtime state."""
from __future__ import annotations

import re
from typing import Any

from amw.src.errors import TemplateResolutionError
from amw.src.runtime.state import RuntimeState, get_by_path, is_missing

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")

_SCOPES = (
    ("vars.", "vars"),
    ("context.", "context"),
    ("env.", "env"),
)


def resolve_token(token: str, state: RuntimeState) -> Any:
    name = token.strip()
    for prefix, attr in _SCOPES:
        if name.startswith(prefix):
            return get_by_path(getattr(state, attr), name[len(prefix):])
    return get_by_path(state.vars, name)


def render_template_string(template: str, state: RuntimeState) -> str:
    def _replace(match: re.Match[str]) -> str:
        token = match.group(1)
        value = resolve_token(token, state)
        if is_missing(value) or value is None:
            raise TemplateResolutionError(token.strip())
        return str(value)

    return _PLACEHOLDER_RE.sub(_replace, str(template))


def render_template_value(value: Any, state: RuntimeState) -> Any:
    """Render every string inside ``value``; returns a new structure."""
    if isinstance(value, str):
        return render_template_string(value, state)
    if isinstance(value, list):
        return [render_template_value(item, state) for item in value]
    if isinstance(value, tuple):
        return tuple(render_template_value(item, state) for item in value)
    if isinstance(value, dict):
        return {key: render_template_value(item, state) for key, item in value.items()}
    return value
