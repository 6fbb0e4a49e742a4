"""Canonical trajectory, step and guard shapes plus their normalization."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from amw.src.errors import ValidationError
from amw.src.utils.text import domain_from_site_or_url, normalize_text, tokenize, utc_now_iso

DEFAULT_TIMEOUT_MS = 30000
GUARD_KINDS = ("url_contains", "url_matches", "snapshot_contains")


class Guard(BaseModel):
    """Post-condition checked after a step executes."""

    kind: str
    value: str = ""
    negate: bool = False


class Step(BaseModel):
    """Single automation instruction inside a trajectory."""

    id: str
    action: str
    target: str = ""
    value: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    optional: bool = False
    guards: List[Guard] = Field(default_factory=list)
    notes: str = ""
    save_as: str = ""


class Trajectory(BaseModel):
    """Named, versioned sequence of steps solving a (site, task_type, intent) request."""

    trajectory_id: str
    site: str
    task_type: str
    intent: str
    intent_signature: str = ""
    keywords: List[str] = Field(default_factory=list)
    version: int = 1
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    steps: List[Step] = Field(default_factory=list)
    amw_match_line: Optional[str] = None
    branches: Dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, Mapping):
        return raw
    return {}


def _text(raw: Mapping[str, Any], key: str, default: str = "") -> str:
    value = raw.get(key)
    return default if value is None else str(value)


def _timeout(raw: Any, at: str) -> int:
    if raw is None or raw == "":
        return DEFAULT_TIMEOUT_MS
    try:
        timeout = int(float(raw))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{at} timeout_ms must be a number, got {raw!r}") from exc
    if timeout < 0:
        raise ValidationError(f"{at} timeout_ms must be non-negative, got {timeout}")
    return timeout


def normalize_guard(raw: Any) -> Guard:
    data = _as_mapping(raw)
    return Guard(
        kind=_text(data, "kind").strip(),
        value=_text(data, "value").strip(),
        negate=bool(data.get("negate") or False),
    )


def normalize_step(raw: Any, index: int = 0) -> Step:
    """
    Coerce a loosely-typed step into canonical form.

    ``save_as`` may be given at the top level or inside ``params``; the
    normalized step carries it in both places so handlers and the executor
    see the same value.
    """
    data = _as_mapping(raw)
    step_id = _text(data, "id").strip() or f"step_{index + 1}"
    params_raw = data.get("params")
    params = dict(params_raw) if isinstance(params_raw, Mapping) else {}
    save_as = _text(data, "save_as").strip() or str(params.get("save_as") or "").strip()
    if save_as:
        params["save_as"] = save_as
    guards_raw = data.get("guards")
    guards = [normalize_guard(g) for g in guards_raw] if isinstance(guards_raw, (list, tuple)) else []
    return Step(
        id=step_id,
        action=_text(data, "action").strip(),
        target=_text(data, "target"),
        value=_text(data, "value"),
        params=params,
        timeout_ms=_timeout(data.get("timeout_ms"), f"step {step_id}"),
        optional=bool(data.get("optional") or False),
        guards=guards,
        notes=_text(data, "notes"),
        save_as=save_as,
    )


def normalize_steps(raw_steps: Any) -> list[Step]:
    """Normalize a step list; step ids must be unique within it."""
    if not isinstance(raw_steps, (list, tuple)):
        return []
    steps = [normalize_step(step, i) for i, step in enumerate(raw_steps)]
    seen: set[str] = set()
    for step in steps:
        if step.id in seen:
            raise ValidationError(f"Duplicate step id {step.id!r}")
        seen.add(step.id)
    return steps


def intent_signature(intent: Any) -> str:
    return " ".join(tokenize(intent))


def merge_keywords(site: Any, task_type: Any, intent: Any, keywords: Any = None) -> list[str]:
    """Deduplicated, normalized union of supplied keywords, intent tokens, site and task type."""
    supplied = list(keywords) if isinstance(keywords, (list, tuple, set)) else []
    merged: list[str] = []
    for item in [*supplied, *tokenize(intent), site, task_type]:
        norm = normalize_text(item)
        if norm and norm not in merged:
            merged.append(norm)
    return merged


def build_trajectory(
    *,
    trajectory_id: str,
    site: str,
    task_type: str,
    intent: str,
    steps: Any = None,
    keywords: Any = None,
    version: int = 1,
    metadata: Optional[Dict[str, Any]] = None,
    created_at: str = "",
    updated_at: str = "",
    amw_match_line: Optional[str] = None,
    branches: Optional[Dict[str, Any]] = None,
) -> Trajectory:
    now = utc_now_iso()
    site_norm = domain_from_site_or_url(site)
    return Trajectory(
        trajectory_id=str(trajectory_id),
        site=site_norm,
        task_type=str(task_type),
        intent=str(intent),
        intent_signature=intent_signature(intent),
        keywords=merge_keywords(site_norm, task_type, intent, keywords),
        version=int(version or 1),
        metadata=dict(metadata or {}),
        created_at=created_at or now,
        updated_at=updated_at or now,
        steps=normalize_steps(steps),
        amw_match_line=amw_match_line,
        branches=dict(branches or {}),
    )


def normalize_trajectory(raw: Any) -> Trajectory:
    """Rebuild a stored or authored trajectory document into the canonical model."""
    data = _as_mapping(raw)
    if not _text(data, "trajectory_id"):
        raise ValidationError("trajectory_id is required")
    branches = data.get("branches")
    match_line = data.get("amw_match_line")
    return build_trajectory(
        trajectory_id=_text(data, "trajectory_id"),
        site=_text(data, "site"),
        task_type=_text(data, "task_type"),
        intent=_text(data, "intent"),
        steps=data.get("steps"),
        keywords=data.get("keywords"),
        version=int(data.get("version") or 1),
        metadata=data.get("metadata") if isinstance(data.get("metadata"), Mapping) else None,
        created_at=_text(data, "created_at"),
        updated_at=_text(data, "updated_at"),
        amw_match_line=None if match_line is None else str(match_line),
        branches=branches if isinstance(branches, Mapping) else None,
    )
