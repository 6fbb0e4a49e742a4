"""Per-execution runtime state passed to every action handler."""
from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Mapping, Optional

from amw.src.runtime.results import ActionResult

_MISSING = object()


@dataclass(slots=True)
class RuntimeArtifacts:
    generated_files: list[str] = field(default_factory=list)

    def add(self, path: str, *, unique: bool = False) -> None:
        if unique and path in self.generated_files:
            return
        self.generated_files.append(path)

    def to_dict(self) -> dict[str, Any]:
        return {"generated_files": list(self.generated_files)}


@dataclass(slots=True)
class RuntimeState:
    """
    Mutable state for a single replay.

    Handlers may write to ``vars`` and ``artifacts`` only; ``context`` and
    ``env`` are read-only views.
    """

    vars: dict[str, Any] = field(default_factory=dict)
    context: Mapping[str, Any] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)
    last_result: Any = None
    artifacts: RuntimeArtifacts = field(default_factory=RuntimeArtifacts)

    @classmethod
    def create(
        cls,
        initial_vars: Optional[Mapping[str, Any]] = None,
        context: Optional[Mapping[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "RuntimeState":
        return cls(
            vars=copy.deepcopy(dict(initial_vars or {})),
            context=MappingProxyType(dict(context or {})),
            env=MappingProxyType(dict(os.environ if env is None else env)),
        )

    def get_var(self, ref: str, default: Any = None) -> Any:
        value = get_by_path(self.vars, ref)
        return default if value is _MISSING else value

    def set_var(self, ref: str, value: Any) -> None:
        set_by_path(self.vars, ref, value)


def get_by_path(root: Any, path: str) -> Any:
    """
    Walk a dotted path through mappings, sequences and action result fields.

    Returns ``_MISSING`` when any segment is absent.
    """
    if not path:
        return _MISSING
    cur = root
    for part in str(path).split("."):
        if cur is None:
            return _MISSING
        if isinstance(cur, Mapping):
            if part not in cur:
                return _MISSING
            cur = cur[part]
        elif isinstance(cur, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            if not -len(cur) <= index < len(cur):
                return _MISSING
            cur = cur[index]
        elif isinstance(cur, ActionResult) and part in {f.name for f in fields(cur)}:
            cur = getattr(cur, part)
        else:
            return _MISSING
    return cur


def set_by_path(root: dict[str, Any], path: str, value: Any) -> None:
    parts = [p for p in str(path or "").split(".") if p]
    if not parts:
        return
    cur = root
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def is_missing(value: Any) -> bool:
    return value is _MISSING
