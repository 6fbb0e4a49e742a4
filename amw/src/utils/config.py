"""Configuration helpers for AMW runs."""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from amw.src.utils.text import parse_bool

CONFIG_FILENAME = "amw.config.json"

_ENV_KEYS = {
    "headed": "AMW_HEADED",
    "hold_open_ms": "AMW_HOLD_OPEN_MS",
    "session": "AMW_SESSION",
    "profile": "AMW_PROFILE",
    "profile_dir": "AMW_PROFILE_DIR",
    "browser": "AMW_BROWSER",
    "store_dir": "AMW_STORE_DIR",
    "disable_replay": "AMW_DISABLE_REPLAY",
}


@dataclass(slots=True)
class AmwConfig:
    """Resolved settings for the store and the browser surface."""

    headed: bool = False
    hold_open_ms: int = 0
    session: str = "amw"
    profile: str = "main"
    profile_dir: str = "./profiles"
    browser: str = "chromium"
    store_dir: str = "./data"
    disable_replay: bool = False
    config_path: Optional[str] = field(default=None, compare=False)

    @property
    def db_path(self) -> Path:
        return Path(self.store_dir) / "memory.db"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coerce(raw: Any, current: Any) -> Any:
    if isinstance(current, bool):
        return parse_bool(raw)
    if isinstance(current, int):
        try:
            return int(float(raw))
        except (TypeError, ValueError):
            return current
    return str(raw)


def load_config(cwd: Path | str | None = None, environ: Optional[dict[str, str]] = None) -> AmwConfig:
    """Defaults, then ``amw.config.json`` in ``cwd``, then ``AMW_*`` variables."""
    base = Path(cwd) if cwd is not None else Path.cwd()
    env = os.environ if environ is None else environ
    config = AmwConfig()
    config_path = base / CONFIG_FILENAME
    config.config_path = str(config_path)

    if config_path.exists():
        try:
            file_values = json.loads(config_path.read_text(encoding="utf-8-sig"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid config JSON: {config_path}") from exc
        if not isinstance(file_values, dict):
            raise ValueError(f"Config file must hold a JSON object: {config_path}")
        known = {f.name for f in fields(AmwConfig)} - {"config_path"}
        for key, raw in file_values.items():
            if key in known and raw is not None:
                setattr(config, key, _coerce(raw, getattr(config, key)))

    for key, env_name in _ENV_KEYS.items():
        raw = env.get(env_name)
        if raw is None or raw == "":
            continue
        setattr(config, key, _coerce(raw, getattr(config, key)))
    return config
