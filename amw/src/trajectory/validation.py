"""Steps-file loading and authoring checks."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from amw.src.errors import ValidationError
from amw.src.trajectory.models import GUARD_KINDS, Step, normalize_steps

MATCH_LINE_ANCHOR = "amw"
MAX_BRANCHES = 2


@dataclass(slots=True)
class StepsFile:
    payload: Any
    path: Path
    has_bom: bool = False


@dataclass(slots=True)
class ValidationReport:
    step_count: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def read_steps_file(path: Path | str) -> StepsFile:
    absolute = Path(path).resolve()
    raw = absolute.read_bytes()
    has_bom = raw.startswith(b"\xef\xbb\xbf")
    try:
        payload = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Invalid JSON in {absolute}: {exc}") from exc
    return StepsFile(payload=payload, path=absolute, has_bom=has_bom)


def _step_list(payload: Any) -> Any:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return payload.get("steps")
    return None


def load_steps(path: Path | str) -> list[Step]:
    """Read a JSON array of steps, or an object with a ``steps`` array."""
    steps_file = read_steps_file(path)
    step_list = _step_list(steps_file.payload)
    if not isinstance(step_list, list):
        raise ValidationError("steps file must be a JSON array or object with 'steps'")
    return normalize_steps(step_list)


def _first_text(step: dict[str, Any], *keys: str) -> str:
    params = step.get("params") if isinstance(step.get("params"), dict) else {}
    for key in keys:
        if key.startswith("params."):
            value = params.get(key[len("params."):])
        else:
            value = step.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


# action -> (fields checked in order, error message)
_REQUIRED_FIELDS: dict[str, tuple[tuple[str, ...], str]] = {
    "eval_js": (("value", "params.script"), "eval_js requires step.value or params.script"),
    "copy_image_original": (
        ("target", "params.selector"),
        "copy_image_original requires selector (target or params.selector)",
    ),
    "assert_file": (
        ("target", "value", "params.path"),
        "assert_file requires path in target/value/params.path",
    ),
    "assert_markdown": (
        ("target", "value", "params.path"),
        "assert_markdown requires path in target/value/params.path",
    ),
    "write_markdown": (
        ("target", "value", "params.path"),
        "write_markdown requires path in target/value/params.path",
    ),
    "download_url": (("target", "params.url"), "download_url requires url in target or params.url"),
}


def validate_steps_payload(payload: Any) -> ValidationReport:
    report = ValidationReport()
    step_list = _step_list(payload)
    if not isinstance(step_list, list):
        report.errors.append("steps file must be a JSON array or object with 'steps'")
        return report
    report.step_count = len(step_list)

    if isinstance(payload, dict):
        if "amw_match_line" not in payload:
            report.warnings.append("missing amw_match_line (recommended for grep-first retrieval)")
        else:
            line = str(payload.get("amw_match_line"))
            if "\n" in line or "\r" in line:
                report.errors.append("amw_match_line must be one physical line")
            if MATCH_LINE_ANCHOR not in line:
                report.warnings.append(f"amw_match_line should include anchor token '{MATCH_LINE_ANCHOR}'")
        branches = payload.get("branches")
        if isinstance(branches, dict) and len(branches) > MAX_BRANCHES:
            report.errors.append(f"branch count {len(branches)} exceeds max-{MAX_BRANCHES} policy")

    seen_ids: set[str] = set()
    for i, step in enumerate(step_list):
        at = f"step[{i}]"
        if not isinstance(step, dict):
            report.errors.append(f"{at} must be an object")
            continue
        step_id = str(step.get("id") or "").strip() or f"step_{i + 1}"
        if step_id in seen_ids:
            report.errors.append(f"{at} duplicate step id '{step_id}'")
        seen_ids.add(step_id)
        action = str(step.get("action") or "").strip()
        if not action:
            report.errors.append(f"{at} missing action")
        required = _REQUIRED_FIELDS.get(action)
        if required and not _first_text(step, *required[0]):
            report.errors.append(f"{at} {required[1]}")

        timeout = step.get("timeout_ms")
        if timeout is not None:
            try:
                if float(timeout) < 0:
                    raise ValueError(timeout)
            except (TypeError, ValueError):
                report.warnings.append(f"{at} timeout_ms should be a non-negative number")

        guards = step.get("guards")
        if guards is not None and not isinstance(guards, list):
            report.errors.append(f"{at} guards must be an array")
        for j, guard in enumerate(guards if isinstance(guards, list) else []):
            kind = str(guard.get("kind") or "") if isinstance(guard, dict) else ""
            if kind not in GUARD_KINDS:
                report.errors.append(f"{at}.guards[{j}] unknown guard kind '{kind}'")
    return report


def validate_steps_file(path: Path | str) -> tuple[StepsFile, ValidationReport]:
    steps_file = read_steps_file(path)
    report = validate_steps_payload(steps_file.payload)
    if steps_file.has_bom:
        report.warnings.append("UTF-8 BOM detected; consider saving as UTF-8 without BOM")
    return steps_file, report
