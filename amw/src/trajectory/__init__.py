"""Trajectory data model package."""

from .models import (
    DEFAULT_TIMEOUT_MS,
    GUARD_KINDS,
    Guard,
    Step,
    Trajectory,
    build_trajectory,
    intent_signature,
    merge_keywords,
    normalize_guard,
    normalize_step,
    normalize_steps,
    normalize_trajectory,
)
from .validation import ValidationReport, load_steps, validate_steps_file, validate_steps_payload

__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "GUARD_KINDS",
    "Guard",
    "Step",
    "Trajectory",
    "build_trajectory",
    "intent_signature",
    "merge_keywords",
    "normalize_guard",
    "normalize_step",
    "normalize_steps",
    "normalize_trajectory",
    "ValidationReport",
    "load_steps",
    "validate_steps_file",
    "validate_steps_payload",
]
