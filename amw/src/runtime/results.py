"""Typed action results shared by handlers, ``save_as`` and the event log."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict


@dataclass
class ActionResult:
    kind: str = "generic"
    path: str = ""
    url: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def save_value(self) -> Any:
        """Value written to ``vars`` when the step has ``save_as``."""
        return self.data or self.path or self.url

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        return {k: v for k, v in payload.items() if v not in ("", None, {})}


@dataclass
class NavigationResult(ActionResult):
    kind: str = "navigation"

    def save_value(self) -> Any:
        return self.url


@dataclass
class CaptureResult(ActionResult):
    """Screenshot, snapshot or downloaded artifact."""

    kind: str = "capture"

    def save_value(self) -> Any:
        return self.path or self.data


@dataclass
class TextResult(ActionResult):
    kind: str = "text"
    text: str = ""

    def save_value(self) -> Any:
        return self.text


@dataclass
class AssertionResult(ActionResult):
    kind: str = "assertion"

    def save_value(self) -> Any:
        return self.data


@dataclass
class ValueResult(ActionResult):
    """Arbitrary value returned by script evaluation."""

    kind: str = "value"
    value: Any = None

    def save_value(self) -> Any:
        return self.value


def save_value_of(result: Any) -> Any:
    if isinstance(result, ActionResult):
        return result.save_value()
    return result
