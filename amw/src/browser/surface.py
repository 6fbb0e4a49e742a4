"""Automation Surface contract consumed by the action handlers."""
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Sequence, runtime_checkable

from amw.src.errors import AutomationSurfaceError

LOAD_STATES = ("load", "domcontentloaded", "networkidle")


@runtime_checkable
class AutomationSurface(Protocol):
    """
    Async browser capability used by trajectory replay.

    Every operation raises ``AutomationSurfaceError`` when the underlying
    browser action fails. Timeouts are in milliseconds and are passed straight
    through to the browser driver.
    """

    async def open(self, url: str, timeout_ms: int = 60000) -> Dict[str, Any]: ...

    async def click(self, selector: str, timeout_ms: int = 30000) -> Dict[str, Any]: ...

    async def fill(self, selector: str, text: str, timeout_ms: int = 30000) -> Dict[str, Any]: ...

    async def type_text(self, selector: str, text: str, timeout_ms: int = 30000) -> Dict[str, Any]: ...

    async def press(self, key: str, timeout_ms: int = 30000) -> Dict[str, Any]: ...

    async def wait_ms(self, value_ms: float) -> Dict[str, Any]: ...

    async def wait_load(self, state: str = "networkidle", timeout_ms: int = 60000) -> Dict[str, Any]: ...

    async def snapshot(self, interactive: bool = False) -> Dict[str, Any]: ...

    async def get_url(self) -> str: ...

    async def evaluate(self, script: str, arg: Any = None, timeout_ms: int = 60000) -> Any: ...

    async def screenshot(
        self,
        path: str = "",
        selector: str = "",
        full_page: bool = False,
        clip: Optional[Dict[str, float]] = None,
        timeout_ms: int = 30000,
    ) -> Dict[str, Any]: ...

    async def close(self) -> Dict[str, Any]: ...


@runtime_checkable
class ExtendedAutomationSurface(AutomationSurface, Protocol):
    """Optional operations used by the content actions."""

    async def click_text(
        self, text: str, exact: bool = False, index: int = 0, timeout_ms: int = 30000
    ) -> Dict[str, Any]: ...

    async def insert_text(self, text: str, timeout_ms: int = 30000) -> Dict[str, Any]: ...

    async def get_text(self, selector: str, timeout_ms: int = 30000) -> str: ...

    async def get_attribute(self, selector: str, attr: str, timeout_ms: int = 30000) -> str: ...

    async def set_input_files(
        self, selector: str, files: str | Sequence[str], timeout_ms: int = 30000
    ) -> Dict[str, Any]: ...

    async def copy_image_original(
        self, selector: str, path: str = "", attr: str = "src", timeout_ms: int = 30000
    ) -> Dict[str, Any]: ...


def require_operation(surface: Any, name: str) -> Any:
    """Return a bound optional operation or fail with a surface error."""
    op = getattr(surface, name, None)
    if not callable(op):
        raise AutomationSurfaceError(f"Automation surface does not support '{name}'")
    return op


__all__ = ["AutomationSurface", "ExtendedAutomationSurface", "LOAD_STATES", "require_operation"]
