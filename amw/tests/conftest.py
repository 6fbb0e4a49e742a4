from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from amw.src.errors import AutomationSurfaceError
from amw.src.memory import MemoryStore
from amw.src.runtime import RunLogger


class FakeSurface:
    """In-memory automation surface that records every call."""

    def __init__(self, *, tree: str = "", fail_on: Optional[set[str]] = None, eval_result: Any = None):
        self.url = "about:blank"
        self.tree = tree
        self.fail_on = set(fail_on or ())
        self.eval_result = eval_result
        self.calls: List[tuple] = []
        self.filled: Dict[str, str] = {}
        self.closed = False

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise AutomationSurfaceError(f"{name} failed")

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    async def open(self, url: str, timeout_ms: int = 60000) -> Dict[str, Any]:
        self._record("open", url)
        self.url = url
        return {"url": url}

    async def click(self, selector: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        self._record("click", selector)
        return {"ok": True}

    async def click_text(self, text: str, exact: bool = False, index: int = 0, timeout_ms: int = 30000):
        self._record("click_text", text, exact, index)
        return {"ok": True}

    async def fill(self, selector: str, text: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        self._record("fill", selector, text)
        self.filled[selector] = text
        return {"ok": True}

    async def type_text(self, selector: str, text: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        self._record("type_text", selector, text)
        return {"ok": True}

    async def press(self, key: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        self._record("press", key)
        return {"ok": True}

    async def insert_text(self, text: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        self._record("insert_text", text)
        return {"ok": True}

    async def wait_ms(self, value_ms: float) -> Dict[str, Any]:
        self._record("wait_ms", value_ms)
        return {"waited_ms": value_ms}

    async def wait_load(self, state: str = "networkidle", timeout_ms: int = 60000) -> Dict[str, Any]:
        self._record("wait_load", state)
        return {"ok": True, "state": state}

    async def snapshot(self, interactive: bool = False) -> Dict[str, Any]:
        self._record("snapshot", interactive)
        return {"tree": self.tree, "refs": {}}

    async def get_url(self) -> str:
        self._record("get_url")
        return self.url

    async def evaluate(self, script: str, arg: Any = None, timeout_ms: int = 60000) -> Any:
        self._record("evaluate", script)
        return self.eval_result

    async def get_text(self, selector: str, timeout_ms: int = 30000) -> str:
        self._record("get_text", selector)
        return f"text of {selector}"

    async def get_attribute(self, selector: str, attr: str, timeout_ms: int = 30000) -> str:
        self._record("get_attribute", selector, attr)
        return f"{attr} of {selector}"

    async def set_input_files(self, selector: str, files: Any, timeout_ms: int = 30000) -> Dict[str, Any]:
        self._record("set_input_files", selector, files)
        return {"ok": True, "files": [files]}

    async def screenshot(
        self,
        path: str = "",
        selector: str = "",
        full_page: bool = False,
        clip: Optional[Dict[str, float]] = None,
        timeout_ms: int = 30000,
    ) -> Dict[str, Any]:
        self._record("screenshot", path, selector)
        target = Path(path or "shot.png").resolve()
        return {"path": str(target), "selector": selector or None, "full_page": full_page, "clip": clip}

    async def copy_image_original(self, selector: str, path: str = "", attr: str = "src", timeout_ms: int = 30000):
        self._record("copy_image_original", selector, path)
        return {"path": str(Path(path or "original.png").resolve()), "source": "url", "url": "https://img.example/a.png"}

    async def close(self) -> Dict[str, Any]:
        self._record("close")
        self.closed = True
        return {"closed": True}


@pytest.fixture
def fake_surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def logger() -> RunLogger:
    return RunLogger()


@pytest.fixture
def store(tmp_path) -> MemoryStore:
    return MemoryStore(tmp_path / "memory.db")
