"""
Action registry and the default action handlers.

A handler is ``async handler(surface, state, step) -> result``. Handlers
validate their own required fields, record produced files into
``state.artifacts`` and return one of the typed results in
``amw.src.runtime.results``. ``save_as`` is applied by the executor.
"""
from __future__ import annotations

import asyncio
import math
import re
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from amw.src.browser.surface import LOAD_STATES, require_operation
from amw.src.errors import AutomationSurfaceError, ContentAssertionError, ValidationError
from amw.src.runtime.results import (
    ActionResult,
    AssertionResult,
    CaptureResult,
    NavigationResult,
    TextResult,
    ValueResult,
)
from amw.src.runtime.state import RuntimeState
from amw.src.trajectory.models import Step

ActionHandler = Callable[[Any, RuntimeState, Step], Awaitable[Any]]

CLIPBOARD_VAR = "__clipboard"
_INTERACTIVE_TOKENS = {"1", "true", "i", "interactive"}
_MARKDOWN_LINK_RE = re.compile(r"\[[^\]]+\]\((https?://[^)]+)\)")


class ActionRegistry:
    """Name -> async handler dispatch table."""

    def __init__(self, handlers: Optional[Dict[str, ActionHandler]] = None) -> None:
        self._handlers: Dict[str, ActionHandler] = dict(handlers or {})

    def register(self, name: str, handler: ActionHandler) -> None:
        if not name:
            raise ValueError("action name is required")
        self._handlers[name] = handler

    def register_many(self, handlers: Dict[str, ActionHandler]) -> None:
        for name, handler in handlers.items():
            self.register(name, handler)

    def get(self, name: str) -> Optional[ActionHandler]:
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


# --- helpers ---


def _first(*values: Any) -> str:
    for value in values:
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _param(step: Step, key: str, default: Any = None) -> Any:
    return step.params.get(key, default)


def _require(value: str, message: str) -> str:
    if not value:
        raise ValidationError(message)
    return value


def _number(raw: Any, label: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number, got {raw!r}") from exc
    if not math.isfinite(value):
        raise ValidationError(f"{label} must be finite, got {raw!r}")
    return value


def _flag(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return bool(raw)


def _clipboard(state: RuntimeState) -> Dict[str, Any]:
    clip = state.vars.get(CLIPBOARD_VAR)
    if not isinstance(clip, dict):
        clip = {}
        state.vars[CLIPBOARD_VAR] = clip
    return clip


def _resolve_clip(params: Dict[str, Any]) -> Optional[Dict[str, float]]:
    raw = params.get("clip")
    source = raw if isinstance(raw, dict) else params
    try:
        clip = {k: float(source[k]) for k in ("x", "y", "width", "height")}
    except (KeyError, TypeError, ValueError):
        return None
    if not all(math.isfinite(v) for v in clip.values()):
        return None
    return clip


def _absolute(path: str) -> Path:
    return Path(str(path).strip()).expanduser().resolve()


def _text_from_var(state: RuntimeState, step: Step) -> Optional[str]:
    ref = _first(_param(step, "from_var"))
    if not ref:
        return None
    value = state.get_var(ref)
    return "" if value is None else str(value)


# --- navigation / interaction ---


async def open_page(surface: Any, state: RuntimeState, step: Step) -> NavigationResult:
    url = _require(_first(step.target, step.value, _param(step, "url")), f"{step.action} requires url in target/value/params.url")
    result = await surface.open(url, step.timeout_ms)
    return NavigationResult(url=str((result or {}).get("url") or url))


async def click(surface: Any, state: RuntimeState, step: Step) -> ActionResult:
    selector = _require(_first(step.target, _param(step, "selector")), "click requires selector in target")
    await surface.click(selector, step.timeout_ms)
    return ActionResult(kind="interaction", data={"selector": selector})


async def click_text(surface: Any, state: RuntimeState, step: Step) -> ActionResult:
    text = _require(
        _first(step.value, step.target, _param(step, "text")),
        "click_text requires text in step.value/target/params.text",
    )
    exact = _flag(_param(step, "exact", False))
    index = int(_number(_param(step, "index", 0), "click_text params.index"))
    op = require_operation(surface, "click_text")
    await op(text, exact=exact, index=index, timeout_ms=step.timeout_ms)
    return ActionResult(kind="interaction", data={"text": text, "index": index, "exact": exact})


async def fill(surface: Any, state: RuntimeState, step: Step) -> ActionResult:
    selector = _require(_first(step.target, _param(step, "selector")), "fill requires selector in target")
    await surface.fill(selector, step.value, step.timeout_ms)
    return ActionResult(kind="interaction", data={"selector": selector, "chars": len(step.value)})


async def type_text(surface: Any, state: RuntimeState, step: Step) -> ActionResult:
    selector = _require(_first(step.target, _param(step, "selector")), "type requires selector in target")
    await surface.type_text(selector, step.value, step.timeout_ms)
    return ActionResult(kind="interaction", data={"selector": selector, "chars": len(step.value)})


async def press(surface: Any, state: RuntimeState, step: Step) -> ActionResult:
    key = _require(_first(step.target, step.value, _param(step, "key")), "press requires key in target/value")
    await surface.press(key, step.timeout_ms)
    return ActionResult(kind="interaction", data={"key": key})


async def wait(surface: Any, state: RuntimeState, step: Step) -> ActionResult:
    if step.target in LOAD_STATES:
        await surface.wait_load(step.target, step.timeout_ms)
        return ActionResult(kind="wait", data={"state": step.target})
    raw = _first(step.value, step.target, _param(step, "ms")) or "1000"
    waited = _number(raw, "wait duration")
    await surface.wait_ms(waited)
    return ActionResult(kind="wait", data={"waited_ms": waited})


async def get_url(surface: Any, state: RuntimeState, step: Step) -> NavigationResult:
    return NavigationResult(url=await surface.get_url())


async def eval_js(surface: Any, state: RuntimeState, step: Step) -> ValueResult:
    script = _require(
        _first(step.value, _param(step, "script")),
        "eval_js requires JavaScript in step.value or params.script",
    )
    value = await surface.evaluate(script, _param(step, "arg"), step.timeout_ms)
    return ValueResult(value=value)


# --- capture ---


async def snapshot(surface: Any, state: RuntimeState, step: Step) -> CaptureResult:
    token = str(_first(_param(step, "interactive"), step.value, step.target)).lower()
    snap = await surface.snapshot(token in _INTERACTIVE_TOKENS)
    return CaptureResult(data=dict(snap or {}))


async def screenshot(surface: Any, state: RuntimeState, step: Step) -> CaptureResult:
    result = await surface.screenshot(
        path=_first(step.target, step.value, _param(step, "path")),
        selector=_first(_param(step, "selector")),
        full_page=_flag(_param(step, "full_page", False)),
        clip=_resolve_clip(step.params),
        timeout_ms=step.timeout_ms,
    )
    path = str(result["path"])
    state.artifacts.add(path)
    return CaptureResult(path=path, data={k: v for k, v in result.items() if k != "path"})


# --- clipboard-style content ---


async def copy_text(surface: Any, state: RuntimeState, step: Step) -> TextResult:
    if step.target:
        attr = _first(_param(step, "attr"))
        if attr:
            text = await require_operation(surface, "get_attribute")(step.target, attr, step.timeout_ms)
        else:
            text = await require_operation(surface, "get_text")(step.target, step.timeout_ms)
            if not text:
                text = await require_operation(surface, "get_attribute")(step.target, "value", step.timeout_ms)
    elif step.value:
        text = step.value
    else:
        from_var = _text_from_var(state, step)
        if from_var is not None:
            text = from_var
        else:
            last = state.last_result
            last = last.save_value() if isinstance(last, ActionResult) else last
            text = "" if last is None else str(last)
    text = str(text or "")
    _clipboard(state)["text"] = text
    return TextResult(text=text, data={"copied": True, "chars": len(text)})


async def paste_text(surface: Any, state: RuntimeState, step: Step) -> TextResult:
    if step.value:
        text = step.value
    else:
        from_var = _text_from_var(state, step)
        text = from_var if from_var is not None else str(_clipboard(state).get("text") or "")
    if step.target:
        await surface.fill(step.target, text, step.timeout_ms)
    else:
        await require_operation(surface, "insert_text")(text, step.timeout_ms)
    return TextResult(text=text, data={"pasted": True, "chars": len(text)})


def _remember_image(state: RuntimeState, result: Dict[str, Any]) -> str:
    path = str(result["path"])
    clip = _clipboard(state)
    clip["image_path"] = path
    if result.get("url"):
        clip["image_url"] = result["url"]
    state.artifacts.add(path)
    return path


async def copy_image(surface: Any, state: RuntimeState, step: Step) -> CaptureResult:
    selector = _first(_param(step, "selector"), step.target)
    output = _first(_param(step, "path"), step.value)
    clip = _resolve_clip(step.params)
    if not selector and not clip:
        raise ValidationError(
            "copy_image requires selector (target/params.selector) or clip (params.clip/x/y/width/height)"
        )
    wants_original = _flag(_param(step, "original", False)) or str(_param(step, "mode", "")).lower() == "original"
    if wants_original and selector:
        op = require_operation(surface, "copy_image_original")
        result = await op(selector, path=output, attr=_first(_param(step, "attr")) or "src", timeout_ms=step.timeout_ms)
    else:
        result = await surface.screenshot(
            path=output or f"./artifacts/copied_image_{int(time.time() * 1000)}.png",
            selector=selector,
            full_page=False,
            clip=clip,
            timeout_ms=step.timeout_ms,
        )
    path = _remember_image(state, result)
    return CaptureResult(path=path, url=str(result.get("url") or ""), data={"copied": True, "type": "image"})


async def copy_image_original(surface: Any, state: RuntimeState, step: Step) -> CaptureResult:
    selector = _require(
        _first(_param(step, "selector"), step.target),
        "copy_image_original requires selector in target or params.selector",
    )
    op = require_operation(surface, "copy_image_original")
    result = await op(
        selector,
        path=_first(_param(step, "path"), step.value),
        attr=_first(_param(step, "attr")) or "src",
        timeout_ms=step.timeout_ms,
    )
    path = _remember_image(state, result)
    return CaptureResult(
        path=path,
        url=str(result.get("url") or ""),
        data={"copied": True, "type": "image_original", "source": result.get("source")},
    )


async def paste_image(surface: Any, state: RuntimeState, step: Step) -> ActionResult:
    selector = _require(_first(step.target, _param(step, "selector")), "paste_image requires file input selector")
    if step.value:
        image_path = step.value
    else:
        from_var = _text_from_var(state, step)
        image_path = from_var if from_var is not None else str(_clipboard(state).get("image_path") or "")
    _require(image_path, "paste_image has no source path")
    result = await require_operation(surface, "set_input_files")(selector, image_path, step.timeout_ms)
    return ActionResult(kind="interaction", path=str(image_path), data={"pasted": True, "type": "image", **(result or {})})


# --- file writers / assertions ---


def _markdown_items(raw_items: Iterable[Any]) -> List[Tuple[str, str]]:
    items = []
    for item in raw_items:
        if isinstance(item, str):
            title, url = item.strip(), ""
        elif isinstance(item, dict):
            title = str(item.get("title") or item.get("name") or "").strip()
            url = str(item.get("url") or item.get("link") or "").strip()
        else:
            continue
        if title or url:
            items.append((title, url))
    return items


def build_markdown(title: str, items: List[Tuple[str, str]]) -> str:
    lines = []
    for index, (item_title, url) in enumerate(items, start=1):
        lines.append(f"{index}. [{item_title or url}]({url})" if url else f"{index}. {item_title}")
    return f"# {title}\n\n" + "\n".join(lines) + "\n"


async def write_markdown(surface: Any, state: RuntimeState, step: Step) -> CaptureResult:
    out = _require(
        _first(step.target, step.value, _param(step, "path")),
        "write_markdown requires output path in target/value/params.path",
    )
    items_ref = _first(_param(step, "items_var"))
    raw_items = state.get_var(items_ref) if items_ref else None
    if raw_items is None:
        raw_items = _param(step, "items", [])
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError(f"write_markdown items must be a list, got: {type(raw_items).__name__}")
    items = _markdown_items(raw_items)
    absolute = _absolute(out)
    absolute.parent.mkdir(parents=True, exist_ok=True)
    absolute.write_text(build_markdown(str(_param(step, "title") or "Generated Results"), items), encoding="utf-8")
    state.artifacts.add(str(absolute))
    return CaptureResult(path=str(absolute), data={"items": len(items)})


async def append_markdown_section(surface: Any, state: RuntimeState, step: Step) -> CaptureResult:
    target = _require(
        _first(step.target, step.value, _param(step, "path")),
        "append_markdown_section requires path",
    )
    heading = _first(_param(step, "heading"))
    content = _first(_param(step, "content"))
    source_url = _first(_param(step, "url"))
    if not heading and not content and not source_url:
        raise ValidationError("append_markdown_section requires at least heading/content/url")
    lines = ["", f"## {heading or 'Section'}"]
    if source_url:
        lines.append(f"Source: [{source_url}]({source_url})")
    lines.append("")
    if content:
        lines.append(content)
    lines.append("")
    absolute = _absolute(target)
    absolute.parent.mkdir(parents=True, exist_ok=True)
    with absolute.open("a", encoding="utf-8") as handle:
        handle.write("\n".join(lines))
    state.artifacts.add(str(absolute), unique=True)
    return CaptureResult(path=str(absolute), data={"appended": True})


async def assert_file(surface: Any, state: RuntimeState, step: Step) -> AssertionResult:
    absolute = _absolute(
        _require(_first(step.target, step.value, _param(step, "path")), "assert_file requires path")
    )
    if not absolute.is_file():
        raise ContentAssertionError(f"File not found: {absolute}")
    size = absolute.stat().st_size
    min_bytes = int(_number(_param(step, "min_bytes", 1), "assert_file params.min_bytes"))
    if size < min_bytes:
        raise ContentAssertionError(f"File size {size} < expected {min_bytes}")
    return AssertionResult(path=str(absolute), data={"size": size})


async def assert_markdown(surface: Any, state: RuntimeState, step: Step) -> AssertionResult:
    absolute = _absolute(
        _require(
            _first(step.target, step.value, _param(step, "path")),
            "assert_markdown requires input path in target/value/params.path",
        )
    )
    if not absolute.is_file():
        raise ContentAssertionError(f"Markdown file not found: {absolute}")
    text = absolute.read_text(encoding="utf-8")
    link_count = len(_MARKDOWN_LINK_RE.findall(text))
    min_links = int(_number(_param(step, "min_links", 1), "assert_markdown params.min_links"))
    if link_count < min_links:
        raise ContentAssertionError(f"Markdown link count {link_count} < expected {min_links}")
    must_include = _param(step, "must_include", [])
    for token in must_include if isinstance(must_include, list) else []:
        if str(token) not in text:
            raise ContentAssertionError(f"Markdown missing required token: {token}")
    return AssertionResult(path=str(absolute), data={"link_count": link_count})


def _download(url: str, timeout_s: float) -> requests.Response:
    response = requests.get(url, timeout=timeout_s)
    response.raise_for_status()
    return response


async def download_url(surface: Any, state: RuntimeState, step: Step) -> CaptureResult:
    url = _require(_first(step.target, _param(step, "url")), "download_url requires url in target or params.url")
    try:
        response = await asyncio.to_thread(_download, url, step.timeout_ms / 1000.0)
    except requests.RequestException as exc:
        raise AutomationSurfaceError(f"download failed: {url}: {exc}") from exc
    out = _first(step.value, _param(step, "path"))
    if not out:
        name = Path(url.split("?", 1)[0]).name or "download"
        out = f"./artifacts/{int(time.time() * 1000)}_{name}"
    absolute = _absolute(out)
    absolute.parent.mkdir(parents=True, exist_ok=True)
    absolute.write_bytes(response.content)
    state.artifacts.add(str(absolute))
    return CaptureResult(
        path=str(absolute),
        url=url,
        data={
            "status": response.status_code,
            "bytes": len(response.content),
            "mime_type": response.headers.get("content-type"),
        },
    )


DEFAULT_HANDLERS: Dict[str, ActionHandler] = {
    "open": open_page,
    "navigate": open_page,
    "click": click,
    "click_text": click_text,
    "fill": fill,
    "type": type_text,
    "press": press,
    "wait": wait,
    "snapshot": snapshot,
    "screenshot": screenshot,
    "get_url": get_url,
    "eval_js": eval_js,
    "evaluate": eval_js,
    "copy_text": copy_text,
    "paste_text": paste_text,
    "copy_image": copy_image,
    "copy_image_original": copy_image_original,
    "paste_image": paste_image,
    "write_markdown": write_markdown,
    "append_markdown_section": append_markdown_section,
    "assert_file": assert_file,
    "assert_markdown": assert_markdown,
    "download_url": download_url,
}


def create_default_action_registry() -> ActionRegistry:
    return ActionRegistry(DEFAULT_HANDLERS)
