"""Playwright-backed Automation Surface with a persistent per-profile context."""
from __future__ import annotations

import asyncio
import base64
import mimetypes
import re
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Sequence
from urllib.parse import urljoin

from playwright.async_api import BrowserContext, Error as PlaywrightError, Locator, Page, Playwright, async_playwright

from amw.src.browser.surface import LOAD_STATES
from amw.src.errors import AutomationSurfaceError

_PROFILE_RE = re.compile(r"^[A-Za-z0-9_-]+$")
REF_ATTR = "data-amw-ref"

_INTERACTIVE_REFS_SCRIPT = """
(attr) => {
  const selector = [
    'a[href]', 'button', 'input', 'select', 'textarea', 'summary',
    '[role="button"]', '[role="link"]', '[role="checkbox"]', '[role="tab"]',
    '[role="menuitem"]', '[contenteditable="true"]', '[onclick]'
  ].join(',');
  document.querySelectorAll('[' + attr + ']').forEach((el) => el.removeAttribute(attr));
  const out = [];
  let n = 0;
  for (const el of document.querySelectorAll(selector)) {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    if (rect.width === 0 || rect.height === 0 || style.visibility === 'hidden' || style.display === 'none') {
      continue;
    }
    n += 1;
    const ref = 'e' + n;
    el.setAttribute(attr, ref);
    const name = (el.getAttribute('aria-label') || el.innerText || el.value || el.getAttribute('placeholder') || '')
      .trim().replace(/\\s+/g, ' ').slice(0, 80);
    out.push({ ref, tag: el.tagName.toLowerCase(), role: el.getAttribute('role') || '', name });
  }
  return out;
}
"""

_IMAGE_SOURCE_SCRIPT = """
async (el, preferredAttr) => {
  const img = el.tagName === 'IMG' ? el : el.querySelector('img');
  if (img) {
    let src = '';
    if (preferredAttr) src = img.getAttribute(preferredAttr) || '';
    if (!src) src = img.currentSrc || img.src || img.getAttribute('data-src') || img.getAttribute('data-original') || '';
    src = String(src || '').trim();
    if (src.startsWith('blob:')) {
      const blob = await (await fetch(src)).blob();
      const dataUrl = await new Promise((resolve, reject) => {
        const reader = new FileReader();
        reader.onloadend = () => resolve(String(reader.result || ''));
        reader.onerror = reject;
        reader.readAsDataURL(blob);
      });
      return { src: '', data_url: dataUrl, tag: 'img' };
    }
    if (src.startsWith('data:')) return { src: '', data_url: src, tag: 'img' };
    return { src, data_url: '', tag: 'img' };
  }
  const bg = window.getComputedStyle(el).backgroundImage || '';
  const match = bg.match(/url\\(["']?(.*?)["']?\\)/);
  return { src: match ? match[1] : '', data_url: '', tag: 'background' };
}
"""


def normalize_profile_name(raw: Optional[str]) -> str:
    value = str(raw or "main").strip() or "main"
    if not _PROFILE_RE.match(value):
        raise AutomationSurfaceError(
            f"Invalid profile name '{value}'. Use only letters, numbers, underscore, hyphen."
        )
    return value


def _timestamped_path(prefix: str, suffix: str) -> Path:
    return Path("./artifacts") / f"{prefix}_{int(time.time() * 1000)}{suffix}"


@asynccontextmanager
async def _surface_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except AutomationSurfaceError:
        raise
    except PlaywrightError as exc:
        raise AutomationSurfaceError(f"{operation} failed: {exc.message}") from exc


class PlaywrightSurface:
    """Persistent Chromium session that launches lazily on the first operation."""

    def __init__(
        self,
        *,
        session: str = "amw",
        headed: bool = False,
        profile: str = "main",
        profile_dir: str = "./profiles",
        browser: str = "chromium",
    ):
        self.session = session
        self.headed = bool(headed)
        self.profile = normalize_profile_name(profile)
        self.profile_dir = Path(profile_dir or "./profiles").resolve()
        self.browser = browser or "chromium"
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._last_refs: Dict[str, Any] = {}

    @classmethod
    def from_request(cls, request: Any) -> "PlaywrightSurface":
        return cls(
            session=getattr(request, "session", "amw"),
            headed=getattr(request, "headed", False),
            profile=getattr(request, "profile", "main"),
            profile_dir=getattr(request, "profile_dir", "./profiles"),
            browser=getattr(request, "browser", "chromium"),
        )

    @property
    def launched(self) -> bool:
        return self._context is not None

    async def _ensure_page(self) -> Page:
        if self._page is not None and not self._page.is_closed():
            return self._page
        async with _surface_errors("launch"):
            if self._context is None:
                profile_path = self.profile_dir / self.profile
                profile_path.mkdir(parents=True, exist_ok=True)
                self._playwright = await async_playwright().start()
                browser_type = getattr(self._playwright, self.browser, None)
                if browser_type is None:
                    raise AutomationSurfaceError(f"Unknown browser type '{self.browser}'")
                self._context = await browser_type.launch_persistent_context(
                    str(profile_path),
                    headless=not self.headed,
                )
            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
        return self._page

    def _resolve_selector(self, raw: str) -> str:
        selector = str(raw or "").strip()
        if not selector:
            raise AutomationSurfaceError("Selector is required")
        if not selector.startswith("@"):
            return selector
        ref = selector[1:].strip()
        if not ref:
            raise AutomationSurfaceError("Empty ref selector '@'. Expected format like @e3.")
        mapped = self._last_refs.get(ref)
        if mapped is None:
            raise AutomationSurfaceError(
                f"Ref selector '{selector}' not found in current snapshot refs. "
                "Run snapshot(interactive=true) before using @eN selectors."
            )
        return str(mapped["selector"])

    async def _locator(self, selector: str) -> Locator:
        page = await self._ensure_page()
        return page.locator(self._resolve_selector(selector)).first

    async def open(self, url: str, timeout_ms: int = 60000) -> Dict[str, Any]:
        page = await self._ensure_page()
        async with _surface_errors("open"):
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        return {"url": page.url}

    async def click(self, selector: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        locator = await self._locator(selector)
        async with _surface_errors("click"):
            await locator.click(timeout=timeout_ms)
        return {"ok": True}

    async def click_text(
        self, text: str, exact: bool = False, index: int = 0, timeout_ms: int = 30000
    ) -> Dict[str, Any]:
        page = await self._ensure_page()
        async with _surface_errors("click_text"):
            await page.get_by_text(text, exact=exact).nth(index).click(timeout=timeout_ms)
        return {"ok": True, "text": text, "index": index, "exact": exact}

    async def fill(self, selector: str, text: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        locator = await self._locator(selector)
        async with _surface_errors("fill"):
            await locator.fill(text, timeout=timeout_ms)
        return {"ok": True}

    async def type_text(self, selector: str, text: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        locator = await self._locator(selector)
        async with _surface_errors("type"):
            await locator.press_sequentially(text, timeout=timeout_ms)
        return {"ok": True}

    async def press(self, key: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        page = await self._ensure_page()
        async with _surface_errors("press"):
            page.set_default_timeout(timeout_ms)
            await page.keyboard.press(key)
        return {"ok": True}

    async def insert_text(self, text: str, timeout_ms: int = 30000) -> Dict[str, Any]:
        page = await self._ensure_page()
        async with _surface_errors("insert_text"):
            page.set_default_timeout(timeout_ms)
            await page.keyboard.insert_text(str(text or ""))
        return {"ok": True}

    async def wait_ms(self, value_ms: float) -> Dict[str, Any]:
        await self._ensure_page()
        waited = max(0.0, float(value_ms))
        await asyncio.sleep(waited / 1000.0)
        return {"waited_ms": waited}

    async def wait_load(self, state: str = "networkidle", timeout_ms: int = 60000) -> Dict[str, Any]:
        page = await self._ensure_page()
        load_state = state if state in LOAD_STATES else "networkidle"
        async with _surface_errors("wait_load"):
            await page.wait_for_load_state(load_state, timeout=timeout_ms)
        return {"ok": True, "state": load_state}

    async def snapshot(self, interactive: bool = False) -> Dict[str, Any]:
        page = await self._ensure_page()
        async with _surface_errors("snapshot"):
            if interactive:
                elements = await page.evaluate(_INTERACTIVE_REFS_SCRIPT, REF_ATTR)
                refs = {
                    item["ref"]: {
                        "selector": f'[{REF_ATTR}="{item["ref"]}"]',
                        "tag": item["tag"],
                        "role": item["role"],
                        "name": item["name"],
                    }
                    for item in elements
                }
                tree = "\n".join(
                    f'- {item["role"] or item["tag"]} "{item["name"]}" [ref={item["ref"]}]' for item in elements
                )
            else:
                refs = {}
                tree = await page.locator("body").aria_snapshot()
        self._last_refs = refs
        return {"tree": tree, "refs": refs}

    async def get_url(self) -> str:
        page = await self._ensure_page()
        return str(page.url or "")

    async def evaluate(self, script: str, arg: Any = None, timeout_ms: int = 60000) -> Any:
        source = str(script or "").strip()
        if not source:
            raise AutomationSurfaceError("evaluate requires non-empty script")
        page = await self._ensure_page()
        if not (source.startswith("(") or source.startswith("function") or source.startswith("async") or "=>" in source):
            # plain function body such as "return document.title;"
            source = f"(arg) => {{ {source} }}"
        async with _surface_errors("evaluate"):
            page.set_default_timeout(timeout_ms)
            return await page.evaluate(source, arg)

    async def get_text(self, selector: str, timeout_ms: int = 30000) -> str:
        locator = await self._locator(selector)
        async with _surface_errors("get_text"):
            text = await locator.inner_text(timeout=timeout_ms)
        return str(text or "")

    async def get_attribute(self, selector: str, attr: str, timeout_ms: int = 30000) -> str:
        locator = await self._locator(selector)
        async with _surface_errors("get_attribute"):
            value = await locator.get_attribute(attr, timeout=timeout_ms)
        return "" if value is None else str(value)

    async def set_input_files(
        self, selector: str, files: str | Sequence[str], timeout_ms: int = 30000
    ) -> Dict[str, Any]:
        locator = await self._locator(selector)
        items = [files] if isinstance(files, str) else list(files)
        normalized = [str(Path(p).resolve()) for p in items]
        async with _surface_errors("set_input_files"):
            await locator.set_input_files(normalized, timeout=timeout_ms)
        return {"ok": True, "files": normalized}

    async def copy_image_original(
        self, selector: str, path: str = "", attr: str = "src", timeout_ms: int = 30000
    ) -> Dict[str, Any]:
        if not selector:
            raise AutomationSurfaceError("copy_image_original requires selector")
        page = await self._ensure_page()
        locator = await self._locator(selector)
        async with _surface_errors("copy_image_original"):
            page.set_default_timeout(timeout_ms)
            info = await locator.evaluate(_IMAGE_SOURCE_SCRIPT, attr or "")

        data_url = str(info.get("data_url") or "")
        if data_url:
            header, _, encoded = data_url.partition(",")
            mime_type = header[5:].split(";", 1)[0] or "image/png"
            body = base64.b64decode(encoded) if ";base64" in header else encoded.encode("utf-8")
            final_path = self._image_path(path, mime_type)
            final_path.write_bytes(body)
            return {"path": str(final_path), "source": "data_url", "selector": selector, "mime_type": mime_type}

        src = str(info.get("src") or "").strip()
        if not src:
            raise AutomationSurfaceError(f"No image source found for selector '{selector}'")
        absolute_url = urljoin(page.url, src)
        async with _surface_errors("copy_image_original"):
            response = await page.context.request.get(absolute_url, timeout=timeout_ms)
            if not response.ok:
                raise AutomationSurfaceError(f"Image download failed ({response.status}): {absolute_url}")
            body = await response.body()
        mime_type = response.headers.get("content-type", "").split(";", 1)[0] or None
        final_path = self._image_path(path, mime_type, absolute_url)
        final_path.write_bytes(body)
        return {
            "path": str(final_path),
            "source": "url",
            "selector": selector,
            "url": absolute_url,
            "status": response.status,
            "mime_type": mime_type,
        }

    @staticmethod
    def _image_path(path: str, mime_type: Optional[str], url: str = "") -> Path:
        if path:
            final = Path(path).resolve()
        else:
            suffix = mimetypes.guess_extension(mime_type or "") or Path(url.split("?", 1)[0]).suffix or ".png"
            final = _timestamped_path("image_original", suffix).resolve()
        final.parent.mkdir(parents=True, exist_ok=True)
        return final

    async def screenshot(
        self,
        path: str = "",
        selector: str = "",
        full_page: bool = False,
        clip: Optional[Dict[str, float]] = None,
        timeout_ms: int = 30000,
    ) -> Dict[str, Any]:
        page = await self._ensure_page()
        final_path = (Path(path) if path else _timestamped_path("screenshot", ".png")).resolve()
        final_path.parent.mkdir(parents=True, exist_ok=True)
        async with _surface_errors("screenshot"):
            if selector:
                locator = await self._locator(selector)
                await locator.screenshot(path=str(final_path), timeout=timeout_ms)
            elif clip:
                await page.screenshot(
                    path=str(final_path),
                    clip={k: float(clip[k]) for k in ("x", "y", "width", "height")},
                    timeout=timeout_ms,
                )
            else:
                await page.screenshot(path=str(final_path), full_page=bool(full_page), timeout=timeout_ms)
        return {"path": str(final_path), "selector": selector or None, "full_page": bool(full_page), "clip": clip}

    async def close(self) -> Dict[str, Any]:
        if self._context is None:
            return {"closed": False}
        async with _surface_errors("close"):
            await self._context.close()
            if self._playwright is not None:
                await self._playwright.stop()
        self._context = None
        self._page = None
        self._playwright = None
        return {"closed": True}
