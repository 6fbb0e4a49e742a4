"""Text normalization helpers shared by the model, retriever and store."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"[^\W_]+")

TRUE_TOKENS = {"1", "true", "yes", "on"}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value).lower().strip())


def tokenize(value: Any) -> list[str]:
    """Lowercased alphanumeric runs, in order of appearance."""
    return _TOKEN_RE.findall(normalize_text(value))


def domain_from_site_or_url(value: Any) -> str:
    """
    Reduce a site or URL to its bare host.

    Examples:
        "https://www.Example.com/path?q=1" -> "www.example.com"
        "example.com/login" -> "example.com"
    """
    site = str(value or "").strip().lower()
    if "://" in site:
        site = site.split("://", 1)[1]
    if "/" in site:
        site = site.split("/", 1)[0]
    return site


def short_id(prefix: str = "") -> str:
    ident = uuid4().hex[:8]
    return f"{prefix}_{ident}" if prefix else ident


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value if value is not None else "").strip().lower() in TRUE_TOKENS
