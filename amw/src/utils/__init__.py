"""Utility exports for AMW."""
from amw.src.utils.config import AmwConfig, load_config
from amw.src.utils.text import (
    domain_from_site_or_url,
    normalize_text,
    parse_bool,
    short_id,
    tokenize,
    utc_now_iso,
)

__all__ = [
    "AmwConfig",
    "load_config",
    "domain_from_site_or_url",
    "normalize_text",
    "parse_bool",
    "short_id",
    "tokenize",
    "utc_now_iso",
]
