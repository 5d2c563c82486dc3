"""Validation of post-login ``next`` targets."""

import re
from typing import Iterable, Optional
from urllib.parse import unquote

_ENCODED = re.compile(r"%[0-9A-Fa-f]{2}")


def _normalize(value: str) -> str:
    trimmed = value.strip()
    if _ENCODED.search(trimmed):
        return unquote(trimmed)
    return trimmed


def is_safe_internal_path(path: str) -> bool:
    """True for a path on this site: no scheme, no host, no backslash, no control chars."""
    if not path.startswith("/") or path.startswith("//"):
        return False
    if "\\" in path:
        return False
    return not any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in path)


def _allowed(path: str, prefixes: Iterable[str], exact: Iterable[str]) -> bool:
    prefixes = list(prefixes)
    exact = list(exact)
    if not prefixes and not exact:
        return True
    if path in exact:
        return True
    for prefix in prefixes:
        bare = prefix.rstrip("/")
        if path == bare or path.startswith(bare + "/") or path.startswith(bare + "?"):
            return True
    return False


def safe_next_path(
    value: Optional[str],
    fallback: str = "/admin",
    allow_prefixes: Iterable[str] = ("/admin",),
    allow_exact: Iterable[str] = (),
) -> str:
    """Return value if it is an allowed internal path, else fallback.

    Absolute and protocol-relative URLs are never returned, so a crafted
    ``next`` cannot turn the login flow into an open redirect.
    """
    if not value:
        return fallback
    path = _normalize(value)
    if not is_safe_internal_path(path):
        return fallback
    if not _allowed(path, allow_prefixes, allow_exact):
        return fallback
    return path
