"""Shared text and URL helpers."""

from __future__ import annotations

import re
from urllib.parse import urlparse


def collapse_ws(value: object) -> str:
    return " ".join(str(value or "").split())


def alnum_only(value: str, *, replacement: str = "") -> str:
    return re.sub(r"[^a-zA-Z0-9]", replacement, str(value or "")).lower()


def contains_word(haystack: str, word: str) -> bool:
    """Case-insensitive whole-word match; a bare substring does not count."""
    text = str(haystack or "").strip().lower()
    needle = str(word or "").strip().lower()
    if not text or not needle:
        return False
    if text == needle:
        return True
    pattern = rf"(?<![\w-]){re.escape(needle)}(?![\w-])"
    return re.search(pattern, text) is not None


def url_hostname(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_host_page(url: str, hosts: tuple[str, ...]) -> bool:
    host = url_hostname(url)
    if not host:
        return False
    return any(host == item or host.endswith("." + item) for item in hosts)
