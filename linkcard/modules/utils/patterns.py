"""Regular expression helpers.

All matching is case-insensitive. Very large inputs are scanned in fixed-size
segments; a match that straddles a segment boundary is not reported.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional

from .common import logger

SEGMENT_LIMIT = 300_000

IMAGE_TAG_PATTERN = r'<img(.+?)src="([^"](.+?))"(.+?)[/]?>'
RAW_TAG_PATTERN = r"<[^>]+>"
# Trailing punctuation is trimmed by links.extract_url.
URL_PATTERN = r"\bhttps?://[^\s<>\"'`]+"


def tag_pattern(tag: str) -> str:
    """Pattern capturing a tag's attributes (group 1) and inner markup (group 2)."""
    return f"<{tag}(.*?)>(.*?)</{tag}>"


@lru_cache(maxsize=128)
def _compile(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.warning("invalid_pattern", extra={"pattern": pattern, "error": str(exc)})
        return None


def _segments(text: str, limit: int = SEGMENT_LIMIT):
    if len(text) <= limit:
        yield text
        return
    for start in range(0, len(text), limit):
        yield text[start : start + limit]


def _group(match: re.Match, group: int) -> str:
    try:
        return match.group(group) or ""
    except IndexError:
        return ""


def match_all(text: str, pattern: str, group: int = 0) -> list[str]:
    """Return the given group of every match, in order; [] on a bad pattern."""
    rx = _compile(pattern)
    if rx is None or not text:
        return []
    if group > rx.groups:
        return []
    results: list[str] = []
    for segment in _segments(text):
        results.extend(_group(m, group) for m in rx.finditer(segment))
    return results


def match_first(text: str, pattern: str, group: int = 0) -> Optional[str]:
    """Return the given group of the first match, or None."""
    rx = _compile(pattern)
    if rx is None or not text or group > rx.groups:
        return None
    match = rx.search(text)
    if match is None:
        return None
    return _group(match, group)


__all__ = [
    "SEGMENT_LIMIT",
    "IMAGE_TAG_PATTERN",
    "RAW_TAG_PATTERN",
    "URL_PATTERN",
    "tag_pattern",
    "match_all",
    "match_first",
]
