"""Text helpers for cleaning scraped strings."""

from __future__ import annotations

import re

from .patterns import RAW_TAG_PATTERN

IMAGE_EXTENSIONS = (".gif", ".jpg", ".jpeg", ".png", ".bmp")


def trim(value: str) -> str:
    """Strip leading/trailing whitespace and newlines."""
    return value.strip()


def collapse_whitespace(value: str) -> str:
    """Trim and collapse every internal whitespace run to a single space."""
    return " ".join(value.split())


def has_image_extension(value: str) -> bool:
    return value.lower().endswith(IMAGE_EXTENSIONS)


def has_no_extension(value: str) -> bool:
    # CDN image endpoints often have extension-less paths.
    return "." not in value


def strip_tags(value: str) -> str:
    """Drop raw markup tags and collapse what is left."""
    return collapse_whitespace(re.sub(RAW_TAG_PATTERN, " ", value))


__all__ = [
    "IMAGE_EXTENSIONS",
    "trim",
    "collapse_whitespace",
    "has_image_extension",
    "has_no_extension",
    "strip_tags",
]
