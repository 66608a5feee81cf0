"""Preview building blocks: cancellation, redirect resolution and page crawling."""

from .cancellation import Cancellable
from .crawler import MetadataCrawler, TagTree, parse_html
from .redirects import DEFAULT_MAX_REDIRECTS, RedirectResolver

__all__ = [
    "Cancellable",
    "MetadataCrawler",
    "TagTree",
    "parse_html",
    "RedirectResolver",
    "DEFAULT_MAX_REDIRECTS",
]
