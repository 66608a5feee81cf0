"""HTML metadata crawler.

Pages are parsed once into a TagTree (BeautifulSoup, html.parser backend) that is
queried with CSS selectors. Each preview field is filled by an ordered list of
strategies; the first non-empty result wins, except images, which accumulate.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Union

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from linkcard.core.exceptions import ParseFailed
from linkcard.modules.utils.links import absolute_url, url_host, url_path
from linkcard.modules.utils.text import (
    collapse_whitespace,
    has_image_extension,
    has_no_extension,
)
from linkcard.schemas import PreviewFields

logger = logging.getLogger(__name__)

DESC_MIN_LENGTH = 30
ICON_REL_MARKERS = ("icon", "shortcut", "apple-touch")


class TagTree:
    """Parsed document exposing selector queries over its nodes."""

    def __init__(self, soup: BeautifulSoup):
        self.soup = soup

    def query(self, selector: str) -> List[Tag]:
        """Nodes matching `selector`, in document order."""
        return self.soup.select(selector)


def parse_html(
    markup: Union[str, bytes], url: str = "", encoding: Optional[str] = None
) -> TagTree:
    """
    Parse markup into a TagTree; raises ParseFailed when the parser rejects it.

    Byte input is decoded by BeautifulSoup: `encoding` is tried first, then the
    document's own <meta charset>, and stray undecodable bytes are replaced.
    """
    options = {}
    if isinstance(markup, bytes) and encoding:
        options["from_encoding"] = encoding
    try:
        # Every attribute as a plain string, including rel/class.
        soup = BeautifulSoup(
            markup, "html.parser", multi_valued_attributes=None, **options
        )
    except (ParserRejectedMarkup, TypeError, ValueError) as exc:
        logger.warning(f"Could not parse markup from {url}: {exc}")
        raise ParseFailed(url) from exc
    return TagTree(soup)


def node_text(node: Tag) -> str:
    return collapse_whitespace(node.get_text())


def visible_selector(tags: Iterable[str]) -> str:
    """Selector for `tags` outside <noscript> and without <script>/<style> inside."""
    return ", ".join(
        f"{tag}:not(noscript {tag}):not(:has(script, style))" for tag in tags
    )


class MetadataCrawler:
    """Maps a parsed page to preview fields. Holds no state between calls."""

    def __init__(self, desc_min_length: int = DESC_MIN_LENGTH):
        self.desc_min_length = desc_min_length

    def crawl(self, tree: TagTree, final_url: str) -> PreviewFields:
        metatags = tree.query("meta")
        links = tree.query("link")
        canonical_host = self.crawl_canonical_host(links, final_url)
        return PreviewFields(
            canonical_host=canonical_host,
            title=self.crawl_title(tree, metatags, canonical_host),
            description=self.crawl_description(tree, metatags),
            images=self.crawl_images(tree, metatags, final_url),
            icon=self.crawl_icon(links, final_url),
        )

    def crawl_image_url(self, url: str) -> PreviewFields:
        """Fields for a URL that points straight at an image; nothing is fetched."""
        return PreviewFields(
            canonical_host=url_host(url),
            title="",
            description="",
            images=(url,),
            icon=None,
        )

    def crawl_canonical_host(self, links: Sequence[Tag], final_url: str) -> str:
        for link in links:
            rel = (link.get("rel") or "").strip().lower()
            href = link.get("href")
            if rel == "canonical" and href:
                host = url_host(href.strip())
                if host:
                    return host
        return url_host(final_url)

    def crawl_metatags(
        self,
        metatags: Sequence[Tag],
        key: str,
        predicate: Optional[Callable[[str], bool]] = None,
    ) -> Optional[str]:
        """
        Value of `key` in <meta> tags.

        og:<key> (property) wins over twitter:<key> (name), which wins over a
        case-insensitive name/itemprop match. Empty contents are ignored.
        """
        key = key.lower()
        og_value = twitter_value = plain_value = None
        for tag in metatags:
            content = tag.get("content")
            if content is None:
                continue
            value = collapse_whitespace(content)
            if not value or (predicate is not None and not predicate(value)):
                continue
            prop = tag.get("property")
            name = tag.get("name")
            itemprop = tag.get("itemprop")
            if og_value is None and prop == f"og:{key}":
                og_value = value
            if twitter_value is None and name == f"twitter:{key}":
                twitter_value = value
            if plain_value is None and key in (
                (name or "").lower(),
                (itemprop or "").lower(),
            ):
                plain_value = value
        return og_value or twitter_value or plain_value

    def crawl_text(
        self, tree: TagTree, tags: Iterable[str], min_length: int = 1
    ) -> Optional[str]:
        """First visible node among `tags` whose collapsed text is long enough."""
        for node in tree.query(visible_selector(tags)):
            text = node_text(node)
            if len(text) >= min_length:
                return text
        return None

    def crawl_title(
        self, tree: TagTree, metatags: Sequence[Tag], canonical_host: str
    ) -> str:
        title = self.crawl_metatags(metatags, "title")
        if title:
            return title
        # Document title only; <svg> icons carry their own <title>.
        for node in tree.query("title:not(svg title)"):
            text = node_text(node)
            if text:
                return text
        return (
            self.crawl_text(tree, ["h1"])
            or self.crawl_text(tree, ["h2"])
            or canonical_host
            or ""
        )

    def crawl_description(self, tree: TagTree, metatags: Sequence[Tag]) -> str:
        return (
            self.crawl_metatags(metatags, "description")
            or self.crawl_text(tree, ["p"], self.desc_min_length)
            or self.crawl_text(tree, ["h3", "h4", "h5", "h6"], self.desc_min_length)
            or self.crawl_text(tree, ["div"], self.desc_min_length)
            or ""
        )

    def crawl_images(
        self, tree: TagTree, metatags: Sequence[Tag], final_url: str
    ) -> List[str]:
        def is_image_path(path: str) -> bool:
            resolved = url_path(absolute_url(path, final_url))
            return has_image_extension(resolved) or has_no_extension(resolved)

        images: List[str] = []
        from_meta = self.crawl_metatags(metatags, "image", predicate=is_image_path)
        if from_meta:
            images.append(absolute_url(from_meta, final_url))
        for img in tree.query("img:not(noscript img)"):
            src = (img.get("src") or "").strip()
            if src and is_image_path(src):
                images.append(absolute_url(src, final_url))
        return images

    def crawl_icon(self, links: Sequence[Tag], final_url: str) -> Optional[str]:
        for link in links:
            rel = (link.get("rel") or "").lower()
            href = (link.get("href") or "").strip()
            if href and any(marker in rel for marker in ICON_REL_MARKERS):
                return absolute_url(href, final_url)
        return None


__all__ = [
    "DESC_MIN_LENGTH",
    "TagTree",
    "parse_html",
    "node_text",
    "visible_selector",
    "MetadataCrawler",
]
