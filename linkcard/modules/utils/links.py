"""URL helpers: discovery in free text, absolutisation and redirect unwrapping."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urljoin, urlsplit

import validators

from linkcard.core.exceptions import InvalidURL, NoURLFound

from .patterns import URL_PATTERN, match_all

_TRAILING_PUNCTUATION = ".,;:!?'\">"
_BRACKETS = {")": "(", "]": "[", "}": "{"}
# Hostnames validators rejects but that still resolve, e.g. my_site.example.com.
_LABEL = r"[a-z0-9_](?:[a-z0-9_-]*[a-z0-9_])?"
_LOOSE_HOST = re.compile(rf"^{_LABEL}(?:\.{_LABEL})*\.?$")


def _trim_candidate(candidate: str) -> str:
    """Drop sentence punctuation glued to the end of a URL, keeping balanced brackets."""
    while candidate:
        last = candidate[-1]
        if last in _TRAILING_PUNCTUATION:
            candidate = candidate[:-1]
        elif last in _BRACKETS and candidate.count(last) > candidate.count(
            _BRACKETS[last]
        ):
            candidate = candidate[:-1]
        else:
            break
    return candidate


def is_http_url(url: str) -> bool:
    """
    True for absolute http/https URLs with a usable host.

    validators decides first (single-label hosts such as localhost allowed); a host
    it rejects is still accepted when it is made of plain DNS label characters.
    """
    if not url:
        return False
    try:
        parts = urlsplit(url)
        parts.port
    except ValueError:
        return False
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        return False
    if validators.url(url, strict_query=False, simple_host=True):
        return True
    return bool(_LOOSE_HOST.match(parts.hostname))


def extract_links(text: str) -> list[str]:
    """Extract http/https link candidates from text, in order of appearance."""
    if not text:
        return []
    return [
        trimmed
        for trimmed in (_trim_candidate(c) for c in match_all(text, URL_PATTERN))
        if trimmed
    ]


def extract_url(text: str) -> str:
    """
    Return the first usable URL embedded in `text`.

    Raises NoURLFound when the text holds no http(s) link at all and InvalidURL
    when every candidate is malformed.
    """
    candidates = extract_links(text)
    if not candidates:
        raise NoURLFound(text)
    for candidate in candidates:
        if is_http_url(candidate):
            return candidate
    raise InvalidURL(candidates[0])


def fetchable_url(url: str) -> str:
    """Return `url` with an http scheme, defaulting bare hosts to http://."""
    if not url.lower().startswith(("http://", "https://")):
        if "://" in url:
            raise InvalidURL(url)
        url = f"http://{url}"
    if not is_http_url(url):
        raise InvalidURL(url)
    return url


def absolute_url(path: str, base: str) -> str:
    """Resolve scheme-less paths against `base`; absolute URLs pass through."""
    if urlsplit(path).scheme:
        return path
    return urljoin(base, path)


def url_host(url: str) -> str:
    return urlsplit(url).hostname or ""


def url_path(url: str) -> str:
    return urlsplit(url).path


def unwrap_embedded_redirect(url: str) -> str:
    """
    Follow a redirect target carried in the query string.

    https://www.dji.com/404?url=http%3A%2F%2Fwww.dji.com%2Fmatrice600-pro%2Finfo
    becomes http://www.dji.com/matrice600-pro/info. Anything that is not a valid
    absolute http(s) URL is ignored and the input is returned unchanged.
    """
    query = urlsplit(url).query
    if not query:
        return url
    targets = parse_qs(query).get("url")
    if targets and is_http_url(targets[0]):
        return targets[0]
    return url


__all__ = [
    "is_http_url",
    "extract_links",
    "extract_url",
    "fetchable_url",
    "absolute_url",
    "url_host",
    "url_path",
    "unwrap_embedded_redirect",
]
