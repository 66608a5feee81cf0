"""Redirect resolution by explicit HEAD hops."""

from __future__ import annotations

import logging

from linkcard.core.exceptions import FetchFailed
from linkcard.modules.utils.network import HttpTransport

from .cancellation import Cancellable

logger = logging.getLogger(__name__)

DEFAULT_MAX_REDIRECTS = 20


class RedirectResolver:
    """
    Follows redirects one hop at a time until a hop answers for itself.

    Each hop is a HEAD request with automatic redirects disabled. A hop whose
    resolved URL equals the requested URL ends the chase. Revisiting a URL or
    exceeding `max_redirects` fails with FetchFailed.
    """

    def __init__(
        self, transport: HttpTransport, max_redirects: int = DEFAULT_MAX_REDIRECTS
    ):
        self.transport = transport
        self.max_redirects = max_redirects

    def resolve(self, url: str, cancellable: Cancellable) -> str:
        chain = [url]
        current = url
        while True:
            cancellable.raise_if_cancelled()
            resolved = self.transport.fetch(current, "HEAD").final_url
            if resolved == current:
                if len(chain) > 1:
                    logger.debug(f"Resolved {url} -> {current} in {len(chain) - 1} hops")
                return current
            if resolved in chain:
                raise FetchFailed(resolved, f"redirect loop after {len(chain)} hops")
            if len(chain) > self.max_redirects:
                raise FetchFailed(url, f"exceeded {self.max_redirects} redirects")
            chain.append(resolved)
            current = resolved


__all__ = ["RedirectResolver", "DEFAULT_MAX_REDIRECTS"]
