"""HTTP transport used for redirect hops and page fetches.

One `requests.Session` is shared by every request a transport serves; its
configuration (headers, timeout) is set once and never mutated afterwards.
Transport failures surface as FetchFailed carrying the URL and the underlying
error text. Nothing is retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional
from urllib.parse import urljoin

import requests

from linkcard.core.exceptions import FetchFailed, ParseFailed

from .common import logger

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one transport call; `final_url` is where the response came from."""

    final_url: str
    status_code: int
    body: Optional[bytes] = None
    encoding: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)

    def markup(self) -> bytes:
        """
        Raw body for the HTML parser.

        Decoding is left to the parser, which honours `encoding` (the header charset)
        or sniffs <meta charset> and replaces undecodable bytes. A response without a
        body raises ParseFailed.
        """
        if self.body is None:
            raise ParseFailed(self.final_url)
        return self.body


class HttpTransport:
    """Thin wrapper around a shared requests.Session."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: Optional[str] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def fetch(
        self, url: str, method: str = "GET", follow_redirects: bool = False
    ) -> FetchResult:
        """
        Issue one request.

        Without redirect following, a 3xx response reports the Location target
        (resolved against `url`) as `final_url`; any other response reports `url`
        itself. HEAD responses never carry a body.
        """
        try:
            response = self.session.request(
                method,
                url,
                allow_redirects=follow_redirects,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning(
                "transport_error",
                extra={"url": url, "method": method, "error": str(exc)},
            )
            raise FetchFailed(url, str(exc)) from exc

        try:
            if follow_redirects:
                final_url = response.url or url
            elif response.is_redirect and response.headers.get("location"):
                final_url = urljoin(url, response.headers["location"])
            else:
                final_url = url

            body = None
            encoding = None
            if method.upper() != "HEAD":
                body = response.content
                # requests defaults text/* without a charset to ISO-8859-1; only trust
                # an explicit header charset and let the parser sniff the rest.
                content_type = response.headers.get("content-type", "").lower()
                if "charset" in content_type:
                    encoding = response.encoding
        finally:
            response.close()

        return FetchResult(
            final_url=final_url,
            status_code=response.status_code,
            body=body,
            encoding=encoding,
            headers=dict(response.headers),
        )

    def close(self) -> None:
        self.session.close()


__all__ = ["FetchResult", "HttpTransport", "DEFAULT_TIMEOUT"]
