"""
Exception classes for the preview pipeline.
Every failure a caller can observe is a PreviewError carrying a stable numeric
code, a machine-readable error code and the HTTP status used by the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import status


class PreviewError(Exception):
    """
    Base exception class for all preview failures.
    Provides a consistent error payload for callbacks and HTTP responses.
    """

    code: int = 0
    error_code: str = "preview_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class NoURLFound(PreviewError):
    """Raised when the input text does not contain a URL."""

    code = 1
    error_code = "no_url_found"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, text: str):
        self.text = text
        super().__init__(
            message="No URL has been found",
            details={"text": text},
        )


class InvalidURL(PreviewError):
    """Raised when a discovered URL cannot be used for fetching."""

    code = 2
    error_code = "invalid_url"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, url: str):
        self.url = url
        super().__init__(message=f"Invalid URL: {url}", details={"url": url})


class FetchFailed(PreviewError):
    """Raised when a redirect hop or the content fetch fails."""

    code = 3
    error_code = "fetch_failed"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, url: str, detail: Optional[str] = None):
        self.url = url
        self.detail = detail or ""
        message = f"{url}: {self.detail}" if self.detail else url
        super().__init__(
            message=f"Could not open {message}",
            details={"url": url, "detail": self.detail},
        )


class ParseFailed(PreviewError):
    """Raised when a fetched body cannot be decoded or parsed."""

    code = 4
    error_code = "parse_failed"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, url: str):
        self.url = url
        super().__init__(message=f"Could not parse {url}", details={"url": url})


class RequestCancelled(Exception):
    """Internal signal: the request's Cancellable was set; nothing is delivered."""


__all__ = [
    "PreviewError",
    "NoURLFound",
    "InvalidURL",
    "FetchFailed",
    "ParseFailed",
    "RequestCancelled",
]
