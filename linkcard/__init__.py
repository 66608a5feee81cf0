"""Link preview package init."""

from linkcard.cache import DISABLED_CACHE, DisabledCache, InMemoryCache, ResponseCache
from linkcard.core.exceptions import (
    FetchFailed,
    InvalidURL,
    NoURLFound,
    ParseFailed,
    PreviewError,
)
from linkcard.link_preview import Cancellable, LinkPreview
from linkcard.schemas import Preview

__all__ = [
    "LinkPreview",
    "Cancellable",
    "Preview",
    "ResponseCache",
    "DisabledCache",
    "DISABLED_CACHE",
    "InMemoryCache",
    "PreviewError",
    "NoURLFound",
    "InvalidURL",
    "FetchFailed",
    "ParseFailed",
]
