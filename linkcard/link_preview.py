"""Link preview pipeline.

text -> URL discovery -> cache -> redirect resolution -> cache -> fetch -> crawl ->
cache write -> callback. Network and parsing run on a worker pool; callbacks run on a
separate completion executor. Every stage checks the request's Cancellable before it
does anything visible, and exactly one callback fires for a request that is not
cancelled.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from linkcard.cache import DISABLED_CACHE, ResponseCache, build_cache
from linkcard.core.exceptions import (
    FetchFailed,
    ParseFailed,
    PreviewError,
    RequestCancelled,
)
from linkcard.core.logging_config import bind_log_context, reset_log_context
from linkcard.modules.preview import (
    Cancellable,
    MetadataCrawler,
    RedirectResolver,
    parse_html,
)
from linkcard.modules.preview.redirects import DEFAULT_MAX_REDIRECTS
from linkcard.modules.utils.links import (
    extract_url,
    fetchable_url,
    unwrap_embedded_redirect,
    url_path,
)
from linkcard.modules.utils.network import HttpTransport
from linkcard.modules.utils.text import has_image_extension
from linkcard.schemas import Preview, PreviewFields

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[Preview], Any]
ErrorCallback = Callable[[PreviewError], Any]


def _log_task_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Preview task raised", exc_info=exc)


class LinkPreview:
    """Builds link previews for URLs found in free-form text."""

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        cache: Optional[ResponseCache] = None,
        work_executor: Optional[Executor] = None,
        completion_executor: Optional[Executor] = None,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        crawler: Optional[MetadataCrawler] = None,
    ) -> None:
        self._owns_transport = transport is None
        self.transport = transport or HttpTransport()
        self.cache = cache if cache is not None else DISABLED_CACHE
        self.crawler = crawler or MetadataCrawler()
        self.resolver = RedirectResolver(self.transport, max_redirects=max_redirects)

        self._owned_executors = []
        if work_executor is None:
            work_executor = ThreadPoolExecutor(thread_name_prefix="linkcard-work")
            self._owned_executors.append(work_executor)
        if completion_executor is None:
            completion_executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="linkcard-completion"
            )
            self._owned_executors.append(completion_executor)
        self.work_executor = work_executor
        self.completion_executor = completion_executor

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> "LinkPreview":
        """Build a pipeline (transport, cache, worker pool) from configuration."""
        if settings is None:
            from linkcard.core.config import get_settings

            settings = get_settings()

        owns_work_executor = "work_executor" not in overrides
        owns_transport = "transport" not in overrides
        if owns_work_executor:
            overrides["work_executor"] = ThreadPoolExecutor(
                max_workers=settings.worker_threads,
                thread_name_prefix="linkcard-work",
            )
        if "transport" not in overrides:
            overrides["transport"] = HttpTransport(
                timeout=settings.request_timeout, user_agent=settings.user_agent
            )
        if "cache" not in overrides:
            overrides["cache"] = build_cache(settings)
        overrides.setdefault("max_redirects", settings.max_redirects)

        instance = cls(**overrides)
        if owns_work_executor:
            instance._owned_executors.append(instance.work_executor)
        instance._owns_transport = owns_transport
        return instance

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract_url(self, text: str) -> str:
        return extract_url(text)

    def preview(
        self, text: str, on_success: SuccessCallback, on_error: ErrorCallback
    ) -> Cancellable:
        """Start building a preview for the first URL in `text`."""
        cancellable = Cancellable()
        try:
            url = self.extract_url(text)
        except PreviewError as exc:
            logger.info(f"No usable URL in text: {exc.message}")
            self._respond(cancellable, on_error, exc)
            return cancellable

        # Worker threads do not inherit contextvars; carry the caller's request_id.
        context = contextvars.copy_context()
        task = self.work_executor.submit(
            context.run, self._run, url, cancellable, on_success, on_error
        )
        task.add_done_callback(_log_task_failure)
        return cancellable

    def preview_link(
        self,
        text: str,
        on_success: Callable[[Dict[str, Any]], Any],
        on_error: ErrorCallback,
    ) -> Cancellable:
        """Like `preview`, but successes are delivered as the keyed response mapping."""
        return self.preview(
            text, lambda result: on_success(result.to_response()), on_error
        )

    async def get_preview(self, text: str) -> Preview:
        """Await a preview; raises the PreviewError on failure."""
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future = loop.create_future()

        def settle(setter, value) -> None:
            if not outcome.done():
                setter(value)

        cancellable = self.preview(
            text,
            on_success=lambda result: loop.call_soon_threadsafe(
                settle, outcome.set_result, result
            ),
            on_error=lambda error: loop.call_soon_threadsafe(
                settle, outcome.set_exception, error
            ),
        )
        try:
            return await outcome
        except asyncio.CancelledError:
            cancellable.cancel()
            raise

    def close(self) -> None:
        """Stop owned executors, the owned HTTP session and the cache sweep."""
        for executor in self._owned_executors:
            executor.shutdown(wait=False)
        self._owned_executors = []
        if self._owns_transport:
            self.transport.close()
            self._owns_transport = False
        self.cache.close()

    def __enter__(self) -> "LinkPreview":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def _run(
        self,
        url: str,
        cancellable: Cancellable,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> None:
        tokens = bind_log_context(preview_url=url)
        try:
            result = self._build(url, cancellable)
        except RequestCancelled:
            logger.debug("Preview cancelled")
        except PreviewError as exc:
            logger.warning(f"Preview failed: {exc.message}")
            self._respond(cancellable, on_error, exc)
        except Exception as exc:
            logger.exception("Unexpected error while building preview")
            self._respond(cancellable, on_error, FetchFailed(url, str(exc)))
        else:
            self._respond(cancellable, on_success, result)
        finally:
            reset_log_context(tokens)

    def _build(self, url: str, cancellable: Cancellable) -> Preview:
        cancellable.raise_if_cancelled()
        cached = self.cache.get(url)
        if cached is not None:
            logger.debug("Cache hit for source URL")
            return cached

        resolved = self.resolver.resolve(url, cancellable)
        cancellable.raise_if_cancelled()
        cached = self.cache.get(resolved)
        if cached is not None:
            logger.debug(f"Cache hit for resolved URL {resolved}")
            return cached

        final_url = unwrap_embedded_redirect(resolved)
        fields = self._extract_info(final_url, cancellable)
        result = Preview(source_url=url, final_url=final_url, **fields.model_dump())

        # Cancelled requests leave the cache untouched.
        cancellable.raise_if_cancelled()
        for key in dict.fromkeys((resolved, final_url, url)):
            self.cache.set(key, result)
        return result

    def _extract_info(self, final_url: str, cancellable: Cancellable) -> PreviewFields:
        if has_image_extension(url_path(final_url)):
            return self.crawler.crawl_image_url(final_url)

        source_url = fetchable_url(final_url)
        cancellable.raise_if_cancelled()
        response = self.transport.fetch(source_url, "GET", follow_redirects=True)
        cancellable.raise_if_cancelled()
        markup = response.markup()

        try:
            tree = parse_html(markup, source_url, encoding=response.encoding)
        except ParseFailed:
            # Best effort: an unparsable page still yields a preview, just an empty one.
            logger.warning(f"Returning empty metadata for unparsable page {source_url}")
            return PreviewFields()
        return self.crawler.crawl(tree, source_url)

    def _respond(self, cancellable: Cancellable, callback, value) -> None:
        if cancellable.is_cancelled:
            return

        def deliver() -> None:
            if not cancellable.is_cancelled:
                callback(value)

        future = self.completion_executor.submit(
            contextvars.copy_context().run, deliver
        )
        future.add_done_callback(_log_task_failure)


__all__ = ["LinkPreview", "Cancellable"]
