import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest

from linkcard import link_preview as link_preview_module
from linkcard.cache import DISABLED_CACHE, InMemoryCache
from linkcard.core.exceptions import NoURLFound, ParseFailed
from linkcard.core.logging_config import bind_log_context, request_id_ctx, reset_log_context
from linkcard.link_preview import LinkPreview
from linkcard.modules.preview import MetadataCrawler
from linkcard.schemas import Preview
from tests.doubles import ARTICLE_HTML, FakeTransport, ImmediateExecutor, ManualExecutor, Outcomes

ARTICLE_URL = "https://example.com/article"


class SpyCache:
    def __init__(self):
        self.calls = []

    def get(self, key):
        self.calls.append(("get", key))
        return None

    def set(self, key, value):
        self.calls.append(("set", key))

    def close(self):
        pass


class BlockingTransport(FakeTransport):
    """Holds page fetches until the test releases them."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = threading.Event()
        self.release = threading.Event()

    def fetch(self, url, method="GET", follow_redirects=False):
        if method == "GET":
            self.started.set()
            self.release.wait(5)
        return super().fetch(url, method, follow_redirects)


class ExplodingCrawler(MetadataCrawler):
    def crawl(self, tree, final_url):
        raise RuntimeError("boom")


@pytest.fixture
def memory_cache():
    cache = InMemoryCache(invalidation_timeout=60, start_sweeper=False)
    yield cache
    cache.close()


def test_text_without_url_reports_no_url_found(make_pipeline, fake_transport, outcomes):
    cache = SpyCache()
    slp = make_pipeline(fake_transport, cache=cache)

    slp.preview("nothing to see here", outcomes.on_success, outcomes.on_error)

    assert outcomes.successes == []
    assert isinstance(outcomes.errors[0], NoURLFound)
    assert outcomes.errors[0].code == 1
    assert cache.calls == []
    assert fake_transport.calls == []


def test_preview_success(make_pipeline, fake_transport, outcomes, memory_cache):
    slp = make_pipeline(fake_transport, cache=memory_cache)

    slp.preview(f"have a look at {ARTICLE_URL} please", outcomes.on_success, outcomes.on_error)

    assert outcomes.errors == []
    result = outcomes.successes[0]
    assert result.source_url == ARTICLE_URL
    assert result.final_url == ARTICLE_URL
    assert result.title == "Example Article"
    assert result.description == "A short description of the article."
    assert result.canonical_host == "www.example.com"
    assert result.image == "https://example.com/media/cover.png"
    assert result.icon == "https://example.com/favicon.ico"
    assert memory_cache.get(ARTICLE_URL) == result


def test_exactly_one_callback_per_request(fake_transport, outcomes):
    completion = ImmediateExecutor()
    slp = LinkPreview(
        transport=fake_transport,
        work_executor=ImmediateExecutor(),
        completion_executor=completion,
    )

    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)
    slp.preview("no url", outcomes.on_success, outcomes.on_error)

    assert completion.submitted == 2
    assert outcomes.count == 2
    slp.close()


def test_repeated_preview_served_from_cache(make_pipeline, fake_transport, outcomes, memory_cache):
    slp = make_pipeline(fake_transport, cache=memory_cache)

    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)
    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)

    first, second = outcomes.successes
    assert first == second
    assert fake_transport.gets() == [ARTICLE_URL]


def test_redirected_preview_cached_under_both_urls(make_pipeline, outcomes, memory_cache):
    transport = FakeTransport(
        pages={ARTICLE_URL: ARTICLE_HTML},
        redirects={"https://short.ly/x": ARTICLE_URL},
    )
    slp = make_pipeline(transport, cache=memory_cache)

    slp.preview("https://short.ly/x", outcomes.on_success, outcomes.on_error)

    result = outcomes.successes[0]
    assert result.source_url == "https://short.ly/x"
    assert result.final_url == ARTICLE_URL
    assert memory_cache.get("https://short.ly/x") is result
    assert memory_cache.get(ARTICLE_URL) is result


def test_cache_hit_on_resolved_url_skips_fetch(make_pipeline, outcomes, memory_cache):
    cached = Preview(source_url=ARTICLE_URL, final_url=ARTICLE_URL, title="Cached")
    memory_cache.set(ARTICLE_URL, cached)
    transport = FakeTransport(redirects={"https://short.ly/x": ARTICLE_URL})
    slp = make_pipeline(transport, cache=memory_cache)

    slp.preview("https://short.ly/x", outcomes.on_success, outcomes.on_error)

    assert outcomes.successes == [cached]
    assert transport.heads() == ["https://short.ly/x", ARTICLE_URL]
    assert transport.gets() == []


def test_cache_hit_on_source_url_makes_no_request(make_pipeline, outcomes, memory_cache):
    cached = Preview(source_url=ARTICLE_URL, final_url=ARTICLE_URL, title="Cached")
    memory_cache.set(ARTICLE_URL, cached)
    transport = FakeTransport()
    slp = make_pipeline(transport, cache=memory_cache)

    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)

    assert outcomes.successes == [cached]
    assert transport.calls == []


def test_unreachable_host_reports_fetch_failed(make_pipeline, outcomes, memory_cache):
    url = "https://down.example.com/"
    transport = FakeTransport(errors={url: "timed out"})
    slp = make_pipeline(transport, cache=memory_cache)

    slp.preview(f"try {url}", outcomes.on_success, outcomes.on_error)

    assert outcomes.successes == []
    assert outcomes.errors[0].code == 3
    assert memory_cache.get(url) is None


def test_malformed_url_reports_invalid_url(make_pipeline, fake_transport, outcomes):
    slp = make_pipeline(fake_transport)

    slp.preview("go to http://example.com:99999/x", outcomes.on_success, outcomes.on_error)

    assert outcomes.errors[0].code == 2
    assert fake_transport.calls == []


def test_image_url_is_not_fetched(make_pipeline, outcomes):
    transport = FakeTransport()
    slp = make_pipeline(transport)

    slp.preview("https://img.example.com/cat.PNG", outcomes.on_success, outcomes.on_error)

    result = outcomes.successes[0]
    assert result.images == ("https://img.example.com/cat.PNG",)
    assert result.canonical_host == "img.example.com"
    assert result.title == ""
    assert transport.gets() == []


def test_embedded_redirect_is_unwrapped(make_pipeline, outcomes, memory_cache):
    wrapped = "https://www.dji.com/404?url=http%3A%2F%2Fwww.dji.com%2Fmatrice600-pro%2Finfo"
    target = "http://www.dji.com/matrice600-pro/info"
    transport = FakeTransport(pages={target: "<title>Matrice 600 Pro</title>"})
    slp = make_pipeline(transport, cache=memory_cache)

    slp.preview(wrapped, outcomes.on_success, outcomes.on_error)

    result = outcomes.successes[0]
    assert result.final_url == target
    assert result.title == "Matrice 600 Pro"
    assert transport.gets() == [target]
    assert memory_cache.get(target) is result
    assert memory_cache.get(wrapped) is result


def test_unparsable_page_yields_empty_metadata(make_pipeline, fake_transport, outcomes, monkeypatch):
    def reject(markup, url="", encoding=None):
        raise ParseFailed(url)

    monkeypatch.setattr(link_preview_module, "parse_html", reject)
    slp = make_pipeline(fake_transport)

    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)

    result = outcomes.successes[0]
    assert result.source_url == ARTICLE_URL
    assert result.title == ""
    assert result.images == ()


def test_stray_invalid_byte_still_yields_preview(make_pipeline, outcomes):
    body = "<html><head><title>Café</title></head></html>".encode("utf-8") + b"\xff"
    transport = FakeTransport(pages={ARTICLE_URL: body}, encoding="utf-8")
    slp = make_pipeline(transport)

    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)

    assert outcomes.errors == []
    assert outcomes.successes[0].title.startswith("Caf")


def test_missing_body_reports_parse_failed(make_pipeline, outcomes):
    transport = FakeTransport(pages={ARTICLE_URL: None})
    slp = make_pipeline(transport)

    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)

    assert outcomes.errors[0].code == 4


def test_unexpected_error_reported_as_fetch_failed(make_pipeline, fake_transport, outcomes):
    slp = make_pipeline(fake_transport, crawler=ExplodingCrawler())

    slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)

    assert outcomes.errors[0].code == 3
    assert "boom" in outcomes.errors[0].message


def test_cancel_during_fetch_suppresses_callbacks_and_cache_write(outcomes, memory_cache):
    transport = BlockingTransport(pages={ARTICLE_URL: ARTICLE_HTML})
    work = ThreadPoolExecutor(max_workers=1)
    completion = ThreadPoolExecutor(max_workers=1)
    slp = LinkPreview(
        transport=transport,
        cache=memory_cache,
        work_executor=work,
        completion_executor=completion,
    )

    handle = slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)
    assert transport.started.wait(5)
    handle.cancel()
    transport.release.set()
    work.shutdown(wait=True)
    completion.shutdown(wait=True)

    assert handle.is_cancelled
    assert outcomes.count == 0
    assert memory_cache.get(ARTICLE_URL) is None
    slp.close()


def test_cancel_before_delivery_suppresses_callback(make_pipeline, fake_transport, outcomes):
    completion = ManualExecutor()
    slp = make_pipeline(fake_transport, completion_executor=completion)

    handle = slp.preview(ARTICLE_URL, outcomes.on_success, outcomes.on_error)
    handle.cancel()
    completion.run_all()

    assert outcomes.count == 0


def test_callbacks_run_on_completion_executor(fake_transport):
    outcomes = Outcomes()
    thread_names = []

    def on_success(result):
        thread_names.append(threading.current_thread().name)
        outcomes.on_success(result)

    with LinkPreview(transport=fake_transport) as slp:
        slp.preview(ARTICLE_URL, on_success, outcomes.on_error)
        assert outcomes.delivered.wait(5)

    assert thread_names[0].startswith("linkcard-completion")


def test_concurrent_requests_all_complete(memory_cache):
    pages = {f"https://example.com/{n}": f"<title>Page {n}</title>" for n in range(10)}
    transport = FakeTransport(pages=pages)
    outcomes = Outcomes()
    work = ThreadPoolExecutor(max_workers=4)
    completion = ThreadPoolExecutor(max_workers=1)
    slp = LinkPreview(
        transport=transport,
        cache=memory_cache,
        work_executor=work,
        completion_executor=completion,
    )

    for url in pages:
        slp.preview(url, outcomes.on_success, outcomes.on_error)
    work.shutdown(wait=True)
    completion.shutdown(wait=True)

    assert outcomes.errors == []
    assert sorted(p.title for p in outcomes.successes) == sorted(f"Page {n}" for n in range(10))
    slp.close()


def test_preview_link_delivers_keyed_mapping(make_pipeline, fake_transport):
    delivered = []
    slp = make_pipeline(fake_transport)

    slp.preview_link(ARTICLE_URL, delivered.append, pytest.fail)

    response = delivered[0]
    assert response["url"] == ARTICLE_URL
    assert response["finalUrl"] == ARTICLE_URL
    assert response["canonicalUrl"] == "www.example.com"
    assert response["title"] == "Example Article"
    assert response["image"] == "https://example.com/media/cover.png"
    assert response["images"] == [
        "https://example.com/media/cover.png",
        "https://example.com/inline.jpg",
    ]
    assert response["icon"] == "https://example.com/favicon.ico"


@pytest.mark.asyncio
async def test_get_preview_returns_preview(make_pipeline, fake_transport):
    slp = make_pipeline(fake_transport)

    result = await slp.get_preview(f"link: {ARTICLE_URL}")

    assert result.title == "Example Article"


@pytest.mark.asyncio
async def test_get_preview_raises_preview_error(make_pipeline, fake_transport):
    slp = make_pipeline(fake_transport)

    with pytest.raises(NoURLFound):
        await slp.get_preview("no link at all")


@pytest.mark.asyncio
async def test_get_preview_cancellation_cancels_request():
    transport = BlockingTransport(pages={ARTICLE_URL: ARTICLE_HTML})
    handles = []
    with LinkPreview(transport=transport) as slp:
        start_preview = slp.preview

        def tracking_preview(*args, **kwargs):
            handle = start_preview(*args, **kwargs)
            handles.append(handle)
            return handle

        slp.preview = tracking_preview
        task = asyncio.ensure_future(slp.get_preview(ARTICLE_URL))
        await asyncio.get_running_loop().run_in_executor(None, transport.started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        transport.release.set()

    assert handles[0].is_cancelled


def test_from_settings_builds_pipeline():
    settings = SimpleNamespace(
        worker_threads=2,
        request_timeout=5,
        user_agent="linkcard-test/1.0",
        cache_enabled=False,
        max_redirects=7,
    )
    slp = LinkPreview.from_settings(settings)
    try:
        assert slp.cache is DISABLED_CACHE
        assert slp.resolver.max_redirects == 7
        assert slp.transport.timeout == 5
        assert slp.transport.session.headers["User-Agent"] == "linkcard-test/1.0"
        assert slp.work_executor in slp._owned_executors
    finally:
        slp.close()


def test_from_settings_keeps_overrides(fake_transport):
    settings = SimpleNamespace(
        worker_threads=2,
        request_timeout=5,
        user_agent=None,
        cache_enabled=False,
        max_redirects=7,
    )
    work = ImmediateExecutor()
    slp = LinkPreview.from_settings(settings, transport=fake_transport, work_executor=work)
    try:
        assert slp.transport is fake_transport
        assert slp.work_executor is work
        assert work not in slp._owned_executors
    finally:
        slp.close()


def test_close_closes_owned_transport():
    slp = LinkPreview(work_executor=ImmediateExecutor(), completion_executor=ImmediateExecutor())
    closed = []
    slp.transport.close = lambda: closed.append(True)

    slp.close()
    slp.close()

    assert closed == [True]


def test_close_leaves_supplied_transport_open(fake_transport):
    fake_transport.close = pytest.fail
    slp = LinkPreview(
        transport=fake_transport,
        work_executor=ImmediateExecutor(),
        completion_executor=ImmediateExecutor(),
    )
    slp.close()


def test_from_settings_owns_built_transport():
    settings = SimpleNamespace(
        worker_threads=1,
        request_timeout=5,
        user_agent=None,
        cache_enabled=False,
        max_redirects=3,
    )
    slp = LinkPreview.from_settings(settings)
    closed = []
    slp.transport.close = lambda: closed.append(True)

    slp.close()

    assert closed == [True]


def test_worker_sees_caller_request_id():
    class RecordingTransport(FakeTransport):
        def fetch(self, url, method="GET", follow_redirects=False):
            self.seen.append(request_id_ctx.get())
            return super().fetch(url, method, follow_redirects)

    transport = RecordingTransport(pages={ARTICLE_URL: ARTICLE_HTML})
    transport.seen = []
    work = ThreadPoolExecutor(max_workers=1)
    slp = LinkPreview(
        transport=transport, work_executor=work, completion_executor=ImmediateExecutor()
    )

    tokens = bind_log_context(request_id="req-42")
    try:
        slp.preview(ARTICLE_URL, lambda result: None, pytest.fail)
    finally:
        reset_log_context(tokens)
    work.shutdown(wait=True)
    slp.close()

    assert transport.seen
    assert set(transport.seen) == {"req-42"}
