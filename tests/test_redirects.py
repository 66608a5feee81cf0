import pytest

from linkcard.core.exceptions import FetchFailed, RequestCancelled
from linkcard.modules.preview import Cancellable, RedirectResolver
from tests.doubles import FakeTransport


def test_url_without_redirect_takes_one_hop():
    transport = FakeTransport()
    resolver = RedirectResolver(transport)

    assert resolver.resolve("https://a.com", Cancellable()) == "https://a.com"
    assert transport.heads() == ["https://a.com"]


def test_follows_chain_until_fixed_point():
    transport = FakeTransport(
        redirects={
            "http://a.com": "https://a.com",
            "https://a.com": "https://www.a.com/home",
        }
    )
    resolver = RedirectResolver(transport)

    assert resolver.resolve("http://a.com", Cancellable()) == "https://www.a.com/home"
    assert transport.heads() == [
        "http://a.com",
        "https://a.com",
        "https://www.a.com/home",
    ]


def test_redirect_loop_fails():
    transport = FakeTransport(
        redirects={"https://a.com": "https://b.com", "https://b.com": "https://a.com"}
    )
    resolver = RedirectResolver(transport)

    with pytest.raises(FetchFailed) as exc_info:
        resolver.resolve("https://a.com", Cancellable())
    assert "loop" in exc_info.value.detail


def test_hop_limit_fails():
    redirects = {f"https://h{i}.com": f"https://h{i + 1}.com" for i in range(10)}
    resolver = RedirectResolver(FakeTransport(redirects=redirects), max_redirects=3)

    with pytest.raises(FetchFailed) as exc_info:
        resolver.resolve("https://h0.com", Cancellable())
    assert exc_info.value.url == "https://h0.com"


def test_hop_limit_allows_exactly_max_redirects():
    redirects = {f"https://h{i}.com": f"https://h{i + 1}.com" for i in range(3)}
    resolver = RedirectResolver(FakeTransport(redirects=redirects), max_redirects=3)

    assert resolver.resolve("https://h0.com", Cancellable()) == "https://h3.com"


def test_transport_failure_propagates():
    transport = FakeTransport(errors={"https://a.com": "connection refused"})
    resolver = RedirectResolver(transport)

    with pytest.raises(FetchFailed) as exc_info:
        resolver.resolve("https://a.com", Cancellable())
    assert exc_info.value.code == 3


def test_cancelled_before_first_hop_makes_no_request():
    transport = FakeTransport()
    cancellable = Cancellable()
    cancellable.cancel()

    with pytest.raises(RequestCancelled):
        RedirectResolver(transport).resolve("https://a.com", cancellable)
    assert transport.calls == []
