"""Tests for the browser-side pieces that run without a browser."""

from __future__ import annotations

import asyncio

from beacongate.capture.browser import NavigationGuard, redirect_trace
from beacongate.capture.url_guard import UrlCheck, check_url
from beacongate.models.capture import RedirectHop

from conftest import fake_resolver


class _Response:
    def __init__(self, url: str, status: int, request: _Request) -> None:
        self.url = url
        self.status = status
        self.request = request


class _Request:
    def __init__(
        self, url: str, *, status: int | None = None, redirected_from: _Request | None = None, nav: bool = True
    ) -> None:
        self.url = url
        self.redirected_from = redirected_from
        self._status = status
        self._nav = nav

    async def response(self) -> _Response | None:
        if self._status is None:
            return None
        return _Response(self.url, self._status, self)

    def is_navigation_request(self) -> bool:
        return self._nav


class _Route:
    def __init__(self) -> None:
        self.aborted: str | None = None
        self.continued = False

    async def abort(self, error_code: str) -> None:
        self.aborted = error_code

    async def continue_(self) -> None:
        self.continued = True


async def _check(url: str) -> UrlCheck:
    return check_url(url, resolver=fake_resolver)


def test_redirect_trace_without_redirects() -> None:
    req = _Request("https://ads.example.com/")
    hops = asyncio.run(redirect_trace(_Response(req.url, 200, req), req.url, req.url))  # type: ignore[arg-type]
    assert hops == [RedirectHop(url="https://ads.example.com/", status=200)]


def test_redirect_trace_orders_hops_from_landing_to_final() -> None:
    """Two redirects give three hops: both 30x responses, then the final document."""

    first = _Request("https://ads.example.com/", status=301)
    second = _Request("https://track.example.net/c", status=302, redirected_from=first)
    final = _Request("https://shop.example.org/buy", redirected_from=second)
    response = _Response(final.url, 200, final)

    hops = asyncio.run(redirect_trace(response, first.url, final.url))  # type: ignore[arg-type]
    assert hops == [
        RedirectHop(url="https://ads.example.com/", status=301),
        RedirectHop(url="https://track.example.net/c", status=302),
        RedirectHop(url="https://shop.example.org/buy", status=200),
    ]


def test_redirect_trace_after_timeout() -> None:
    """Without a response only the landing and the page's current URL are known."""

    same = asyncio.run(redirect_trace(None, "https://ads.example.com/", "https://ads.example.com/"))
    assert same == [RedirectHop(url="https://ads.example.com/")]

    moved = asyncio.run(redirect_trace(None, "https://ads.example.com/", "https://shop.example.org/"))
    assert [h.url for h in moved] == ["https://ads.example.com/", "https://shop.example.org/"]
    assert all(h.status is None for h in moved)


def test_guard_allows_public_navigation_and_subresources() -> None:
    guard = NavigationGuard(_check)
    nav, sub = _Route(), _Route()
    asyncio.run(guard(nav, _Request("https://shop.example.org/")))  # type: ignore[arg-type]
    asyncio.run(guard(sub, _Request("http://10.0.0.1/pixel.gif", nav=False)))  # type: ignore[arg-type]
    assert nav.continued and sub.continued
    assert guard.failure() is None


def test_guard_blocks_redirect_into_internal_space() -> None:
    """A navigation to a metadata address is aborted and reported as a security failure."""

    guard = NavigationGuard(_check)
    allowed, blocked, later = _Route(), _Route(), _Route()
    asyncio.run(guard(allowed, _Request("https://ads.example.com/")))  # type: ignore[arg-type]
    asyncio.run(guard(blocked, _Request("http://169.254.169.254/latest/meta-data")))  # type: ignore[arg-type]
    asyncio.run(guard(later, _Request("http://metadata.internal/")))  # type: ignore[arg-type]

    assert allowed.continued
    assert blocked.aborted == "blockedbyclient" and not blocked.continued
    assert later.aborted == "blockedbyclient"
    assert guard.blocked_url == "http://169.254.169.254/latest/meta-data"

    failure = guard.failure()
    assert failure is not None
    assert failure.security is True
    assert failure.error is not None and failure.error.startswith("SSRF protection")
