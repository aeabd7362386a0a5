"""Headless-browser evidence capture.

The capturer renders a landing page in an isolated Chromium context with a fixed viewport and user
agent, then writes four artifacts into the run directory: a full-page screenshot, the serialized
HTML, the redirect trace and a network summary. A navigation timeout is not fatal: whatever the page
rendered by then is still captured and reported as :class:`CapturePartial`.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Request, Response, Route, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from beacongate.capture.artifacts import (
    HTML_NAME,
    SCREENSHOT_NAME,
    describe_artifacts,
    write_network_summary,
    write_redirects,
)
from beacongate.capture.hashing import compute_bundle_hash
from beacongate.capture.url_guard import Resolver, UrlCheck, check_url
from beacongate.config import Settings
from beacongate.logging import get_logger
from beacongate.models.capture import (
    CaptureBundle,
    CaptureFailure,
    CaptureOutcome,
    CapturePartial,
    CaptureSuccess,
    NetworkSummary,
    RedirectHop,
)

logger = get_logger(__name__)

TOP_DOMAINS_LIMIT = 10


class Capturer(Protocol):
    """Anything that can turn a landing URL into captured evidence."""

    async def capture(self, url: str, run_dir: Path) -> CaptureOutcome: ...


def summarize_network(requests: list[tuple[str, str]], *, top: int = TOP_DOMAINS_LIMIT) -> NetworkSummary:
    """Summarize observed requests.

    Args:
        requests: ``(resource_type, url)`` pairs in the order they were issued.
        top: Number of domains to keep.

    Returns:
        NetworkSummary: Totals, per-type counts and the most requested domains. Domains with equal
        counts keep the order in which they were first seen.
    """

    by_type: Counter[str] = Counter()
    domains: Counter[str] = Counter()
    for resource_type, url in requests:
        by_type[resource_type] += 1
        host = urlsplit(url).hostname
        if host:
            domains[host] += 1
    # Counter preserves insertion order and sorted() is stable
    ranked = sorted(domains.items(), key=lambda kv: kv[1], reverse=True)
    return NetworkSummary(
        total_requests=len(requests),
        by_type=dict(by_type),
        top_domains=[d for d, _ in ranked[:top]],
    )


async def redirect_trace(response: Response | None, landing_url: str, final_url: str) -> list[RedirectHop]:
    """Reconstruct the ordered redirect trace for the main document.

    The trace always starts at the first requested URL and ends at the final document.
    """

    if response is None:
        hops = [RedirectHop(url=landing_url)]
        if final_url and final_url != landing_url:
            hops.append(RedirectHop(url=final_url))
        return hops

    chain: list[Request] = []
    req = response.request.redirected_from
    while req is not None:
        chain.append(req)
        req = req.redirected_from
    chain.reverse()

    hops: list[RedirectHop] = []
    for r in chain:
        r_resp = await r.response()
        hops.append(RedirectHop(url=r.url, status=r_resp.status if r_resp else None))
    hops.append(RedirectHop(url=response.url, status=response.status))
    return hops


class NavigationGuard:
    """Playwright route handler that re-checks every main-frame navigation.

    One guard serves one capture. The first refused navigation is kept in ``blocked`` so the
    capture can report it as a security rejection instead of a generic browser error.
    """

    def __init__(self, check: Callable[[str], Awaitable[UrlCheck]]) -> None:
        self._check = check
        self.blocked: UrlCheck | None = None
        self.blocked_url: str | None = None

    async def __call__(self, route: Route, request: Request) -> None:
        if request.is_navigation_request():
            verdict = await self._check(request.url)
            if not verdict.ok:
                logger.warning("Blocked navigation to %s: %s", request.url, verdict.error)
                if self.blocked is None:
                    self.blocked = verdict
                    self.blocked_url = request.url
                await route.abort("blockedbyclient")
                return
        await route.continue_()

    def failure(self) -> CaptureFailure | None:
        if self.blocked is None:
            return None
        return CaptureFailure(error=self.blocked.error or "SSRF validation failed", security=True)


class PlaywrightCapturer:
    """Capture landing pages with Playwright's async Chromium driver."""

    def __init__(self, settings: Settings, *, resolver: Resolver | None = None) -> None:
        self._settings = settings
        self._resolver = resolver

    async def _check(self, url: str) -> UrlCheck:
        return await asyncio.to_thread(
            check_url, url, resolver=self._resolver, max_length=self._settings.url_max_length
        )

    async def capture(self, url: str, run_dir: Path) -> CaptureOutcome:
        """Capture evidence for ``url`` into ``run_dir``.

        Returns:
            CaptureOutcome: Success, partial success after a navigation timeout, or failure.
        """

        verdict = await self._check(url)
        if not verdict.ok:
            return CaptureFailure(error=verdict.error or "SSRF validation failed", security=True)

        run_dir.mkdir(parents=True, exist_ok=True)
        requests: list[tuple[str, str]] = []
        captured_at = datetime.now(timezone.utc)
        viewport = self._settings.viewport
        user_agent = self._settings.capture_user_agent
        timeout_ms = self._settings.capture_timeout_s * 1000
        guard = NavigationGuard(self._check)

        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=True)
                try:
                    context = await browser.new_context(viewport=viewport, user_agent=user_agent)
                    await context.route("**/*", guard)
                    page = await context.new_page()
                    page.on("request", lambda r: requests.append((r.resource_type, r.url)))

                    timed_out = False
                    response: Response | None = None
                    try:
                        response = await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                    except PlaywrightTimeoutError:
                        timed_out = True
                        logger.warning("Navigation timed out after %.0fs: %s", self._settings.capture_timeout_s, url)

                    blocked = guard.failure()
                    if blocked is not None:
                        return blocked

                    final_url = page.url if page.url and page.url != "about:blank" else url
                    final_verdict = await self._check(final_url)
                    if not final_verdict.ok:
                        return CaptureFailure(
                            error=final_verdict.error or "SSRF validation failed", security=True
                        )

                    hops = await redirect_trace(response, url, final_url)
                    await self._write_page_artifacts(page, run_dir, tolerate_errors=timed_out)
                    write_redirects(run_dir, hops)
                    write_network_summary(run_dir, summarize_network(requests))
                finally:
                    await browser.close()
        except (PlaywrightError, OSError) as e:
            blocked = guard.failure()
            if blocked is not None:
                logger.warning("Capture of %s stopped at blocked navigation %s", url, guard.blocked_url)
                return blocked
            logger.warning("Capture failed for %s: %s", url, e)
            return CaptureFailure(error=_first_line(str(e)))

        artifacts = describe_artifacts(run_dir)
        bundle = CaptureBundle(
            landing_url=url,
            final_url=final_url,
            run_dir=run_dir,
            artifacts=artifacts,
            bundle_hash=compute_bundle_hash(
                landing_url=url,
                final_url=final_url,
                artifacts=artifacts,
                captured_at=captured_at,
                viewport=viewport,
                user_agent=user_agent,
            ),
            captured_at=captured_at,
            viewport=viewport,
            user_agent=user_agent,
        )
        if timed_out:
            return CapturePartial(bundle=bundle, error="Navigation timeout")
        return CaptureSuccess(bundle=bundle)

    @staticmethod
    async def _write_page_artifacts(page: Any, run_dir: Path, *, tolerate_errors: bool) -> None:
        try:
            await page.screenshot(path=str(run_dir / SCREENSHOT_NAME), full_page=True)
        except PlaywrightError as e:
            if not tolerate_errors:
                raise
            logger.warning("Screenshot unavailable after timeout: %s", _first_line(str(e)))
        try:
            html = await page.content()
        except PlaywrightError as e:
            if not tolerate_errors:
                raise
            logger.warning("HTML unavailable after timeout: %s", _first_line(str(e)))
            return
        (run_dir / HTML_NAME).write_text(html, encoding="utf-8")


def _first_line(message: str) -> str:
    return message.strip().splitlines()[0] if message.strip() else "Capture failed"
