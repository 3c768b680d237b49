"""Stealth browser sessions for venues behind Cloudflare.

Navigation runs through a small state machine::

    idle -> navigating -> awaiting_challenge -> ready
                      \\-> ready                \\-> failed

``failed`` and ``ready`` may start a new navigation. Any other transition
is a programming error and raises ``RuntimeError``.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any

from playwright.async_api import Page, async_playwright
from playwright_stealth import Stealth

from cineingest.config import settings
from cineingest.exceptions import BrowserLaunchError, ChallengeTimeoutError, ScrapeError

logger = logging.getLogger(__name__)

# Markers of a Cloudflare interstitial. Not "challenge-platform": that is
# also a script path on real pages.
CHALLENGE_INDICATORS = (
    "<title>Just a moment</title>",
    "<title>Just a moment...</title>",
    "cf-challenge-running",
    "cf_chl_opt",
    "Checking your browser",
)


def is_challenge_page(html: str) -> bool:
    return any(indicator in html for indicator in CHALLENGE_INDICATORS)


class BrowserState(str, Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    AWAITING_CHALLENGE = "awaiting_challenge"
    READY = "ready"
    FAILED = "failed"


_TRANSITIONS: dict[BrowserState, frozenset[BrowserState]] = {
    BrowserState.IDLE: frozenset({BrowserState.NAVIGATING}),
    BrowserState.NAVIGATING: frozenset(
        {BrowserState.AWAITING_CHALLENGE, BrowserState.READY, BrowserState.FAILED}
    ),
    BrowserState.AWAITING_CHALLENGE: frozenset({BrowserState.READY, BrowserState.FAILED}),
    BrowserState.READY: frozenset({BrowserState.NAVIGATING}),
    BrowserState.FAILED: frozenset({BrowserState.NAVIGATING}),
}


@dataclass(frozen=True)
class ChallengePolicy:
    """How long to wait for a challenge page to clear, and how often to look."""

    max_wait: float = 60.0
    poll_interval: float = 1.0

    @classmethod
    def from_settings(cls) -> "ChallengePolicy":
        return cls(
            max_wait=settings.challenge_timeout,
            poll_interval=settings.challenge_poll_interval,
        )


class BrowserSession:
    """
    One stealth Chromium context owned by a single venue run.

    Navigations are sequential. Element handles do not survive a
    navigation, so callers must re-query the page after every ``goto``,
    ``follow`` or ``back``.

    Args:
        venue_id: Used in log lines and raised errors
        timezone_id: IANA zone given to the browser context
        policy: Challenge wait policy
        navigation_timeout: Seconds allowed for each navigation
        page: Pre-built page; skips launching a browser (used by tests)
    """

    def __init__(
        self,
        venue_id: str,
        timezone_id: str = "Europe/London",
        policy: ChallengePolicy | None = None,
        navigation_timeout: float | None = None,
        headless: bool | None = None,
        page: Any | None = None,
    ) -> None:
        self.venue_id = venue_id
        self.timezone_id = timezone_id
        self.policy = policy or ChallengePolicy.from_settings()
        self.navigation_timeout = navigation_timeout or settings.navigation_timeout
        self.headless = settings.browser_headless if headless is None else headless
        self.state = BrowserState.IDLE
        self.history: list[BrowserState] = [BrowserState.IDLE]
        self._page: Page | Any | None = page
        self._stack: AsyncExitStack | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not open")
        return self._page

    async def __aenter__(self) -> "BrowserSession":
        if self._page is None:
            await self._launch()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
            self._page = None

    async def _launch(self) -> None:
        stack = AsyncExitStack()
        try:
            playwright = await stack.enter_async_context(
                Stealth().use_async(async_playwright())
            )
            browser = await playwright.chromium.launch(headless=self.headless)
            stack.push_async_callback(browser.close)
            # Vary the window a little so sessions do not share one fingerprint
            context = await browser.new_context(
                viewport={
                    "width": 1920 - random.randint(0, 100),
                    "height": 1080 - random.randint(0, 100),
                },
                locale="en-GB",
                timezone_id=self.timezone_id,
            )
            self._page = await context.new_page()
        except Exception as e:
            await stack.aclose()
            raise BrowserLaunchError(self.venue_id, f"Could not launch browser: {e}") from e
        self._stack = stack
        logger.debug(f"{self.venue_id}: browser launched")

    def _transition(self, new_state: BrowserState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal browser transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"{self.venue_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    async def _navigate(self, trigger: Callable[[], Awaitable[Any]], label: str) -> str:
        self._transition(BrowserState.NAVIGATING)
        try:
            await asyncio.wait_for(trigger(), timeout=self.navigation_timeout)
            html = await self.page.content()
        except Exception as e:
            self._transition(BrowserState.FAILED)
            raise ScrapeError(self.venue_id, f"Navigation to {label} failed: {e}") from e

        if is_challenge_page(html):
            self._transition(BrowserState.AWAITING_CHALLENGE)
            try:
                html = await self._await_challenge(label)
            except ScrapeError:
                raise
            except Exception as e:
                self._transition(BrowserState.FAILED)
                raise ScrapeError(
                    self.venue_id, f"Challenge wait on {label} failed: {e}"
                ) from e

        self._transition(BrowserState.READY)
        return html

    async def _await_challenge(self, label: str) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.policy.max_wait
        logger.info(f"{self.venue_id}: waiting for challenge to clear on {label}")

        while loop.time() < deadline:
            await asyncio.sleep(self.policy.poll_interval)
            try:
                html = await self.page.content()
            except Exception as e:
                # The challenge redirects the page while we poll it
                logger.debug(f"{self.venue_id}: page content unavailable: {e}")
                continue
            if not is_challenge_page(html):
                logger.info(f"{self.venue_id}: challenge cleared")
                return html

        self._transition(BrowserState.FAILED)
        raise ChallengeTimeoutError(
            self.venue_id,
            f"Challenge on {label} did not clear within {self.policy.max_wait:.0f}s",
        )

    async def goto(self, url: str) -> str:
        """Navigate to ``url`` and return the page HTML once it is usable."""
        timeout_ms = int(self.navigation_timeout * 1000)
        return await self._navigate(
            lambda: self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms),
            url,
        )

    async def follow(self, action: Callable[[], Awaitable[Any]]) -> str:
        """Run ``action`` (e.g. a click) that triggers a navigation, and wait for it."""
        timeout_ms = int(self.navigation_timeout * 1000)

        async def trigger() -> None:
            async with self.page.expect_navigation(timeout=timeout_ms):
                await action()

        return await self._navigate(trigger, "click target")

    async def back(self) -> str:
        timeout_ms = int(self.navigation_timeout * 1000)
        return await self._navigate(
            lambda: self.page.go_back(wait_until="domcontentloaded", timeout=timeout_ms),
            "previous page",
        )

    async def warm_up(self, base_url: str) -> str:
        """Load the venue homepage first so cookies from any challenge are set."""
        return await self.goto(base_url)
