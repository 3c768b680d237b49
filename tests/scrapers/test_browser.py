"""Tests for the browser session navigation state machine."""

import pytest

from cineingest.exceptions import ChallengeTimeoutError, ScrapeError
from cineingest.scrapers.browser import (
    BrowserSession,
    BrowserState,
    ChallengePolicy,
    is_challenge_page,
)

CHALLENGE_HTML = "<html><head><title>Just a moment...</title></head></html>"
REAL_HTML = "<html><body><h1>What's on</h1><script src='/cdn-cgi/challenge-platform/x.js'></script></body></html>"


class FakePage:
    """Serves a scripted sequence of page contents."""

    def __init__(self, contents: list, goto_error: Exception | None = None) -> None:
        self.contents = list(contents)
        self.goto_error = goto_error
        self.visited: list[str] = []

    async def goto(self, url: str, **kwargs) -> None:
        if self.goto_error:
            raise self.goto_error
        self.visited.append(url)

    async def go_back(self, **kwargs) -> None:
        self.visited.append("<back>")

    async def content(self) -> str:
        item = self.contents.pop(0) if len(self.contents) > 1 else self.contents[0]
        if isinstance(item, Exception):
            raise item
        return item


def make_session(page: FakePage, max_wait: float = 1.0) -> BrowserSession:
    return BrowserSession(
        "bfi-southbank",
        policy=ChallengePolicy(max_wait=max_wait, poll_interval=0.01),
        navigation_timeout=5,
        page=page,
    )


def test_challenge_detection() -> None:
    assert is_challenge_page(CHALLENGE_HTML)
    assert not is_challenge_page(REAL_HTML)


async def test_plain_navigation() -> None:
    session = make_session(FakePage([REAL_HTML]))

    async with session:
        html = await session.goto("https://whatson.bfi.org.uk/")

    assert html == REAL_HTML
    assert session.history == [BrowserState.IDLE, BrowserState.NAVIGATING, BrowserState.READY]


async def test_challenge_clears() -> None:
    session = make_session(FakePage([CHALLENGE_HTML, CHALLENGE_HTML, REAL_HTML]))

    async with session:
        html = await session.goto("https://whatson.bfi.org.uk/")

    assert html == REAL_HTML
    assert session.history == [
        BrowserState.IDLE,
        BrowserState.NAVIGATING,
        BrowserState.AWAITING_CHALLENGE,
        BrowserState.READY,
    ]


async def test_challenge_timeout() -> None:
    session = make_session(FakePage([CHALLENGE_HTML]), max_wait=0.05)

    async with session:
        with pytest.raises(ChallengeTimeoutError):
            await session.goto("https://whatson.bfi.org.uk/")

    assert session.state is BrowserState.FAILED


async def test_navigation_error_fails_and_can_retry() -> None:
    page = FakePage([REAL_HTML], goto_error=TimeoutError("nav timeout"))
    session = make_session(page)

    async with session:
        with pytest.raises(ScrapeError, match="nav timeout"):
            await session.goto("https://whatson.bfi.org.uk/")
        assert session.state is BrowserState.FAILED

        page.goto_error = None
        await session.goto("https://whatson.bfi.org.uk/")

    assert session.state is BrowserState.READY


async def test_back_navigates_from_ready() -> None:
    page = FakePage([REAL_HTML])
    session = make_session(page)

    async with session:
        await session.goto("https://whatson.bfi.org.uk/a")
        await session.back()

    assert page.visited == ["https://whatson.bfi.org.uk/a", "<back>"]


def test_illegal_transition_raises() -> None:
    session = make_session(FakePage([REAL_HTML]))
    with pytest.raises(RuntimeError, match="idle -> ready"):
        session._transition(BrowserState.READY)


def test_page_requires_open_session() -> None:
    session = BrowserSession("bfi-southbank")
    with pytest.raises(RuntimeError, match="not open"):
        session.page


async def test_content_error_during_challenge_is_retried() -> None:
    page = FakePage([CHALLENGE_HTML, RuntimeError("page is navigating"), REAL_HTML])
    session = make_session(page)

    async with session:
        html = await session.goto("https://whatson.bfi.org.uk/")

    assert html == REAL_HTML
    assert session.state is BrowserState.READY


async def test_persistent_content_error_fails_and_can_retry() -> None:
    page = FakePage([CHALLENGE_HTML, RuntimeError("execution context destroyed")])
    session = make_session(page, max_wait=0.05)

    async with session:
        with pytest.raises(ChallengeTimeoutError):
            await session.goto("https://whatson.bfi.org.uk/")
        assert session.state is BrowserState.FAILED

        page.contents = [REAL_HTML]
        html = await session.goto("https://whatson.bfi.org.uk/")

    assert html == REAL_HTML
    assert session.state is BrowserState.READY


async def test_unexpected_error_in_challenge_wait_fails(monkeypatch) -> None:
    session = make_session(FakePage([CHALLENGE_HTML]))

    async def broken_wait(label: str) -> str:
        raise RuntimeError("target closed")

    monkeypatch.setattr(session, "_await_challenge", broken_wait)

    async with session:
        with pytest.raises(ScrapeError, match="target closed"):
            await session.goto("https://whatson.bfi.org.uk/")

    assert session.state is BrowserState.FAILED
    assert BrowserState.AWAITING_CHALLENGE in session.history
