"""Shared fixtures: timeline markup builders and in-memory stores."""

from typing import Optional

import pytest

from ticker_extractor.models import TickerPostPair
from ticker_extractor.store import AggregateStore, MemoryKeyValueStore


def build_article(
    ticker: Optional[str] = "OSCR",
    status_href: Optional[str] = "/user/status/123",
    datetime_attr: Optional[str] = "2024-01-01T00:00:00.000Z",
    social_context: Optional[str] = None,
    body: str = "Loading up on shares today",
) -> str:
    """Markup for one timeline post, shaped like the live site."""
    parts = ["<article>"]
    if social_context is not None:
        parts.append(f'<span data-testid="socialContext">{social_context}</span>')
    parts.append('<div><a href="/user">User</a></div>')
    if status_href is not None:
        time_el = f'<time datetime="{datetime_attr}">Jan 1</time>' if datetime_attr else "Jan 1"
        parts.append(f'<a href="{status_href}">{time_el}</a>')
    parts.append(f"<div>{body} ")
    if ticker is not None:
        parts.append(
            f'<a href="/search?q=%24{ticker}&amp;src=cashtag_click">${ticker}</a>'
        )
    parts.append("</div></article>")
    return "".join(parts)


def build_page(*articles: str) -> str:
    return "<html><body><main>" + "".join(articles) + "</main></body></html>"


@pytest.fixture
def article():
    return build_article


@pytest.fixture
def page():
    return build_page


@pytest.fixture
def make_pair():
    def _make(ticker="OSCR", n=1, ts="2024-01-01T00:00:00Z"):
        return TickerPostPair(
            ticker=ticker, url=f"https://x.com/user/status/{n}", timestamp=ts
        )

    return _make


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv):
    """Store with inline persistence so assertions see writes immediately."""
    s = AggregateStore(kv, auto_export_threshold=20, persist_async=False)
    yield s
    s.close()
