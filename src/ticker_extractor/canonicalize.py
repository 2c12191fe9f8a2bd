# -*- coding: utf-8 -*-
"""Turn one ticker search link inside a post into a canonical pair.

Only the encoded-dollar search link form (``/search?q=%24OSCR``) is
recognised; a free-text ``$OSCR`` outside such a link is ignored. Reposts
and replies are skipped entirely.

Everything here returns ``None`` for "no pair": missing containers,
missing permalinks and rejected posts are the normal case on a busy
timeline, not errors.
"""

from __future__ import annotations

import re
from typing import Optional, Pattern

from bs4 import Tag

from .models import TickerPostPair, utc_now_iso

DEFAULT_ORIGIN = "https://x.com"

# ``q=%24`` is the URL-encoded ``q=$`` of the site's cashtag search link.
TICKER_HREF_RE: Pattern[str] = re.compile(r"q=%24([A-Z]+)", re.IGNORECASE)

# CSS selectors for the timeline markup
CANDIDATE_LINK_SELECTOR = 'a[href*="=%24"]'
STATUS_LINK_SELECTOR = 'a[href*="/status/"]'
SOCIAL_CONTEXT_SELECTOR = '[data-testid="socialContext"]'
TIME_SELECTOR = "time[datetime]"
CONTAINER_TAG = "article"

_MEDIA_INDEX_RE = re.compile(r"/(photo|video|analytics|likes|retweets)/\d+$")
_MEDIA_TAIL_RE = re.compile(r"/(photo|video|analytics)$")


def ticker_from_href(href: Optional[str]) -> Optional[str]:
    """Return the upper-cased ticker of a cashtag search link, if any."""
    if not href or "q=%24" not in href:
        return None
    m = TICKER_HREF_RE.search(href)
    if not m:
        return None
    return m.group(1).upper()


def normalize_url(href: str, origin: str = DEFAULT_ORIGIN) -> str:
    """Return the canonical permalink for a status href.

    Relative hrefs are resolved against ``origin``; the query string and any
    trailing media/analytics segments (``/photo/1``, ``/analytics``...) are
    removed. Applying it to its own output returns the same string.
    """
    url = href if href.startswith("http") else origin.rstrip("/") + href
    url = url.split("?")[0]
    while True:
        stripped = _MEDIA_TAIL_RE.sub("", _MEDIA_INDEX_RE.sub("", url))
        if stripped == url:
            return url
        url = stripped


def is_repost_or_reply(container: Tag) -> bool:
    """True when the post is a repost or a reply and must be skipped."""
    indicator = container.select_one(SOCIAL_CONTEXT_SELECTOR)
    if indicator is not None and "repost" in indicator.get_text().lower():
        return True
    return "Replying to @" in container.get_text()


def find_container(link: Tag) -> Optional[Tag]:
    return link.find_parent(CONTAINER_TAG)


def status_url(container: Tag, origin: str = DEFAULT_ORIGIN) -> Optional[str]:
    """Canonical permalink of the first status link inside ``container``."""
    status_link = container.select_one(STATUS_LINK_SELECTOR)
    if status_link is None:
        return None
    href = status_link.get("href")
    if not href:
        return None
    return normalize_url(href, origin)


def canonicalize_link(
    link: Tag,
    captured_at: Optional[str] = None,
    origin: str = DEFAULT_ORIGIN,
) -> Optional[TickerPostPair]:
    """Build a pair from a cashtag search link, or return None.

    Parameters
    ----------
    link : bs4.Tag
        An ``<a>`` element whose href may be a cashtag search link.
    captured_at : str, optional
        ISO timestamp used when the post carries no ``time[datetime]``.
        Defaults to now.
    origin : str
        Base used to absolutize relative permalinks.
    """
    ticker = ticker_from_href(link.get("href"))
    if not ticker:
        return None

    container = find_container(link)
    if container is None:
        return None
    if is_repost_or_reply(container):
        return None

    url = status_url(container, origin)
    if not url:
        return None

    time_el = container.select_one(TIME_SELECTOR)
    timestamp = time_el.get("datetime") if time_el is not None else None
    if not timestamp:
        timestamp = captured_at or utc_now_iso()

    return TickerPostPair(ticker=ticker, url=url, timestamp=timestamp)
