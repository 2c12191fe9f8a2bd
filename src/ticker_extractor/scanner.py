"""Walk a document snapshot and collect the pairs not yet emitted this session."""

from __future__ import annotations

from typing import List, Union

from bs4 import BeautifulSoup

from .canonicalize import (
    CANDIDATE_LINK_SELECTOR,
    DEFAULT_ORIGIN,
    canonicalize_link,
)
from .logging_utils import get_logger
from .models import TickerPostPair, utc_now_iso
from .session_cache import SessionCache

log = get_logger("scanner")

Document = Union[str, bytes, BeautifulSoup]


def _as_soup(document: Document) -> BeautifulSoup:
    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document, "html.parser")


class ExtractionScanner:
    """Extract new ticker/post pairs from a timeline document.

    The scanner only reads the document and updates its session cache; the
    resulting batch is handed to the storage side over the message channel.
    """

    def __init__(self, session_cache: SessionCache, origin: str = DEFAULT_ORIGIN):
        self.session_cache = session_cache
        self.origin = origin

    def scan(self, document: Document) -> List[TickerPostPair]:
        """Return the pairs first seen in this pass, in document order."""
        soup = _as_soup(document)
        captured_at = utc_now_iso()
        batch: List[TickerPostPair] = []
        candidates = 0
        rejected = 0

        for link in soup.select(CANDIDATE_LINK_SELECTOR):
            href = link.get("href") or ""
            if "q=%24" not in href:
                continue
            candidates += 1
            pair = canonicalize_link(link, captured_at=captured_at, origin=self.origin)
            if pair is None:
                rejected += 1
                continue
            if self.session_cache.seen(pair.key):
                continue
            self.session_cache.mark_seen(pair.key)
            batch.append(pair)

        log.debug(
            "scan_complete candidates=%d rejected=%d new=%d",
            candidates,
            rejected,
            len(batch),
        )
        return batch

