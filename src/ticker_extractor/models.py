from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil import parser as _dtparse


def utc_now_iso(now: Optional[datetime] = None) -> str:
    """Return ``now`` (default: current UTC time) as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Returns None for empty or unparsable values. Naive values are taken as UTC.
    """
    if not value:
        return None
    try:
        dt = _dtparse.isoparse(value.strip())
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def pair_key(ticker: str, url: str) -> str:
    return f"{ticker}|{url}"


@dataclass(frozen=True)
class TickerPostPair:
    """One observation of a ticker mentioned in a post.

    ``ticker`` is stored upper-case without the ``$`` prefix and ``url`` is
    the canonical post permalink. Two pairs with the same ticker and url are
    the same observation whatever their timestamps.
    """

    ticker: str
    url: str
    timestamp: Optional[str] = None

    @property
    def key(self) -> str:
        return pair_key(self.ticker, self.url)

    def parsed_timestamp(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"ticker": self.ticker, "url": self.url, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TickerPostPair":
        ticker = str(d.get("ticker") or "").strip().upper()
        url = str(d.get("url") or "").strip()
        ts = d.get("timestamp")
        return cls(ticker=ticker, url=url, timestamp=str(ts) if ts else None)
