"""Top mentioned tickers within a time window."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from .models import TickerPostPair


@dataclass
class TickerMention:
    ticker: str
    count: int = 0
    latest: Optional[datetime] = None


def in_window(pair: TickerPostPair, cutoff: Optional[datetime]) -> bool:
    """Pairs without a usable timestamp are always inside the window."""
    if cutoff is None:
        return True
    ts = pair.parsed_timestamp()
    if ts is None:
        return True
    return ts >= cutoff


def window_cutoff(days_back: int, now: Optional[datetime] = None) -> Optional[datetime]:
    if days_back <= 0:
        return None
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - timedelta(days=days_back)


def top_mentions(
    pairs: Iterable[TickerPostPair],
    days_back: int = 0,
    now: Optional[datetime] = None,
    limit: int = 10,
) -> List[TickerMention]:
    """Rank tickers by number of pairs inside the window.

    Parameters
    ----------
    pairs : iterable of TickerPostPair
        Usually ``AggregateStore.snapshot()``.
    days_back : int
        Window size in days; 0 or less means all time.
    now : datetime, optional
        Reference instant for the window (default: current UTC time).
    limit : int
        Maximum number of tickers returned.

    Returns
    -------
    list of TickerMention
        Sorted by count descending; equal counts keep first-encounter order.
    """
    cutoff = window_cutoff(days_back, now)
    groups: Dict[str, TickerMention] = {}

    for pair in pairs:
        if not in_window(pair, cutoff):
            continue
        ticker = pair.ticker.upper()
        mention = groups.get(ticker)
        if mention is None:
            mention = groups[ticker] = TickerMention(ticker=ticker)
        mention.count += 1
        ts = pair.parsed_timestamp()
        if ts is not None and (mention.latest is None or ts > mention.latest):
            mention.latest = ts

    ranked = sorted(groups.values(), key=lambda m: m.count, reverse=True)
    return ranked[:limit]


def window_label(days_back: int) -> str:
    if days_back <= 0:
        return "All time"
    return f"Last {days_back} day{'s' if days_back > 1 else ''}"


def format_report(mentions: List[TickerMention], days_back: int = 0) -> str:
    if not mentions:
        return "No tickers found for the selected time range."
    lines = [f"Top Mentions ({window_label(days_back)})"]
    for m in mentions:
        line = f"${m.ticker:<6} ({m.count} mentions)"
        if m.latest is not None:
            line += f"  Latest: {m.latest.strftime('%Y-%m-%d %H:%M:%S UTC')}"
        lines.append(line)
    return "\n".join(lines)
