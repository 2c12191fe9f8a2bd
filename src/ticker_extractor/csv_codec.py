"""CSV export/import format for the aggregate.

Format::

    Ticker,Post URL,Timestamp
    $OSCR,https://x.com/user/status/123,2024-01-01T00:00:00Z

Rows are written newest first. Parsing is a plain comma split, not the
``csv`` module: quoted fields with embedded commas are not supported, and
files written by this module never contain any.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .logging_utils import get_logger
from .models import TickerPostPair, utc_now_iso

log = get_logger("csv_codec")

CSV_HEADER = "Ticker,Post URL,Timestamp"


def encode_csv(pairs: Iterable[TickerPostPair], newest_first: bool = True) -> str:
    """Serialize pairs given in store (insertion) order.

    The ticker is written with a ``$`` prefix and a missing timestamp as an
    empty field.
    """
    rows = list(pairs)
    if newest_first:
        rows.reverse()
    lines = [CSV_HEADER]
    for pair in rows:
        lines.append(f"${pair.ticker},{pair.url},{pair.timestamp or ''}")
    return "\n".join(lines) + "\n"


def _strip_quotes(value: str) -> str:
    if value[:1] in {'"', "'"}:
        value = value[1:]
    if value[-1:] in {'"', "'"}:
        value = value[:-1]
    return value


def decode_line(line: str, captured_at: str) -> Optional[TickerPostPair]:
    """Parse one data row. Returns None for rows that cannot form a pair."""
    parts = line.split(",")
    if len(parts) < 2:
        return None

    ticker = parts[0]
    if ticker.startswith("$"):
        ticker = ticker[1:]
    ticker = ticker.strip().upper()
    url = _strip_quotes(parts[1].strip())
    timestamp = parts[2].strip() if len(parts) >= 3 else captured_at

    if not ticker or not url:
        return None
    return TickerPostPair(ticker=ticker, url=url, timestamp=timestamp or None)


def decode_csv(text: str, captured_at: Optional[str] = None) -> List[TickerPostPair]:
    """Parse CSV text into pairs, silently skipping malformed rows.

    The first line is always treated as the header. Rows without a
    timestamp column get ``captured_at`` (default: now).
    """
    captured_at = captured_at or utc_now_iso()
    lines = text.strip().split("\n")
    pairs: List[TickerPostPair] = []
    skipped = 0

    for raw in lines[1:]:
        line = raw.strip()
        if not line:
            continue
        pair = decode_line(line, captured_at)
        if pair is None:
            skipped += 1
            continue
        pairs.append(pair)

    log.debug("csv_decoded lines=%d pairs=%d skipped=%d", len(lines), len(pairs), skipped)
    return pairs
