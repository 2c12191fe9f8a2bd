"""Ticker extractor package.

Extracts ($TICKER, post URL, timestamp) observations from social timeline
markup, deduplicates them per session and against a persisted aggregate,
exports the aggregate to CSV and ranks the most mentioned tickers.
"""

__all__: list[str] = []
