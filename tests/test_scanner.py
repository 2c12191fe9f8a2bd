"""Tests for document scanning and the session cache."""

import pytest
from bs4 import BeautifulSoup

from ticker_extractor.scanner import ExtractionScanner
from ticker_extractor.session_cache import SessionCache
from tests.conftest import build_article, build_page


@pytest.fixture
def scanner():
    return ExtractionScanner(SessionCache(maxsize=1000))


class TestSessionCache:
    def test_mark_and_query(self):
        cache = SessionCache(maxsize=10)
        assert cache.seen("A|u") is False
        cache.mark_seen("A|u")
        assert cache.seen("A|u") is True
        assert len(cache) == 1

    def test_clear(self):
        cache = SessionCache(maxsize=10)
        cache.mark_seen("A|u")
        cache.clear()
        assert cache.seen("A|u") is False
        assert len(cache) == 0

    def test_eviction_is_bounded(self):
        cache = SessionCache(maxsize=2)
        for key in ("a", "b", "c"):
            cache.mark_seen(key)
        assert len(cache) == 2
        assert cache.seen("c") is True

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            SessionCache(maxsize=0)


class TestScan:
    def test_document_order(self, scanner):
        html = build_page(
            build_article("OSCR", "/a/status/1"),
            build_article("AAPL", "/b/status/2"),
            build_article("TSLA", "/c/status/3"),
        )
        batch = scanner.scan(html)
        assert [p.ticker for p in batch] == ["OSCR", "AAPL", "TSLA"]

    def test_second_pass_emits_nothing(self, scanner):
        html = build_page(build_article("OSCR", "/a/status/1"))
        assert len(scanner.scan(html)) == 1
        assert scanner.scan(html) == []

    def test_only_new_pairs_in_later_pass(self, scanner):
        first = build_page(build_article("OSCR", "/a/status/1"))
        second = build_page(
            build_article("OSCR", "/a/status/1"),
            build_article("AAPL", "/b/status/2"),
        )
        scanner.scan(first)
        batch = scanner.scan(second)
        assert [p.key for p in batch] == ["AAPL|https://x.com/b/status/2"]

    def test_cleared_cache_reemits(self, scanner):
        html = build_page(build_article("OSCR", "/a/status/1"))
        scanner.scan(html)
        scanner.session_cache.clear()
        assert len(scanner.scan(html)) == 1

    def test_two_tickers_in_one_post(self, scanner):
        html = build_page(
            "<article><a href='/u/status/7'><time datetime='2024-02-02T00:00:00Z'></time></a>"
            "<a href='/search?q=%24AAPL'>$AAPL</a> vs <a href='/search?q=%24MSFT'>$MSFT</a>"
            "<a href='/search?q=%24aapl'>$aapl</a></article>"
        )
        batch = scanner.scan(html)
        assert [p.key for p in batch] == [
            "AAPL|https://x.com/u/status/7",
            "MSFT|https://x.com/u/status/7",
        ]

    def test_rejections_skipped(self, scanner):
        html = build_page(
            build_article("OSCR", "/a/status/1", body="Replying to @someone"),
            build_article("GME", "/b/status/2", social_context="Bob reposted"),
            build_article("AMC", None),
            build_article("NVDA", "/d/status/4"),
        )
        assert [p.ticker for p in scanner.scan(html)] == ["NVDA"]

    def test_free_text_cashtag_ignored(self, scanner):
        html = build_page(build_article(None, "/a/status/1", body="I like $OSCR"))
        assert scanner.scan(html) == []

    def test_accepts_parsed_soup(self, scanner):
        soup = BeautifulSoup(build_page(build_article()), "html.parser")
        assert len(scanner.scan(soup)) == 1

    def test_scan_does_not_need_store(self, scanner):
        assert scanner.scan("<html></html>") == []

