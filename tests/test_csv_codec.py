"""Tests for CSV export/import."""

from ticker_extractor.csv_codec import CSV_HEADER, decode_csv, encode_csv
from ticker_extractor.models import TickerPostPair
from ticker_extractor.store import AggregateStore, MemoryKeyValueStore

EXAMPLE = """Ticker,Post URL,Timestamp
$OSCR,https://x.com/user/status/123,2024-01-01T00:00:00Z
$OSCR,https://x.com/user/status/123,2024-01-05T00:00:00Z
$AAPL,https://x.com/user2/status/456,2024-01-02T00:00:00Z
"""


def test_encode_newest_first():
    pairs = [
        TickerPostPair("OSCR", "https://x.com/a/status/1", "2024-01-01T00:00:00Z"),
        TickerPostPair("AAPL", "https://x.com/b/status/2", None),
    ]
    assert encode_csv(pairs) == (
        f"{CSV_HEADER}\n"
        "$AAPL,https://x.com/b/status/2,\n"
        "$OSCR,https://x.com/a/status/1,2024-01-01T00:00:00Z\n"
    )


def test_encode_insertion_order_when_requested():
    pairs = [TickerPostPair("A", "u1", "t"), TickerPostPair("B", "u2", "t")]
    assert encode_csv(pairs, newest_first=False).splitlines()[1:] == ["$A,u1,t", "$B,u2,t"]


def test_encode_empty_is_header_only():
    assert encode_csv([]) == CSV_HEADER + "\n"


def test_example_merge():
    store = AggregateStore(MemoryKeyValueStore(), persist_async=False)
    store.merge_bulk(decode_csv(EXAMPLE))
    snap = {p.key: p for p in store.snapshot()}
    assert set(snap) == {
        "OSCR|https://x.com/user/status/123",
        "AAPL|https://x.com/user2/status/456",
    }
    assert snap["OSCR|https://x.com/user/status/123"].timestamp == "2024-01-01T00:00:00Z"


def test_decode_cleanup_rules():
    text = (
        "Ticker,Post URL,Timestamp\r\n"
        "  $oscr , 'https://x.com/u/status/1' ,2024-01-01T00:00:00Z \r\n"
        "\r\n"
        'AAPL,"https://x.com/u/status/2"\r\n'
        "lonely-field\r\n"
        "$,https://x.com/u/status/3,2024\r\n"
        "$MSFT,  ,2024\r\n"
    )
    pairs = decode_csv(text, captured_at="2030-01-01T00:00:00.000Z")
    assert pairs == [
        TickerPostPair("OSCR", "https://x.com/u/status/1", "2024-01-01T00:00:00Z"),
        TickerPostPair("AAPL", "https://x.com/u/status/2", "2030-01-01T00:00:00.000Z"),
    ]


def test_decode_header_only_and_blank():
    assert decode_csv(CSV_HEADER) == []
    assert decode_csv("") == []


def test_decode_empty_timestamp_field_is_absent():
    pairs = decode_csv(f"{CSV_HEADER}\n$A,https://x.com/u/status/1,\n")
    assert pairs[0].timestamp is None


def test_roundtrip_preserves_identities_and_timestamps():
    source = AggregateStore(MemoryKeyValueStore(), persist_async=False)
    source.merge_incremental(
        [
            TickerPostPair("OSCR", "https://x.com/a/status/1", "2024-01-01T00:00:00Z"),
            TickerPostPair("AAPL", "https://x.com/b/status/2", None),
            TickerPostPair("AAPL", "https://x.com/c/status/3", "2024-03-01T10:00:00.000Z"),
        ]
    )
    restored = AggregateStore(MemoryKeyValueStore(), persist_async=False)
    restored.merge_bulk(decode_csv(encode_csv(source.snapshot())))

    assert {p.key for p in restored.snapshot()} == {p.key for p in source.snapshot()}
    ts = {p.key: p.timestamp for p in restored.snapshot()}
    assert ts["OSCR|https://x.com/a/status/1"] == "2024-01-01T00:00:00Z"
    assert ts["AAPL|https://x.com/c/status/3"] == "2024-03-01T10:00:00.000Z"
