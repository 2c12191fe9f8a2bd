"""Tests for the message channel."""

import threading

from ticker_extractor.channel import Message, MessageChannel, MessageType


def test_fifo_delivery_on_drain(make_pair):
    channel = MessageChannel()
    got = []
    channel.subscribe(MessageType.NEW_PAIRS, lambda m: got.append(m.pairs[0].ticker))
    for t in ("A", "B", "C"):
        assert channel.send(Message(MessageType.NEW_PAIRS, [make_pair(t)]))
    assert channel.pending() == 3
    assert channel.drain() == 3
    assert got == ["A", "B", "C"]


def test_no_receiver():
    channel = MessageChannel()
    assert channel.send(Message(MessageType.RELOAD)) is False
    assert channel.pending() == 0


def test_unsubscribe():
    channel = MessageChannel()
    handler = lambda m: None  # noqa: E731
    channel.subscribe(MessageType.RELOAD, handler)
    channel.unsubscribe(MessageType.RELOAD, handler)
    assert channel.send(Message(MessageType.RELOAD)) is False


def test_closed_channel_rejects_and_delivers_queued():
    channel = MessageChannel()
    got = []
    channel.subscribe(MessageType.EXPORT_NOW, got.append)
    channel.send(Message(MessageType.EXPORT_NOW))
    channel.close()
    assert len(got) == 1
    assert channel.send(Message(MessageType.EXPORT_NOW)) is False


def test_full_queue():
    channel = MessageChannel(maxsize=1)
    channel.subscribe(MessageType.RELOAD, lambda m: None)
    assert channel.send(Message(MessageType.RELOAD))
    assert channel.send(Message(MessageType.RELOAD)) is False


def test_handler_error_does_not_stop_others():
    channel = MessageChannel()
    got = []

    def bad(m):
        raise ValueError("bad")

    channel.subscribe(MessageType.RELOAD, bad)
    channel.subscribe(MessageType.RELOAD, got.append)
    channel.send(Message(MessageType.RELOAD))
    channel.send(Message(MessageType.RELOAD))
    channel.drain()
    assert len(got) == 2


def test_consumer_thread(make_pair):
    channel = MessageChannel()
    got = []
    done = threading.Event()

    def handler(m):
        got.append(m.pairs[0].url)
        if len(got) == 5:
            done.set()

    channel.subscribe(MessageType.NEW_PAIRS, handler)
    channel.start()
    try:
        for i in range(5):
            channel.send(Message(MessageType.NEW_PAIRS, [make_pair("T", i)]))
        assert done.wait(2)
    finally:
        channel.close()
    assert got == [f"https://x.com/user/status/{i}" for i in range(5)]
