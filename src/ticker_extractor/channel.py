"""
Ordered message channel between the extraction and storage sides.

Messages are delivered FIFO by a single consumer thread, so the storage
handlers never run concurrently with each other. Delivery is best effort:
a closed channel or a missing receiver is logged and ``send()`` returns
False, with no retry.
"""

from __future__ import annotations

import enum
import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .logging_utils import get_logger
from .models import TickerPostPair

log = get_logger("channel")


class MessageType(str, enum.Enum):
    NEW_PAIRS = "NEW_PAIRS"
    RELOAD = "RELOAD"
    EXPORT_NOW = "EXPORT_NOW"
    CLEAR_SESSION_CACHE = "CLEAR_SESSION_CACHE"


@dataclass
class Message:
    type: MessageType
    pairs: List[TickerPostPair] = field(default_factory=list)


Handler = Callable[[Message], None]


class MessageChannel:
    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[Message]" = queue.Queue(maxsize=maxsize)
        self._handlers: Dict[MessageType, List[Handler]] = {}
        self._handlers_lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._closed = False

    def subscribe(self, msg_type: MessageType, handler: Handler) -> None:
        with self._handlers_lock:
            self._handlers.setdefault(msg_type, []).append(handler)

    def unsubscribe(self, msg_type: MessageType, handler: Handler) -> None:
        with self._handlers_lock:
            handlers = self._handlers.get(msg_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def _handlers_for(self, msg_type: MessageType) -> List[Handler]:
        with self._handlers_lock:
            return list(self._handlers.get(msg_type, []))

    def send(self, message: Message) -> bool:
        """Queue a message. Returns False when it cannot be delivered."""
        if self._closed:
            log.warning("channel_send_failed type=%s reason=closed", message.type.value)
            return False
        if not self._handlers_for(message.type):
            log.warning("channel_send_failed type=%s reason=no_receiver", message.type.value)
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            log.warning(
                "channel_send_failed type=%s reason=full size=%d",
                message.type.value,
                self._queue.qsize(),
            )
            return False
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    def _dispatch(self, message: Message) -> None:
        with self._dispatch_lock:
            for handler in self._handlers_for(message.type):
                try:
                    handler(message)
                except Exception as e:
                    log.error(
                        "channel_handler_error type=%s err=%s",
                        message.type.value,
                        e.__class__.__name__,
                        exc_info=True,
                    )

    def drain(self) -> int:
        """Deliver every queued message on the calling thread."""
        delivered = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return delivered
            self._dispatch(message)
            delivered += 1

    def start(self) -> None:
        if self._running:
            log.warning("channel_already_running")
            return
        self._running = True
        self._thread = threading.Thread(target=self._worker_loop, name="channel-consumer", daemon=True)
        self._thread.start()
        log.info("channel_started")

    def close(self, timeout: float = 5.0) -> None:
        """Stop accepting messages, deliver what is queued, stop the consumer."""
        self._closed = True
        if self._running:
            self._running = False
            if self._thread is not None:
                self._thread.join(timeout=timeout)
                self._thread = None
        self.drain()
        log.info("channel_closed")

    def _worker_loop(self) -> None:
        while self._running:
            try:
                message = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            self._dispatch(message)
