"""Storage and extraction services wired over the message channel.

``StorageService`` owns the aggregate store and reacts to NEW_PAIRS,
RELOAD and EXPORT_NOW. ``ExtractionService`` owns the session cache and
scanner, rescans on debounced change notifications and reacts to
CLEAR_SESSION_CACHE. ``Pipeline`` builds both from settings.

User-facing operations (CSV import, export, clear) never raise; they
return a ``StatusMessage`` for display.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from .canonicalize import DEFAULT_ORIGIN
from .channel import Message, MessageChannel, MessageType
from .config import Settings, get_settings
from .csv_codec import decode_csv
from .exporter import CsvFileExporter
from .logging_utils import get_logger
from .models import TickerPostPair
from .ranking import TickerMention, top_mentions
from .scanner import Document, ExtractionScanner
from .scheduler import Debouncer, PeriodicTask
from .session_cache import SessionCache
from .store import AggregateStore, JsonFileKeyValueStore

log = get_logger("service")


@dataclass
class StatusMessage:
    text: str
    level: str = "info"  # info | success | error

    @property
    def ok(self) -> bool:
        return self.level != "error"


class StorageService:
    """Storage side: merges batches, exports, imports CSV, answers queries."""

    def __init__(
        self,
        store: AggregateStore,
        exporter: CsvFileExporter,
        channel: Optional[MessageChannel] = None,
    ):
        self.store = store
        self.exporter = exporter
        self.store.on_auto_export = self._auto_export
        self._sweep: Optional[PeriodicTask] = None
        self._has_auto_loaded = False
        if channel is not None:
            channel.subscribe(MessageType.NEW_PAIRS, self.handle_new_pairs)
            channel.subscribe(MessageType.RELOAD, self.handle_reload)
            channel.subscribe(MessageType.EXPORT_NOW, self.handle_export_now)

    # -- message handlers --------------------------------------------------

    def handle_new_pairs(self, message: Message) -> int:
        return self.store.merge_incremental(message.pairs)

    def handle_reload(self, message: Optional[Message] = None) -> int:
        return self.store.reload()

    def handle_export_now(self, message: Optional[Message] = None) -> StatusMessage:
        return self.export_now()

    # -- export ------------------------------------------------------------

    def _auto_export(self, snapshot: List[TickerPostPair]) -> Optional[Path]:
        return self.exporter.export(snapshot)

    def export_now(self) -> StatusMessage:
        """Force an export; the emission counter resets even if nothing was written."""
        snapshot = self.store.snapshot()
        path = self.exporter.export(snapshot)
        self.store.reset_emission_counter()
        if not snapshot:
            return StatusMessage("Nothing to export", "info")
        if path is None:
            return StatusMessage("Export failed", "error")
        return StatusMessage(f"CSV exported to {path}", "success")

    # -- CSV import ----------------------------------------------------------

    def import_csv_text(self, csv_text: str) -> StatusMessage:
        if not csv_text or not csv_text.strip():
            return StatusMessage("Please enter CSV data", "error")
        pairs = decode_csv(csv_text)
        if not pairs:
            return StatusMessage("No valid pairs found in CSV", "error")
        result = self.store.merge_bulk(pairs)
        return StatusMessage(
            f"Added {result.added} new pairs ({result.duplicates} duplicates skipped)",
            "success",
        )

    def import_csv_file(self, path: Path) -> StatusMessage:
        path = Path(path)
        if not path.name.lower().endswith(".csv"):
            return StatusMessage("Please select a CSV file", "error")
        try:
            csv_text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.warning("csv_read_failed path=%s err=%s", path, e.__class__.__name__)
            return StatusMessage("Error reading file", "error")
        log.info("csv_file_selected path=%s size=%d", path, len(csv_text))
        return self.import_csv_text(csv_text)

    def import_existing_cache(self) -> Optional[StatusMessage]:
        """Import the last export file once per service; a missing file is ignored."""
        if self._has_auto_loaded:
            return None
        path = self.exporter.path
        if not path.exists():
            log.debug("auto_load_skipped path=%s reason=missing", path)
            return None
        status = self.import_csv_file(path)
        if status.ok:
            self._has_auto_loaded = True
        log.info("auto_load_existing_csv path=%s status=%s", path, status.text)
        return status

    # -- other operations ----------------------------------------------------

    def clear_all(self, confirmed: bool = False) -> StatusMessage:
        if not confirmed:
            return StatusMessage(
                "Confirmation required to clear all stored ticker pairs", "error"
            )
        self.store.clear()
        return StatusMessage("All data cleared", "success")

    def pair_count_text(self) -> str:
        count = self.store.size()
        if count == 0:
            return "No data stored"
        return f"{count} ticker pairs"

    def top_mentions(
        self, days_back: int = 0, now: Optional[datetime] = None, limit: int = 10
    ) -> List[TickerMention]:
        return top_mentions(self.store.snapshot(), days_back=days_back, now=now, limit=limit)

    def start_persistence_sweep(self, interval: float) -> None:
        if self._sweep is None:
            self._sweep = PeriodicTask(interval, self.store.persist, name="persist-sweep")
        self._sweep.start()

    def close(self) -> None:
        if self._sweep is not None:
            self._sweep.stop()
            self._sweep = None
        self.store.persist()
        self.store.close()


class ExtractionService:
    """Extraction side: one instance per page session."""

    def __init__(
        self,
        channel: MessageChannel,
        session_cache: Optional[SessionCache] = None,
        origin: str = DEFAULT_ORIGIN,
        debounce_seconds: float = 0.5,
        document_provider: Optional[Callable[[], Optional[Document]]] = None,
    ):
        self.channel = channel
        self.session_cache = session_cache or SessionCache()
        self.scanner = ExtractionScanner(self.session_cache, origin=origin)
        self.document_provider = document_provider
        self.debouncer = Debouncer(debounce_seconds, self._rescan, name="rescan")
        channel.subscribe(MessageType.CLEAR_SESSION_CACHE, self.handle_clear_session_cache)

    def handle_clear_session_cache(self, message: Optional[Message] = None) -> None:
        self.session_cache.clear()

    def extract(self, document: Document) -> List[TickerPostPair]:
        """Scan once and send any new pairs. Returns the batch that was found."""
        batch = self.scanner.scan(document)
        if batch:
            if not self.channel.send(Message(MessageType.NEW_PAIRS, batch)):
                log.warning("new_pairs_not_delivered count=%d", len(batch))
        return batch

    def notify_changed(self) -> None:
        """Document possibly changed; rescan after the quiet period."""
        self.debouncer.trigger()

    def _rescan(self) -> None:
        if self.document_provider is None:
            return
        document = self.document_provider()
        if document is None:
            return
        self.extract(document)

    def close(self) -> None:
        self.debouncer.cancel()


@dataclass
class Pipeline:
    channel: MessageChannel
    storage: StorageService
    extraction: ExtractionService

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        persist_async: bool = True,
        document_provider: Optional[Callable[[], Optional[Document]]] = None,
    ) -> "Pipeline":
        settings = settings or get_settings()
        channel = MessageChannel()
        store = AggregateStore(
            JsonFileKeyValueStore(Path(settings.state_path)),
            auto_export_threshold=settings.auto_export_threshold,
            persist_async=persist_async,
        )
        exporter = CsvFileExporter(Path(settings.export_dir), settings.export_filename)
        storage = StorageService(store, exporter, channel)
        extraction = ExtractionService(
            channel,
            session_cache=SessionCache(settings.session_cache_size),
            origin=settings.site_origin,
            debounce_seconds=settings.debounce_seconds,
            document_provider=document_provider,
        )
        return cls(channel=channel, storage=storage, extraction=extraction)

    def send(self, msg_type: MessageType) -> bool:
        return self.channel.send(Message(msg_type))

    def close(self) -> None:
        self.extraction.close()
        self.channel.close()
        self.storage.close()
