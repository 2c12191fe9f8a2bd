"""Aggregate store: the authoritative canonical-key → pair mapping.

This module owns merge semantics for both live ingestion and bulk CSV
import, the emission counter that drives automatic export, and the durable
key-value collaborators the aggregate is persisted to.

Persisted layout (one record under ``STORAGE_KEY``)::

    {"tickerPairs": {"OSCR|https://x.com/u/status/1":
                        {"ticker": "OSCR", "url": "...", "timestamp": "..."}}}

Writes are fire-and-forget: a merge returns once the in-memory map is
updated, the durable write runs on a single background worker, and a
failed write is logged without rolling anything back.
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import get_settings
from .logging_utils import get_logger
from .models import TickerPostPair

log = get_logger("store")

STORAGE_KEY = "tickerPairs"


# --------------------------------------------------------------------------
# Durable key-value collaborators


class KeyValueStore:
    """Minimal durable key-value interface used to persist the aggregate."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(data or {})

    def get(self, key: str) -> Optional[Any]:
        value = self.data.get(key)
        # hand out a copy so callers never alias stored state
        return json.loads(json.dumps(value)) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        self.data[key] = json.loads(json.dumps(value))

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """Key-value records kept in a single JSON document on disk.

    Writes go to a temp file that is then renamed over the original, so a
    crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError(f"state file {self.path} does not hold a JSON object")
        return loaded

    def _read_for_update(self) -> Dict[str, Any]:
        """Document to modify; an unreadable file is moved aside as ``*.corrupt``."""
        try:
            return self._read()
        except ValueError as e:
            corrupt = self.path.with_suffix(self.path.suffix + ".corrupt")
            try:
                self.path.replace(corrupt)
            except OSError:
                log.warning("state_file_quarantine_failed path=%s", self.path)
            log.warning(
                "state_file_corrupt path=%s moved_to=%s err=%s",
                self.path,
                corrupt,
                e.__class__.__name__,
            )
            return {}

    def _write(self, doc: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)
        temp_file.replace(self.path)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            doc = self._read_for_update()
            doc[key] = value
            self._write(doc)

    def delete(self, key: str) -> None:
        with self._lock:
            doc = self._read_for_update()
            if key in doc:
                del doc[key]
                self._write(doc)


# --------------------------------------------------------------------------
# Aggregate


@dataclass
class BulkMergeResult:
    added: int
    duplicates: int


class AggregateStore:
    """Insertion-ordered map of canonical key → TickerPostPair.

    First-seen wins: a pair whose key is already present is discarded, even
    if it carries a different timestamp.

    Parameters
    ----------
    kv : KeyValueStore
        Durable collaborator the whole map is written to under ``storage_key``.
    auto_export_threshold : int, optional
        Emission count at which ``on_auto_export`` fires (default from
        settings, 20).
    on_auto_export : callable, optional
        Receives a newest-last snapshot when the threshold is reached.
    persist_async : bool
        When False, durable writes happen inline (useful for one-shot CLI
        runs and tests).
    hydrate : bool
        Load the existing aggregate from ``kv`` on construction.
    """

    # upper bound on waiting for queued writes before a reload reads
    FLUSH_TIMEOUT = 10.0

    def __init__(
        self,
        kv: KeyValueStore,
        storage_key: str = STORAGE_KEY,
        auto_export_threshold: Optional[int] = None,
        on_auto_export: Optional[Callable[[List[TickerPostPair]], Any]] = None,
        persist_async: bool = True,
        hydrate: bool = True,
    ):
        self.kv = kv
        self.storage_key = storage_key
        self.auto_export_threshold = (
            auto_export_threshold
            if auto_export_threshold is not None
            else get_settings().auto_export_threshold
        )
        self.on_auto_export = on_auto_export
        self._pairs: Dict[str, TickerPostPair] = {}
        self._emission_count = 0
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="store-persist")
            if persist_async
            else None
        )
        self._pending: List[Future] = []
        if hydrate:
            self.reload()

    # -- queries ---------------------------------------------------------

    def snapshot(self) -> List[TickerPostPair]:
        """All pairs in insertion order (oldest discovered first)."""
        with self._lock:
            return list(self._pairs.values())

    def size(self) -> int:
        with self._lock:
            return len(self._pairs)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._pairs

    @property
    def emission_count(self) -> int:
        return self._emission_count

    # -- mutations -------------------------------------------------------

    def _insert_new(self, pairs: Iterable[TickerPostPair]) -> int:
        added = 0
        for pair in pairs:
            key = pair.key
            if key in self._pairs:
                continue
            self._pairs[key] = pair
            added += 1
        return added

    def merge_incremental(self, batch: Iterable[TickerPostPair]) -> int:
        """Merge a scanner batch and return how many pairs were new.

        The auto-export check runs once for the whole batch.
        """
        with self._lock:
            added = self._insert_new(batch)
            self._emission_count += added
            export_due = added > 0 and self._emission_count >= self.auto_export_threshold

        if added:
            log.debug(
                "merge_incremental added=%d size=%d emitted=%d",
                added,
                self.size(),
                self._emission_count,
            )
            self.persist()
        if export_due:
            self._auto_export()
        return added

    def merge_bulk(self, pairs: Iterable[TickerPostPair]) -> BulkMergeResult:
        """Merge an imported set of pairs (CSV re-ingestion).

        A bulk import is a resynchronisation, so the emission counter is
        reset and no automatic export is triggered.
        """
        pairs = list(pairs)
        with self._lock:
            added = self._insert_new(pairs)
            self._emission_count = 0
        if added:
            self.persist()
        result = BulkMergeResult(added=added, duplicates=len(pairs) - added)
        log.info(
            "merge_bulk added=%d duplicates=%d size=%d",
            result.added,
            result.duplicates,
            self.size(),
        )
        return result

    def clear(self) -> None:
        with self._lock:
            self._pairs = {}
            self._emission_count = 0
        self._submit(self._delete_record)
        log.info("store_cleared")

    def reset_emission_counter(self) -> None:
        with self._lock:
            self._emission_count = 0

    def reload(self) -> int:
        """Re-hydrate from durable storage; a failed read leaves the store empty.

        Scheduled writes and deletes are waited for first so the read sees
        every earlier mutation.
        """
        if not self.flush(timeout=self.FLUSH_TIMEOUT):
            log.warning("store_reload_pending_writes key=%s", self.storage_key)
        try:
            raw = self.kv.get(self.storage_key)
        except Exception as e:
            log.error(
                "store_load_error key=%s err=%s",
                self.storage_key,
                e.__class__.__name__,
                exc_info=True,
            )
            raw = None

        pairs: Dict[str, TickerPostPair] = {}
        skipped = 0
        if isinstance(raw, dict):
            for record in raw.values():
                if not isinstance(record, dict):
                    skipped += 1
                    continue
                pair = TickerPostPair.from_dict(record)
                if not pair.ticker or not pair.url:
                    skipped += 1
                    continue
                pairs.setdefault(pair.key, pair)
        elif raw is not None:
            log.warning("store_invalid_structure key=%s", self.storage_key)

        with self._lock:
            self._pairs = pairs
            self._emission_count = 0
        if raw is None:
            log.info("store_no_stored_data")
        else:
            log.info("store_loaded pairs=%d skipped=%d", len(pairs), skipped)
        return len(pairs)

    # -- persistence -----------------------------------------------------

    def _serialize(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {key: pair.to_dict() for key, pair in self._pairs.items()}

    def _write_record(self, payload: Dict[str, Dict[str, Any]]) -> None:
        try:
            self.kv.set(self.storage_key, payload)
            log.debug("store_saved pairs=%d", len(payload))
        except Exception as e:
            log.error(
                "store_save_error pairs=%d err=%s",
                len(payload),
                e.__class__.__name__,
                exc_info=True,
            )

    def _delete_record(self) -> None:
        try:
            self.kv.delete(self.storage_key)
        except Exception as e:
            log.error("store_delete_error err=%s", e.__class__.__name__, exc_info=True)

    def _submit(self, fn: Callable[..., None], *args: Any) -> None:
        if self._executor is None:
            fn(*args)
            return
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError:
            # executor already shut down
            fn(*args)
            return
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def persist(self) -> None:
        """Schedule a durable write of a point-in-time copy of the map.

        An empty map is never written; ``clear()`` removes the record instead.
        """
        payload = self._serialize()
        if not payload:
            return
        self._submit(self._write_record, payload)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled writes. Returns False if some are still running."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # -- export trigger --------------------------------------------------

    def _auto_export(self) -> None:
        count = self._emission_count
        log.info("auto_export_triggered new_pairs=%d", count)
        try:
            if self.on_auto_export is not None:
                self.on_auto_export(self.snapshot())
        except Exception as e:
            log.error("auto_export_failed err=%s", e.__class__.__name__, exc_info=True)
        finally:
            self.reset_emission_counter()
