# -*- coding: utf-8 -*-
"""Ticker extractor command line runner."""

from __future__ import annotations

# stdlib
import argparse
import os
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

# Load .env early so config is available to subsequent imports.
from dotenv import load_dotenv

# If DOTENV_FILE is set, load that; otherwise default to .env
_env_file = os.getenv("DOTENV_FILE")
if _env_file:
    load_dotenv(_env_file)
else:
    load_dotenv()

from .channel import MessageType  # noqa: E402
from .config import Settings, reload_settings  # noqa: E402
from .logging_utils import get_logger, setup_logging  # noqa: E402
from .ranking import format_report  # noqa: E402
from .service import Pipeline, StatusMessage  # noqa: E402

log = get_logger("runner")

STOP = False


def _sig_handler(signum, frame):
    """Graceful shutdown handler for SIGINT/SIGTERM signals."""
    global STOP
    sig_name = signal.Signals(signum).name
    print(f"\n[SHUTDOWN] Received {sig_name}, stopping...", file=sys.stderr)
    STOP = True
    log.warning("shutdown_signal_received signal=%s", sig_name)


def _print_status(status: StatusMessage) -> int:
    stream = sys.stderr if status.level == "error" else sys.stdout
    print(status.text, file=stream)
    return 0 if status.ok else 1


def _auto_load(pipeline: Pipeline, settings: Settings) -> None:
    if settings.feature_auto_load_csv:
        pipeline.storage.import_existing_cache()


def cmd_scan(pipeline: Pipeline, settings: Settings, args: argparse.Namespace) -> int:
    _auto_load(pipeline, settings)
    total = 0
    for name in args.files:
        try:
            html = Path(name).read_text(encoding="utf-8")
        except OSError as e:
            log.warning("snapshot_read_failed path=%s err=%s", name, e.__class__.__name__)
            print(f"Error reading {name}", file=sys.stderr)
            continue
        batch = pipeline.extraction.extract(html)
        pipeline.channel.drain()
        total += len(batch)
        log.info("snapshot_scanned path=%s new=%d", name, len(batch))
    print(f"Found {total} new pairs ({pipeline.storage.pair_count_text()})")
    return 0


def cmd_watch(pipeline: Pipeline, settings: Settings, args: argparse.Namespace) -> int:
    global STOP
    STOP = False
    path = Path(args.file)

    def _read_snapshot() -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            log.warning("snapshot_read_failed path=%s err=%s", path, e.__class__.__name__)
            return None

    pipeline.extraction.document_provider = _read_snapshot
    try:
        signal.signal(signal.SIGINT, _sig_handler)
        signal.signal(signal.SIGTERM, _sig_handler)
    except ValueError as e:
        # only the main thread may install handlers
        log.debug("signal_handlers_not_installed err=%s", e)

    _auto_load(pipeline, settings)
    pipeline.channel.start()
    pipeline.storage.start_persistence_sweep(settings.persist_interval_seconds)

    last_mtime: Optional[float] = None
    deadline = time.time() + args.duration if args.duration else None
    log.info("watch_started path=%s interval=%.2fs", path, args.interval)
    while not STOP:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            mtime = None
        if mtime is not None and mtime != last_mtime:
            last_mtime = mtime
            pipeline.extraction.notify_changed()
        if deadline is not None and time.time() >= deadline:
            break
        time.sleep(args.interval)

    pipeline.extraction.debouncer.flush()
    # deliver anything still queued before reporting
    pipeline.channel.close()
    log.info("watch_stopped path=%s", path)
    print(pipeline.storage.pair_count_text())
    return 0


def cmd_import(pipeline: Pipeline, settings: Settings, args: argparse.Namespace) -> int:
    return _print_status(pipeline.storage.import_csv_file(Path(args.csv)))


def cmd_export(pipeline: Pipeline, settings: Settings, args: argparse.Namespace) -> int:
    return _print_status(pipeline.storage.export_now())


def cmd_top(pipeline: Pipeline, settings: Settings, args: argparse.Namespace) -> int:
    if pipeline.storage.store.size() == 0:
        return _print_status(StatusMessage("No data to analyze", "error"))
    limit = args.limit or settings.top_n
    mentions = pipeline.storage.top_mentions(days_back=args.days, limit=limit)
    print(format_report(mentions, args.days))
    return 0


def cmd_stats(pipeline: Pipeline, settings: Settings, args: argparse.Namespace) -> int:
    print(pipeline.storage.pair_count_text())
    return 0


def cmd_clear(pipeline: Pipeline, settings: Settings, args: argparse.Namespace) -> int:
    status = pipeline.storage.clear_all(confirmed=args.yes)
    if status.ok:
        pipeline.send(MessageType.RELOAD)
        pipeline.channel.drain()
    return _print_status(status)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="ticker-extractor",
        description="Extract $TICKER/post pairs from timeline snapshots.",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("scan", help="Scan saved HTML snapshots as one session")
    p.add_argument("files", nargs="+")
    p.set_defaults(func=cmd_scan)

    p = sub.add_parser("watch", help="Rescan a snapshot file whenever it changes")
    p.add_argument("file")
    p.add_argument("--interval", type=float, default=1.0, help="Polling interval (s)")
    p.add_argument(
        "--duration", type=float, default=None, help="Stop after this many seconds"
    )
    p.set_defaults(func=cmd_watch)

    p = sub.add_parser("import", help="Merge a CSV export into the store")
    p.add_argument("csv")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("export", help="Write the CSV export now")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("top", help="Most mentioned tickers")
    p.add_argument("--days", type=int, default=0, help="Days back (0 = all time)")
    p.add_argument("--limit", type=int, default=None)
    p.set_defaults(func=cmd_top)

    p = sub.add_parser("stats", help="Number of stored pairs")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("clear", help="Delete all stored pairs")
    p.add_argument("--yes", action="store_true", help="Confirm deletion")
    p.set_defaults(func=cmd_clear)
    return ap


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = reload_settings()
    setup_logging(settings.log_level, settings)

    # one-shot commands persist inline so the process can exit right away
    pipeline = Pipeline.create(settings, persist_async=args.command == "watch")
    try:
        return args.func(pipeline, settings, args)
    finally:
        pipeline.close()


if __name__ == "__main__":
    sys.exit(main())
