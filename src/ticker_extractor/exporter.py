"""Write the CSV export to a fixed file name, overwriting the previous one."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .csv_codec import encode_csv
from .logging_utils import get_logger
from .models import TickerPostPair

log = get_logger("exporter")

DEFAULT_FILENAME = "twitter_tickers_cache.csv"


class CsvFileExporter:
    def __init__(self, directory: Path, filename: str = DEFAULT_FILENAME):
        self.directory = Path(directory)
        self.filename = filename

    @property
    def path(self) -> Path:
        return self.directory / self.filename

    def write_text(self, csv_text: str) -> Optional[Path]:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
            temp_file.write_text(csv_text, encoding="utf-8")
            temp_file.replace(self.path)
        except Exception as e:
            log.error("export_failed path=%s err=%s", self.path, e.__class__.__name__)
            return None
        return self.path

    def export(self, pairs: List[TickerPostPair]) -> Optional[Path]:
        """Write ``pairs`` (store order) newest first. Nothing is written when empty."""
        if not pairs:
            log.info("export_skipped reason=empty")
            return None
        path = self.write_text(encode_csv(pairs))
        if path is not None:
            log.info("exported path=%s pairs=%d", path, len(pairs))
        return path
