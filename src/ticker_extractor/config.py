import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_float(name: str, default: float) -> float:
    """
    Read a float from env. Falls back to ``default`` if unset, blank, or non-numeric.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    if raw == "" or raw.lower() in {"none", "null"} or raw.startswith("#"):
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except Exception:
        return default


def _b(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {
        "1",
        "true",
        "yes",
        "y",
        "on",
    }


def _data_dir() -> Path:
    return Path(os.getenv("DATA_DIR", "data"))


def _opt_path(name: str) -> Optional[Path]:
    raw = os.getenv(name, "").strip()
    return Path(raw) if raw else None


@dataclass
class Settings:
    # Base directory for state, exports and logs.
    data_dir: Path = field(default_factory=_data_dir)

    # Durable key-value file holding the whole aggregate under one key.
    # Defaults to <DATA_DIR>/ticker_pairs.json when STATE_PATH is unset.
    state_path: Optional[Path] = field(default_factory=lambda: _opt_path("STATE_PATH"))

    # CSV exports are always written to the same file and overwritten.
    export_dir: Optional[Path] = field(default_factory=lambda: _opt_path("EXPORT_DIR"))
    export_filename: str = field(
        default_factory=lambda: os.getenv("EXPORT_FILENAME", "twitter_tickers_cache.csv")
    )

    # Relative status permalinks are resolved against this origin.
    site_origin: str = field(
        default_factory=lambda: os.getenv("SITE_ORIGIN", "https://x.com").rstrip("/")
    )

    # Export automatically once this many new pairs were merged since the
    # last export.
    auto_export_threshold: int = field(
        default_factory=lambda: _env_int("AUTO_EXPORT_THRESHOLD", 20)
    )

    # Quiet period after the last document change before a rescan runs.
    debounce_seconds: float = field(
        default_factory=lambda: _env_float("DEBOUNCE_SECONDS", 0.5)
    )

    # Background persistence sweep, independent of per-merge writes.
    persist_interval_seconds: float = field(
        default_factory=lambda: _env_float("PERSIST_INTERVAL_SECONDS", 30.0)
    )

    # Upper bound on keys remembered by the per-session cache.
    session_cache_size: int = field(
        default_factory=lambda: _env_int("SESSION_CACHE_SIZE", 50000)
    )

    # Number of tickers shown by the ranking report.
    top_n: int = field(default_factory=lambda: _env_int("TOP_N", 10))

    # Import the fixed export file once when the storage service starts.
    feature_auto_load_csv: bool = field(
        default_factory=lambda: _b("FEATURE_AUTO_LOAD_CSV", True)
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_plain: bool = field(default_factory=lambda: _b("LOG_PLAIN", False))
    # Rotated backups kept for each log file.
    log_rotation_days: int = field(default_factory=lambda: _env_int("LOG_ROTATION_DAYS", 7))

    def __post_init__(self) -> None:
        if self.state_path is None:
            self.state_path = self.data_dir / "ticker_pairs.json"
        if self.export_dir is None:
            self.export_dir = self.data_dir / "exports"
        if self.auto_export_threshold < 1:
            self.auto_export_threshold = 20
        if self.debounce_seconds < 0:
            self.debounce_seconds = 0.5
        if self.log_rotation_days < 0:
            self.log_rotation_days = 7

    @property
    def export_path(self) -> Path:
        return Path(self.export_dir) / self.export_filename


SETTINGS = Settings()


def get_settings() -> Settings:
    return SETTINGS


def reload_settings() -> Settings:
    """Rebuild settings from the current environment (after dotenv load)."""
    global SETTINGS
    SETTINGS = Settings()
    return SETTINGS
