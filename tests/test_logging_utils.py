import json
import logging
import logging.handlers

import pytest

from ticker_extractor.config import Settings
from ticker_extractor.logging_utils import PlainFormatter, get_logger, setup_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in root.handlers:
        h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _settings(tmp_path, **overrides):
    s = Settings(data_dir=tmp_path, state_path=None, export_dir=None)
    s.log_level = "INFO"
    s.log_plain = False
    s.log_rotation_days = 3
    for k, v in overrides.items():
        setattr(s, k, v)
    return s


def test_files_and_levels(tmp_path, restore_root):
    setup_logging(settings=_settings(tmp_path))
    log = get_logger("test")
    log.info("scan_complete new=%d", 2)
    log.warning("store_save_error pairs=%d", 1)
    for h in restore_root.handlers:
        h.flush()

    main_lines = (tmp_path / "logs" / "extractor.jsonl").read_text().splitlines()
    error_lines = (tmp_path / "logs" / "errors.log").read_text().splitlines()
    messages = [json.loads(line)["msg"] for line in main_lines]
    assert "scan_complete new=2" in messages
    assert "store_save_error pairs=1" in messages
    errors = [json.loads(line) for line in error_lines]
    assert [e["msg"] for e in errors] == ["store_save_error pairs=1"]
    assert errors[0]["level"] == "WARNING"

    rotating = [
        h for h in restore_root.handlers if isinstance(h, logging.handlers.RotatingFileHandler)
    ]
    assert {h.backupCount for h in rotating} == {3}


def test_plain_console(tmp_path, restore_root):
    setup_logging(settings=_settings(tmp_path, log_plain=True))
    console = [h for h in restore_root.handlers if type(h) is logging.StreamHandler]
    assert len(console) == 1
    assert isinstance(console[0].formatter, PlainFormatter)


def test_plain_format_has_no_extras():
    record = logging.LogRecord("store", logging.ERROR, __file__, 1, "store_load_error key=%s", ("k",), None)
    record.custom = "ignored"
    line = PlainFormatter().format(record)
    assert line.endswith("store: store_load_error key=k")
