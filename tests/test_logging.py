import json
import logging

import pytest

from collage_logging import JsonFormatter, setup_logging


def test_console_only():
    root = setup_logging(level="warning")
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1


def test_log_file_receives_records(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    setup_logging(level="DEBUG", log_file=log_file, format_style="detailed")
    logging.getLogger("collage_pages").info("page %d done", 3)
    for h in logging.getLogger().handlers:
        h.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "collage_pages - INFO - page 3 done" in text


def test_unknown_level_falls_back_to_info():
    root = setup_logging(level="chatty", format_style="json")
    assert root.level == logging.INFO


def test_log_file_is_detailed_when_console_is_simple(tmp_path):
    log_file = tmp_path / "run.log"
    setup_logging(level="INFO", log_file=log_file)
    logging.getLogger("collage_render").warning("page %d: no files to render", 2)
    for h in logging.getLogger().handlers:
        h.flush()

    assert "collage_render - WARNING - page 2: no files to render" in log_file.read_text(encoding="utf-8")


def test_json_lines_escape_messages():
    record = logging.LogRecord("collage", logging.INFO, __file__, 1, 'skipping "%s"', ("a\\b.jpg",), None)
    entry = json.loads(JsonFormatter().format(record))
    assert entry["message"] == 'skipping "a\\b.jpg"'
    assert (entry["level"], entry["module"]) == ("INFO", "collage")


def test_pillow_debug_output_is_quieted():
    setup_logging(level="DEBUG")
    assert logging.getLogger("PIL").level == logging.INFO


def test_unknown_format_is_rejected():
    with pytest.raises(ValueError):
        setup_logging(format_style="xml")
