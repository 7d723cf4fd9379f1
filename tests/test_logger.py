"""Tests for structured logging and date helpers."""

import json
import logging
import sys
from datetime import datetime, timezone

from bikeshop_sync.core.logger import JSONFormatter, log_file_path
from bikeshop_sync.utils.dates import as_utc


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("bikeshop_sync.test", logging.ERROR, __file__, 1, "Pedido %s", ("abc",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_carries_order_context() -> None:
    line = json.loads(JSONFormatter().format(make_record(order_id="abc", bling_order_id="5551", request_id="x")))

    assert line["message"] == "Pedido abc"
    assert line["level"] == "ERROR"
    assert line["order_id"] == "abc"
    assert line["bling_order_id"] == "5551"
    assert "request_id" not in line
    assert line["timestamp"].endswith("-03:00")


def test_json_formatter_includes_exception() -> None:
    try:
        raise ValueError("Cupom inválido")
    except ValueError:
        record = make_record()
        record.exc_info = sys.exc_info()

    line = json.loads(JSONFormatter().format(record))

    assert line["exception"]["type"] == "ValueError"
    assert line["exception"]["message"] == "Cupom inválido"


def test_log_file_path_creates_directory(tmp_path) -> None:
    path = log_file_path(str(tmp_path / "logs"))

    assert path.parent.is_dir()
    assert path.name.startswith("bikeshop_")
    assert path.suffix == ".log"


def test_as_utc_attaches_timezone_to_naive_values() -> None:
    assert as_utc(datetime(2024, 1, 1, 12, 0)).tzinfo is timezone.utc
    aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(aware) is aware
