from __future__ import annotations

import json
import logging
from pathlib import Path

from cutbatch.logging_utils import JsonFormatter, configure_logging


def test_configure_logging_writes_json_file(tmp_path: Path) -> None:
    logger = configure_logging({"log_dir": tmp_path, "json_logs": True, "file_level": "DEBUG", "color": False})

    logging.getLogger("cutbatch.core.task_runner").warning(
        "retrying", extra={"kind": "image", "unit_id": 4, "retry_count": 1}
    )
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / "cutbatch.log").read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["message"] == "retrying"
    assert record["logger"] == "cutbatch.core.task_runner"
    assert (record["kind"], record["unit_id"], record["retry_count"]) == ("image", 4, 1)
    configure_logging({})


def test_configure_logging_replaces_handlers_and_applies_override() -> None:
    configure_logging({"console_level": "INFO"})
    logger = configure_logging({"console_level": "INFO"}, console_level="debug")

    assert len(logger.handlers) == 1
    assert logger.handlers[0].level == logging.DEBUG
    assert logger.propagate is False


def test_json_formatter_omits_missing_task_fields() -> None:
    record = logging.LogRecord("cutbatch", logging.INFO, __file__, 1, "hello %s", ("there",), None)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello there"
    assert "unit_id" not in payload
