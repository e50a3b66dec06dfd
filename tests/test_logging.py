"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from pathlib import Path

from procside.logging import setup_logging


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"tool": "test", "args_data": {"key": "val"}})
        _flush(logger)
        record = json.loads((tmp_path / "procside.log").read_text().strip())
        assert record["msg"] == "test_message"
        assert record["tool"] == "test"
        assert record["args"]["key"] == "val"

    def test_pipeline_fields(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("Applied update", extra={"action": "step_start", "process_id": "proc-001", "duration_ms": 1.5})
        _flush(logger)
        record = json.loads((tmp_path / "procside.log").read_text().strip().split("\n")[-1])
        assert record["action"] == "step_start"
        assert record["process_id"] == "proc-001"
        assert record["duration_ms"] == 1.5

    def test_child_loggers_propagate(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logging.getLogger("procside.registry").info("from child")
        _flush(logger)
        assert "from child" in (tmp_path / "procside.log").read_text()

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        file_handlers = [h for h in logger1.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1

    def test_no_duplicate_handlers_via_symlink(self, tmp_path: Path) -> None:
        real_dir = tmp_path / "real"
        real_dir.mkdir()
        link_dir = tmp_path / "link"
        os.symlink(str(real_dir), str(link_dir))
        logger = setup_logging(link_dir)
        setup_logging(link_dir)
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1

    def test_new_dir_replaces_handler(self, tmp_path: Path) -> None:
        setup_logging(tmp_path / "a")
        logger = setup_logging(tmp_path / "b")
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename.endswith(os.path.join("b", "procside.log"))

    def test_level_and_production_backups(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path, level="warn", environment="production")
        assert logger.level == logging.WARNING
        (handler,) = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert handler.backupCount == 5

    def test_exception_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("tool_error", exc_info=True)
        _flush(logger)
        record = json.loads((tmp_path / "procside.log").read_text().strip().split("\n")[-1])
        assert record["exception"] == "boom"
