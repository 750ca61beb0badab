"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import threading
from pathlib import Path

from cardweave.logging import setup_logging


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"operation": "move", "card": "c1", "args_data": {"index": 2}})
        _flush(logger)
        log_path = tmp_path / "cardweave.log"
        assert log_path.exists()
        record = json.loads(log_path.read_text().strip())
        assert record["msg"] == "test_message"
        assert record["operation"] == "move"
        assert record["card"] == "c1"
        assert record["args"]["index"] == 2
        assert record["logger"] == "cardweave"

    def test_json_format(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("formatted", extra={"operation": "reorder", "duration_ms": 42.5})
        logger.info("failed", extra={"operation": "move", "error": "Card 'x' not found"})
        _flush(logger)
        lines = (tmp_path / "cardweave.log").read_text().strip().split("\n")
        assert json.loads(lines[0])["duration_ms"] == 42.5
        assert json.loads(lines[1])["error"] == "Card 'x' not found"

    def test_child_loggers_propagate(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logging.getLogger("cardweave.tree").info("from child %s", "tree")
        _flush(logger)
        record = json.loads((tmp_path / "cardweave.log").read_text().strip())
        assert record["logger"] == "cardweave.tree"
        assert record["msg"] == "from child tree"

    def test_exception_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise ValueError("boom")
        except ValueError:
            logger.exception("crashed")
        _flush(logger)
        record = json.loads((tmp_path / "cardweave.log").read_text().strip())
        assert record["level"] == "ERROR"
        assert record["exception"] == "boom"

    def test_level(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path, "WARNING")
        logger.info("hidden")
        logger.warning("shown")
        _flush(logger)
        lines = (tmp_path / "cardweave.log").read_text().strip().split("\n")
        assert [json.loads(line)["msg"] for line in lines] == ["shown"]

    def test_creates_directory(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / ".cardweave"
        setup_logging(target)
        assert target.is_dir()

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "one"
        second = tmp_path / "two"
        setup_logging(first)
        logger = setup_logging(second)
        assert len(logger.handlers) == 1
        handler = logger.handlers[0]
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.baseFilename == os.path.abspath(str(second / "cardweave.log"))

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        """Concurrent setup_logging calls must not produce duplicate handlers."""
        results: list[logging.Logger] = []
        barrier = threading.Barrier(4)

        def call_setup() -> None:
            barrier.wait()
            results.append(setup_logging(tmp_path))

        threads = [threading.Thread(target=call_setup) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4
        assert all(r is results[0] for r in results)
        file_handlers = [
            h
            for h in logging.getLogger("cardweave").handlers
            if isinstance(h, logging.handlers.RotatingFileHandler)
            and h.baseFilename == os.path.abspath(str(tmp_path / "cardweave.log"))
        ]
        assert len(file_handlers) == 1, f"Expected 1 handler, got {len(file_handlers)}"

    def teardown_method(self) -> None:
        """Clean up the cardweave logger handlers between tests."""
        logger = logging.getLogger("cardweave")
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
