"""
Run logging: rich console output plus optional text and JSONL logs.

Each JSONL line is one event. Pipeline events carry the input file, failing
phase, shard count and sample count as extra fields when known.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

LOGGER_NAME = "shardgen"
TEXT_LOG = "shardgen.log"
STRUCTURED_LOG = "structured.jsonl"
LOG_MAX_BYTES = 5_000_000
LOG_BACKUPS = 5
# ``extra=`` keys copied into structured records
STRUCTURED_FIELDS = ("input", "phase", "shards", "samples")


class JSONLHandler(logging.Handler):
    """Appends one JSON object per record, rotating like ``RotatingFileHandler``."""

    def __init__(self, path: Path, level=logging.INFO, max_bytes: int = LOG_MAX_BYTES, backup_count: int = LOG_BACKUPS):
        super().__init__(level)
        self.path = Path(path)
        self.max_bytes = int(max_bytes)
        self.backup_count = int(backup_count)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _backup(self, index: int) -> Path:
        return self.path.with_name(f"{self.path.name}.{index}")

    def _rotate(self) -> None:
        if not self.path.exists() or self.path.stat().st_size <= self.max_bytes:
            return
        for i in range(self.backup_count - 1, 0, -1):
            src = self._backup(i)
            if src.exists():
                src.replace(self._backup(i + 1))
        self.path.replace(self._backup(1))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = {
                "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "thread": record.threadName,
                "message": record.getMessage(),
            }
            event.update({key: getattr(record, key) for key in STRUCTURED_FIELDS if hasattr(record, key)})
            self.acquire()
            try:
                self._rotate()
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(event, default=str) + "\n")
            finally:
                self.release()
        except Exception:
            self.handleError(record)


def setup_logging(log_dir: Optional[str] = "logs", level: int = logging.INFO) -> logging.Logger:
    """Configure the ``shardgen`` logger.

    When ``log_dir`` is set, ``shardgen.log`` and ``structured.jsonl`` are
    written there next to the console output.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(RichHandler(level=level, markup=False, show_path=False))

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        text = RotatingFileHandler(log_path / TEXT_LOG, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS,
                                   encoding="utf-8")
        text.setLevel(level)
        text.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"))
        logger.addHandler(text)
        logger.addHandler(JSONLHandler(log_path / STRUCTURED_LOG, level=level))

    logger.propagate = False
    return logger
