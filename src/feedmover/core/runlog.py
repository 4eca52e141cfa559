"""
Operator-facing run log.

One line per event, ``<timestamp> - <message>``, appended to a plain text
file that is never rewritten by feedmover. Each line is mirrored to the
``feedmover.runlog`` logger.
"""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path

from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.runlog")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class RunLog:
    def __init__(self, path: Path | None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()

    def append(self, message: str, *, level: str = "info") -> str:
        line = f"{datetime.now():{TIMESTAMP_FORMAT}} - {message}"
        getattr(logger, level)(message)
        if self.path is not None:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a") as f:
                    f.write(line + "\n")
        return line
