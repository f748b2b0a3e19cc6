"""Append-only sync log shown to administrators."""

import asyncio
import threading
from datetime import datetime
from pathlib import Path

import structlog

logger = structlog.get_logger()

_write_lock = threading.Lock()


class SyncLog:
    """
    Plain-text log of sync outcomes.

    Each line reads ``[YYYY-MM-DD HH:MM:SS] SUCCESS: message`` or
    ``[...] ERROR: message``. Writes are mirrored to the structured logger
    so they also reach the service logs. Appends run in a worker thread.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)

    async def success(self, message: str) -> None:
        logger.info("sync_success", message=message)
        await asyncio.to_thread(self._append, "SUCCESS", message)

    async def error(self, message: str) -> None:
        logger.error("sync_error", message=message)
        await asyncio.to_thread(self._append, "ERROR", message)

    def _append(self, level: str, message: str) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        entry = f"[{timestamp}] {level}: {message}\n"
        with _write_lock:
            self.ensure_exists()
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(entry)

    def read(self) -> str:
        """Return the whole log, or an empty string if nothing was written yet."""
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def lines(self) -> list[str]:
        return self.read().splitlines()

    def clear(self) -> None:
        """Truncate the log."""
        with _write_lock:
            self.ensure_exists()
            self.path.write_text("", encoding="utf-8")
        logger.info("Sync log cleared", path=str(self.path))
