"""Structured event logging for upload runs.

Every event is forwarded to the ``fit_uploader.events`` logger. When a log directory
is configured, events are also appended as one JSON object per line to
hive-partitioned daily .jsonl files:

    <log_dir>/json/year=2026/month=02/day=08/events.jsonl
"""

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fit_uploader.config import get_settings

logger = logging.getLogger(__name__)
event_logger = logging.getLogger("fit_uploader.events")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class LogService:
    """Event log service with thread-safe file writes."""

    def __init__(self) -> None:
        """Initialize the log service."""
        self._write_lock = threading.Lock()

    def _get_log_dir(self) -> Path | None:
        """Get the configured log directory, creating it if needed."""
        log_dir = get_settings().log_directory
        if log_dir is None:
            return None
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir

    def _get_hive_dir(self, log_dir: Path, dt: datetime) -> Path:
        """Build a hive-partitioned directory path and create it.

        Returns:
            Path like logs/json/year=2026/month=02/day=08/
        """
        hive_dir = (
            log_dir / "json" / f"year={dt.year:04d}" / f"month={dt.month:02d}" / f"day={dt.day:02d}"
        )
        hive_dir.mkdir(parents=True, exist_ok=True)
        return hive_dir

    def log(
        self,
        level: str,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit an event to the logger and, if enabled, to today's JSONL file.

        Args:
            level: Log level (INFO, WARNING, ERROR)
            category: Event category (upload, analysis, scan)
            event: Machine-readable event name (snake_case)
            message: Human-readable message
            metadata: Optional additional data
        """
        event_logger.log(_LEVELS.get(level.upper(), logging.INFO), message)

        now = datetime.now(UTC)
        entry: dict[str, Any] = {
            "timestamp": now.isoformat(),
            "level": level.upper(),
            "category": category,
            "event": event,
            "message": message,
        }
        if metadata:
            entry["metadata"] = metadata

        line = json.dumps(entry, default=str)

        try:
            log_dir = self._get_log_dir()
            if log_dir is None:
                return
            with self._write_lock:
                log_file = self._get_hive_dir(log_dir, now) / "events.jsonl"
                with open(log_file, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError:
            logger.warning("Failed to write event %s to JSONL log", event, exc_info=True)

    def info(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log an INFO-level event."""
        self.log("INFO", category, event, message, metadata)

    def error(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log an ERROR-level event."""
        self.log("ERROR", category, event, message, metadata)

    def save_job_jsonl(
        self,
        job_id: str,
        job_dict: dict[str, Any],
        completed_at: datetime,
    ) -> Path | None:
        """Write a per-run JSONL summary file.

        Args:
            job_id: The upload job ID
            job_dict: Full run summary dict
            completed_at: When the run completed

        Returns:
            Path to the written file, or None when file logging is disabled
        """
        log_dir = self._get_log_dir()
        if log_dir is None:
            return None

        out_path = self._get_hive_dir(log_dir, completed_at) / f"{job_id}.jsonl"
        line = json.dumps(job_dict, default=str)
        with self._write_lock:
            with open(out_path, "w", encoding="utf-8") as f:
                f.write(line + "\n")
        return out_path


# Module-level singleton accessor
_log_service: LogService | None = None


def get_log_service() -> LogService:
    """Get the singleton LogService instance."""
    global _log_service
    if _log_service is None:
        _log_service = LogService()
    return _log_service
