"""Log file handlers and retention cleanup."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Iterable


class DateStampedFileHandler(logging.FileHandler):
    """Write to ``<directory>/<YYYY-MM-DD>/<prefix>_<timestamp>.log``.

    The file name is fixed when the handler is created, so each process
    start gets its own file inside the folder for that day.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        prefix: str = "tts",
        tz: tzinfo = timezone.utc,
        encoding: str | None = "utf-8",
        delay: bool = False,
        current_time: datetime | None = None,
    ) -> None:
        local_time = (current_time or datetime.now(timezone.utc)).astimezone(tz)
        date_folder = local_time.strftime("%Y-%m-%d")
        stamp = local_time.strftime("%Y-%m-%d_%H-%M-%S")
        tz_name = local_time.tzname() or "UTC"

        log_path = Path(directory).resolve() / date_folder / f"{prefix}_{stamp}_{tz_name}.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path = log_path
        super().__init__(log_path, mode="a", encoding=encoding, delay=delay)


def cleanup_old_logs(
    log_directories: Iterable[str | Path],
    retention_hours: int,
    logger: logging.Logger | None = None,
    *,
    now: datetime | None = None,
) -> tuple[int, int]:
    """
    Delete ``*.log`` files older than the retention period.

    Args:
        log_directories: Directories to scan recursively
        retention_hours: Age limit in hours (0 disables cleanup)
        logger: Optional logger for reporting cleanup activity
        now: Reference time, defaults to the current time

    Returns:
        Tuple of (files_deleted, errors_encountered)
    """
    if retention_hours <= 0:
        return (0, 0)

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=retention_hours)
    files_deleted = 0
    errors = 0

    for directory in log_directories:
        dir_path = Path(directory).resolve()
        if not dir_path.is_dir():
            continue

        for log_file in dir_path.rglob("*.log"):
            try:
                mtime = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
                if mtime < cutoff:
                    log_file.unlink()
                    files_deleted += 1
                    if logger:
                        logger.debug("Deleted old log file: %s", log_file)
            except OSError as exc:
                errors += 1
                if logger:
                    logger.warning("Failed to delete %s: %s", log_file, exc)

        # Empty date folders left behind
        for date_dir in dir_path.iterdir():
            if date_dir.is_dir() and not any(date_dir.iterdir()):
                try:
                    date_dir.rmdir()
                except OSError:
                    errors += 1

    if logger and files_deleted:
        logger.info(
            "Log cleanup complete: %d file(s) deleted, %d error(s) encountered",
            files_deleted,
            errors,
        )
    return (files_deleted, errors)


__all__ = ["DateStampedFileHandler", "cleanup_old_logs"]
