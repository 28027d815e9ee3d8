"""Enumerate and summarise existing CSV log files for export."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from csv_writer import LOG_FILE_PREFIX, LOG_FILE_SUFFIX
from logger_errors import CommandResult

logger = logging.getLogger(__name__)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


@dataclass(frozen=True)
class LogFileInfo:
    name: str
    full_path: Path
    size: int
    entries: int
    modified: datetime

    @property
    def date(self) -> str:
        return self.modified.strftime("%Y-%m-%d")


def is_log_file_name(name: str) -> bool:
    return name.startswith(LOG_FILE_PREFIX) and name.endswith(LOG_FILE_SUFFIX)


def count_entries(path: Path) -> int:
    """Non-blank lines minus the header row, never negative."""
    lines = 0
    with path.open("r", encoding="utf-8", errors="replace") as f:
        for line in f:
            if line.strip():
                lines += 1
    return max(0, lines - 1)


def describe_log_file(path: Path) -> Optional[LogFileInfo]:
    path = Path(path)
    if not path.is_file():
        return None
    stats = path.stat()
    return LogFileInfo(
        name=path.name,
        full_path=path,
        size=stats.st_size,
        entries=count_entries(path),
        modified=datetime.fromtimestamp(stats.st_mtime),
    )


def list_log_files(directory: Path) -> List[LogFileInfo]:
    """All ``arduino_logs_*.csv`` files in ``directory``, newest first."""
    try:
        candidates = [p for p in Path(directory).iterdir() if is_log_file_name(p.name)]
        files = [info for info in (describe_log_file(p) for p in candidates) if info]
    except OSError as e:
        logger.error(f"Error reading CSV files in {directory}: {e}")
        return []
    files.sort(key=lambda info: info.modified, reverse=True)
    return files


def find_log_file(directory: Path, name: str) -> Optional[LogFileInfo]:
    for info in list_log_files(directory):
        if info.name == name:
            return info
    return None


def copy_log_file(source: Path, destination: Path) -> CommandResult:
    try:
        shutil.copyfile(source, destination)
    except OSError as e:
        logger.error(f"Failed to copy {source} to {destination}: {e}")
        return CommandResult.fail(str(e))
    return CommandResult.ok(file_path=str(destination), original_file=Path(source).name)


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    i = 0
    value = float(size)
    while value >= 1024 and i < len(_SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[i]}"
