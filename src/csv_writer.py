"""Append-only daily CSV log, one file per UTC calendar day.

Rows are ``<ISO timestamp>,<field>,<field>,...`` where the fields come from a
pipe-delimited Arduino line. Field values are not escaped: a comma inside a
field produces an extra column, exactly as the device sent it.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TypeVar

from logger_errors import FileAccessError, classify_os_error, is_locked

LOG_FILE_PREFIX = "arduino_logs_"
LOG_FILE_SUFFIX = ".csv"
FIELD_DELIMITER = "|"

MAX_ATTEMPTS = 3
RETRY_STEP_S = 0.1

logger = logging.getLogger(__name__)

T = TypeVar("T")

LogFunc = Callable[..., None]


def _default_log(message: str, level: int = logging.INFO) -> None:
    logger.log(level, message)


def log_file_name(day: date) -> str:
    return f"{LOG_FILE_PREFIX}{day.isoformat()}{LOG_FILE_SUFFIX}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(ts: datetime) -> str:
    """``2024-01-01T12:00:00.123Z`` style timestamp."""
    ts = ts.astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def split_fields(raw_line: str) -> List[str]:
    return [part.strip() for part in raw_line.split(FIELD_DELIMITER)]


def format_row(raw_line: str, ts: datetime) -> str:
    return ",".join([iso_timestamp(ts)] + split_fields(raw_line)) + "\n"


def append_text(path: Path, text: str) -> None:
    with path.open("a", encoding="utf-8", newline="") as f:
        f.write(text)


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int = MAX_ATTEMPTS,
    delay_step: float = RETRY_STEP_S,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[FileAccessError, int], None]] = None,
) -> T:
    """Call ``func`` until it succeeds, retrying transient file errors.

    Waits ``attempt * delay_step`` seconds after the n-th failed attempt.
    Terminal errors and the last transient error are raised as FileAccessError.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except OSError as e:
            err = classify_os_error(e)
            if not err.transient or attempt >= attempts:
                raise err from e
            if on_retry:
                on_retry(err, attempt)
            sleep(attempt * delay_step)


class CsvLogWriter:
    """Writes accepted Arduino lines to the current day's CSV file.

    ``append`` hands the write to a single worker thread, so the caller never
    waits on the disk and rows keep the order they were appended in.
    """

    def __init__(
        self,
        log_dir: Path,
        headers: Callable[[], Sequence[str]],
        log: Optional[LogFunc] = None,
        *,
        attempts: int = MAX_ATTEMPTS,
        delay_step: float = RETRY_STEP_S,
        sleep: Callable[[float], None] = time.sleep,
        append_func: Callable[[Path, str], None] = append_text,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.log_dir = Path(log_dir)
        self._headers = headers
        self._log = log or _default_log
        self._attempts = attempts
        self._delay_step = delay_step
        self._sleep = sleep
        self._append = append_func
        self._clock = clock
        self._lock = threading.Lock()
        self._current_path: Optional[Path] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csv-writer")

    @property
    def current_path(self) -> Optional[Path]:
        return self._current_path

    def path_for(self, day: date) -> Path:
        return self.log_dir / log_file_name(day)

    def initialize(self, day: Optional[date] = None) -> Optional[Path]:
        """Open (or create) the log file for ``day``; defaults to today (UTC)."""
        day = day or self._clock().date()
        path = self.path_for(day)
        with self._lock:
            self._current_path = path

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            if path.exists():
                self._log(f"Using existing CSV log file: {path.name}")
                return path
            header = ",".join(self._headers()) + "\n"
            # "x" so a file created concurrently keeps its own header.
            with path.open("x", encoding="utf-8", newline="") as f:
                f.write(header)
            self._log(f"CSV log file created: {path.name}")
        except FileExistsError:
            self._log(f"Using existing CSV log file: {path.name}")
        except OSError as e:
            if is_locked(e):
                self._log(
                    "Warning: CSV file is locked by another application. "
                    "Logging will continue when file is available.",
                    logging.WARNING,
                )
            else:
                self._log(f"Error initializing CSV: {e}", logging.ERROR)
        return path

    def append(self, raw_line: str, timestamp: Optional[datetime] = None) -> "Future[bool]":
        """Queue one row; the future resolves to True if it reached the file."""
        ts = timestamp or self._clock()
        row = format_row(raw_line, ts)
        future = self._executor.submit(self._write_row, raw_line, row, ts)
        future.add_done_callback(self._check_write)
        return future

    def _check_write(self, future: "Future[bool]") -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._log(f"Error writing to CSV: {exc}", logging.ERROR)

    def _ensure_file_for(self, ts: datetime) -> Optional[Path]:
        day = ts.astimezone(timezone.utc).date()
        path = self.path_for(day)
        if self._current_path != path or not path.exists():
            # New day, or the header never made it to disk.
            self.initialize(day)
        return self._current_path

    def _write_row(self, raw_line: str, row: str, ts: datetime) -> bool:
        try:
            path = self._ensure_file_for(ts)
        except OSError as e:
            err = classify_os_error(e, self.log_dir)
            self._report_dropped(FileAccessError(err.path, str(err), transient=False), raw_line, ts)
            return False
        if path is None:
            return False

        def on_retry(err: FileAccessError, attempt: int) -> None:
            logger.info(
                f"CSV write failed ({err}), retrying in {attempt * self._delay_step * 1000:.0f}ms... "
                f"({attempt}/{self._attempts})"
            )

        try:
            run_with_retry(
                lambda: self._append(path, row),
                attempts=self._attempts,
                delay_step=self._delay_step,
                sleep=self._sleep,
                on_retry=on_retry,
            )
        except FileAccessError as e:
            self._report_dropped(e, raw_line, ts)
            return False
        return True

    def _report_dropped(self, err: FileAccessError, raw_line: str, ts: datetime) -> None:
        stamp = iso_timestamp(ts)
        if err.transient:
            message = (
                f"Failed to write to CSV after {self._attempts} attempts: {err} "
                f"(record {stamp}: \"{raw_line}\" dropped)"
            )
        else:
            message = f"Error writing to CSV: {err} (record {stamp}: \"{raw_line}\" dropped)"
        self._log(message, logging.ERROR)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
