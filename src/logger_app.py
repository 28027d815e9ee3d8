"""Coordinator: wires the scanner, classifier, CSV writer and UI events together."""
from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from config_manager import AppSettings
from csv_writer import CsvLogWriter, split_fields, utc_now
from event_bus import DataRecord, EventBus, LogMessageBuffer
from file_catalog import (
    LogFileInfo,
    copy_log_file,
    describe_log_file,
    find_log_file,
    list_log_files,
)
from header_registry import HeaderRegistry
from line_classifier import classify
from logger_errors import CommandResult
from port_scanner import (
    DEFAULT_TIMING,
    ConnectionFactory,
    ConnectionManager,
    ScanTiming,
    Scheduler,
    SerialConnection,
)

logger = logging.getLogger(__name__)


@dataclass
class LoggingState:
    log_messages: LogMessageBuffer = field(default_factory=LogMessageBuffer)
    last_record: Optional[DataRecord] = None


class ArduinoLoggerApp:
    def __init__(
        self,
        settings: AppSettings,
        scheduler: Scheduler,
        *,
        timing: ScanTiming = DEFAULT_TIMING,
        connection_factory: ConnectionFactory = SerialConnection,
        writer: Optional[CsvLogWriter] = None,
    ) -> None:
        self.settings = settings
        self.bus = EventBus()
        self.state = LoggingState()
        self._scheduler = scheduler
        self.headers = HeaderRegistry(settings.headers_path, log=self.log)
        self.writer = writer or CsvLogWriter(settings.log_dir, self.headers.get, log=self.log)
        self.scanner = ConnectionManager(
            settings.ports,
            scheduler,
            self.route_line,
            self.log,
            baudrate=settings.baudrate,
            timing=timing,
            connection_factory=connection_factory,
        )

    def start(self) -> None:
        self.headers.load()
        self.writer.initialize()
        self._scheduler.call_soon(self.scanner.start)

    def shutdown(self) -> None:
        """Stop scanning, then flush pending rows. The scheduler must still be running."""
        self._scheduler.call_soon(self.scanner.stop)
        self._scheduler.call_soon(self.writer.close)

    def log(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, message)
        self.state.log_messages.append(message)
        self.bus.on_log_message(message)

    @property
    def log_messages(self) -> List[str]:
        return self.state.log_messages.snapshot()

    @property
    def is_connected(self) -> bool:
        return self.scanner.is_connected

    def route_line(self, line: str, port: str = "") -> Optional["Future[bool]"]:
        result = classify(line)
        if not result.accepted:
            self.log(f'Ignored non-numeric data: "{result.text.strip()}"')
            return None
        return self.send_data(result.text, port)

    def send_data(self, line: str, port: str = "") -> "Future[bool]":
        ts = utc_now()
        record = DataRecord(timestamp=ts, raw_line=line, fields=tuple(split_fields(line)), port=port)
        self.state.last_record = record
        self.bus.on_data_record(record)
        return self.writer.append(line, ts)

    # Commands for the UI

    def get_headers(self) -> List[str]:
        return list(self.headers.get())

    def save_headers(self, headers: object) -> CommandResult:
        return self.headers.save(headers)

    def reset_headers(self) -> CommandResult:
        return self.headers.reset()

    def get_all_log_files(self) -> List[LogFileInfo]:
        return list_log_files(self.writer.log_dir)

    def get_current_log_info(self) -> Optional[LogFileInfo]:
        path = self.writer.current_path
        if path is None:
            return None
        try:
            return describe_log_file(path)
        except OSError as e:
            logger.error(f"Could not read {path}: {e}")
            return None

    def save_current_log_as(self, destination: Path) -> CommandResult:
        path = self.writer.current_path
        if path is None or not path.is_file():
            return CommandResult.fail("No CSV file available to save")
        return copy_log_file(path, Path(destination))

    def save_named_log_as(self, file_id: str, destination: Path) -> CommandResult:
        info = find_log_file(self.writer.log_dir, file_id)
        if info is None:
            return CommandResult.fail(f"No CSV file named {file_id}")
        return copy_log_file(info.full_path, Path(destination))
