"""Delivers status messages and data records to presentation collaborators."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataRecord:
    timestamp: datetime
    raw_line: str
    fields: Tuple[str, ...]
    port: str = ""


LogListener = Callable[[str], None]
DataListener = Callable[[DataRecord], None]


class EventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._log_listeners: List[LogListener] = []
        self._data_listeners: List[DataListener] = []

    def subscribe_log(self, listener: LogListener) -> None:
        with self._lock:
            self._log_listeners.append(listener)

    def subscribe_data(self, listener: DataListener) -> None:
        with self._lock:
            self._data_listeners.append(listener)

    def on_log_message(self, text: str) -> None:
        with self._lock:
            listeners = list(self._log_listeners)
        for listener in listeners:
            self._deliver(listener, text)

    def on_data_record(self, record: DataRecord) -> None:
        with self._lock:
            listeners = list(self._data_listeners)
        for listener in listeners:
            self._deliver(listener, record)

    @staticmethod
    def _deliver(listener: Callable[[object], None], payload: object) -> None:
        try:
            listener(payload)
        except Exception:
            logger.exception("Event listener failed")


class LogMessageBuffer:
    """Every status message of this process, oldest first. Never trimmed."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: List[str] = []

    def append(self, message: str) -> None:
        with self._lock:
            self._messages.append(message)

    def snapshot(self) -> List[str]:
        with self._lock:
            return list(self._messages)
