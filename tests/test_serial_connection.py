from __future__ import annotations

import threading
from typing import List

import pytest
import serial

import port_scanner
from logger_errors import ConnectionLostError, PortOpenError
from port_scanner import LineReceived, OpenFailed, OpenSucceeded, PortClosed, SerialConnection


class ScriptedSerial:
    """Replays byte chunks, then reports the device as gone."""

    script: List[bytes] = []

    def __init__(self, port, baudrate, timeout):
        self.port = port
        self.baudrate = baudrate
        self.is_open = True
        self._chunks = list(self.script)

    @property
    def in_waiting(self) -> int:
        return 0

    def read(self, size: int = 1) -> bytes:
        if not self._chunks:
            raise serial.SerialException("device reports readiness to read but returned no data")
        return self._chunks.pop(0)

    def close(self) -> None:
        self.is_open = False


class EventSink:
    def __init__(self) -> None:
        self.events = []
        self.finished = threading.Event()

    def __call__(self, event) -> None:
        self.events.append(event)
        if isinstance(event, (PortClosed, OpenFailed)):
            self.finished.set()


def test_lines_are_split_and_loss_reported(monkeypatch):
    ScriptedSerial.script = [b"12|3", b"4\r\n\r\nhel", b"", b"lo\n\xff7|8\n"]
    monkeypatch.setattr(port_scanner.serial, "Serial", ScriptedSerial)
    sink = EventSink()

    conn = SerialConnection("COM9", 115200, epoch=5, post=sink)
    conn.open()
    assert sink.finished.wait(timeout=5)

    assert sink.events[0] == OpenSucceeded(5)
    lines = [e for e in sink.events if isinstance(e, LineReceived)]
    assert lines == [LineReceived(5, "12|34"), LineReceived(5, ""), LineReceived(5, "hello"), LineReceived(5, "7|8")]
    closed = sink.events[-1]
    assert isinstance(closed, PortClosed)
    assert isinstance(closed.error, ConnectionLostError)
    assert not conn.is_open


def test_open_failure_is_reported(monkeypatch):
    def refuse(port, baudrate, timeout):
        raise serial.SerialException(f"could not open port '{port}'")

    monkeypatch.setattr(port_scanner.serial, "Serial", refuse)
    sink = EventSink()
    SerialConnection("COM9", 115200, epoch=1, post=sink).open()
    assert sink.finished.wait(timeout=5)

    (event,) = sink.events
    assert isinstance(event, OpenFailed)
    assert isinstance(event.error, PortOpenError)
    assert event.error.port == "COM9"


def test_close_is_idempotent_and_silences_events():
    sink = EventSink()
    conn = SerialConnection("COM9", 115200, epoch=1, post=sink)
    conn.close()
    conn.close()
    assert sink.events == []
    assert not conn.is_open
