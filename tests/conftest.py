from __future__ import annotations

import itertools
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

import pytest

from logger_errors import PortOpenError
from port_scanner import LineReceived, OpenFailed, OpenSucceeded, PortClosed, PortErrored


class ManualTimer:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for EventLoop driven by ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._soon: Deque[Callable[[], None]] = deque()
        self._timers: List[ManualTimer] = []
        self._seq = itertools.count()

    def call_soon(self, callback: Callable[[], None]) -> None:
        self._soon.append(callback)

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay_s, next(self._seq), callback)
        self._timers.append(timer)
        return timer

    @property
    def pending_timers(self) -> List[ManualTimer]:
        return [t for t in self._timers if not t.cancelled]

    def run_pending(self) -> None:
        while self._soon:
            self._soon.popleft()()

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        self.run_pending()
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.now = timer.when
            timer.callback()
            self.run_pending()
        self._timers = [t for t in self._timers if not t.cancelled]
        self.now = target


class FakeConnection:
    def __init__(self, port: str, baudrate: int, epoch: int, post, behaviour: str) -> None:
        self.port = port
        self.baudrate = baudrate
        self.epoch = epoch
        self._post = post
        self.behaviour = behaviour
        self.opened = False
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.opened and self.close_calls == 0

    def open(self) -> None:
        if self.behaviour == "refuse":
            self._post(OpenFailed(self.epoch, PortOpenError(self.port, "Access denied")))
            return
        self.opened = True
        self._post(OpenSucceeded(self.epoch))
        if self.behaviour == "live":
            self._post(LineReceived(self.epoch, "Arduino ready"))

    def close(self) -> None:
        self.close_calls += 1

    def send(self, line: str) -> None:
        self._post(LineReceived(self.epoch, line))

    def drop(self) -> None:
        self._post(PortClosed(self.epoch))

    def fail(self, error) -> None:
        self._post(PortErrored(self.epoch, error))


class FakePorts:
    """Connection factory; ``behaviours`` maps port name to refuse/silent/live."""

    def __init__(self, behaviours: Optional[Dict[str, str]] = None) -> None:
        self.behaviours = dict(behaviours or {})
        self.connections: List[FakeConnection] = []

    def __call__(self, port: str, baudrate: int, epoch: int, post) -> FakeConnection:
        live = [c for c in self.connections if c.is_open]
        assert not live, f"opening {port} while {live[0].port} is still open"
        conn = FakeConnection(port, baudrate, epoch, post, self.behaviours.get(port, "refuse"))
        self.connections.append(conn)
        return conn

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]

    def opened_ports(self) -> List[str]:
        return [c.port for c in self.connections]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def messages() -> List[str]:
    return []


@pytest.fixture
def collect(messages):
    def log(message: str, level: int = 0) -> None:
        messages.append(message)

    return log
