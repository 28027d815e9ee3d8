"""
Arduino port discovery and connection supervision.

The scanner cycles through a fixed list of candidate ports. A port counts as
the Arduino once it sends a complete line within the liveness window; from
then on every line is routed to the logging pipeline until the connection
drops, after which the scan starts over from the first port.

All decisions live in ``handle_event``, a pure function from
(state, event) to (next state, effects). ``ConnectionManager`` executes the
effects: it opens and closes ``SerialConnection`` objects, arms timers on the
event loop and forwards log messages and data lines.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union

import serial

from config_manager import DEFAULT_BAUDRATE
from logger_errors import (
    ConnectionLostError,
    PortOpenError,
    PortRuntimeError,
    PortTimeoutError,
)

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    IDLE = "idle"
    PROBING = "probing"
    WAITING_FOR_DATA = "waiting_for_data"
    ACTIVE = "active"
    CLOSING_AND_ADVANCING = "closing_and_advancing"
    ALL_PORTS_EXHAUSTED = "all_ports_exhausted"


class TimerKind(enum.Enum):
    LIVENESS = "liveness"
    BACKOFF = "backoff"


@dataclass(frozen=True)
class ScanTiming:
    liveness_s: float = 3.0
    probe_backoff_s: float = 1.0
    lost_backoff_s: float = 2.0
    exhausted_backoff_s: float = 3.0


DEFAULT_TIMING = ScanTiming()


@dataclass(frozen=True)
class ScannerState:
    """Snapshot of the scanner.

    ``epoch`` is bumped every time a new port is probed or a backoff starts.
    Timers and connection events carry the epoch they were created in; any
    event from another epoch is stale and ignored.
    """

    phase: Phase = Phase.IDLE
    port_index: int = 0
    port: Optional[str] = None
    epoch: int = 0

    @property
    def is_connected(self) -> bool:
        return self.phase is Phase.ACTIVE


# Events

@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class OpenSucceeded:
    epoch: int


@dataclass(frozen=True)
class OpenFailed:
    epoch: int
    error: PortOpenError


@dataclass(frozen=True)
class LineReceived:
    epoch: int
    line: str


@dataclass(frozen=True)
class PortErrored:
    epoch: int
    error: PortRuntimeError


@dataclass(frozen=True)
class PortClosed:
    epoch: int
    error: Optional[ConnectionLostError] = None


@dataclass(frozen=True)
class TimerFired:
    epoch: int
    kind: TimerKind


Event = Union[Start, Stop, OpenSucceeded, OpenFailed, LineReceived, PortErrored, PortClosed, TimerFired]


# Effects

@dataclass(frozen=True)
class OpenPort:
    port: str
    epoch: int


@dataclass(frozen=True)
class ClosePort:
    pass


@dataclass(frozen=True)
class StartTimer:
    kind: TimerKind
    delay_s: float
    epoch: int


@dataclass(frozen=True)
class CancelTimers:
    pass


@dataclass(frozen=True)
class Log:
    message: str
    level: int = logging.INFO


@dataclass(frozen=True)
class RouteLine:
    line: str
    port: str


Effect = Union[OpenPort, ClosePort, StartTimer, CancelTimers, Log, RouteLine]
Transition = Tuple[ScannerState, List[Effect]]


def _probe(state: ScannerState, index: int, ports: Sequence[str], timing: ScanTiming) -> Transition:
    epoch = state.epoch + 1
    teardown: List[Effect] = [CancelTimers(), ClosePort()]
    if index >= len(ports):
        return (
            ScannerState(Phase.ALL_PORTS_EXHAUSTED, port_index=0, epoch=epoch),
            teardown + [
                Log(f"No Arduino found. Retrying in {timing.exhausted_backoff_s:g} seconds..."),
                StartTimer(TimerKind.BACKOFF, timing.exhausted_backoff_s, epoch),
            ],
        )

    port = ports[index]
    return (
        ScannerState(Phase.PROBING, port_index=index, port=port, epoch=epoch),
        teardown + [
            Log(f"Checking {port}..."),
            StartTimer(TimerKind.LIVENESS, timing.liveness_s, epoch),
            OpenPort(port, epoch),
        ],
    )


def _backoff(state: ScannerState, next_index: int, delay_s: float, message: Log) -> Transition:
    epoch = state.epoch + 1
    return (
        ScannerState(Phase.CLOSING_AND_ADVANCING, port_index=next_index, epoch=epoch),
        [message, CancelTimers(), ClosePort(), StartTimer(TimerKind.BACKOFF, delay_s, epoch)],
    )


def _advance(state: ScannerState, timing: ScanTiming, message: Log) -> Transition:
    return _backoff(state, state.port_index + 1, timing.probe_backoff_s, message)


def handle_event(
    state: ScannerState,
    event: Event,
    ports: Sequence[str],
    timing: ScanTiming = DEFAULT_TIMING,
) -> Transition:
    """Compute the next scanner state and the effects to perform."""
    phase = state.phase
    unchanged: Transition = (state, [])

    if isinstance(event, Start):
        if phase is not Phase.IDLE:
            return unchanged
        return _probe(state, 0, ports, timing)

    if isinstance(event, Stop):
        if phase is Phase.IDLE:
            return unchanged
        return (
            ScannerState(Phase.IDLE, port_index=0, epoch=state.epoch + 1),
            [CancelTimers(), ClosePort(), Log("Port scanning stopped")],
        )

    if event.epoch != state.epoch:
        return unchanged

    port = state.port or ""

    if isinstance(event, TimerFired):
        if event.kind is TimerKind.LIVENESS and phase in (Phase.PROBING, Phase.WAITING_FOR_DATA):
            err = PortTimeoutError(port, f"No data from {port} within {timing.liveness_s:g} seconds")
            return _advance(state, timing, Log(str(err)))
        if event.kind is TimerKind.BACKOFF and phase is Phase.CLOSING_AND_ADVANCING:
            return _probe(state, state.port_index, ports, timing)
        if event.kind is TimerKind.BACKOFF and phase is Phase.ALL_PORTS_EXHAUSTED:
            return _probe(state, 0, ports, timing)
        return unchanged

    if isinstance(event, OpenSucceeded):
        if phase is not Phase.PROBING:
            return unchanged
        return replace(state, phase=Phase.WAITING_FOR_DATA), [Log(f"Port {port} opened, waiting for data...")]

    if isinstance(event, OpenFailed):
        if phase is not Phase.PROBING:
            return unchanged
        return _advance(state, timing, Log(f"Failed to open {port}: {event.error}", logging.WARNING))

    if isinstance(event, LineReceived):
        if phase is Phase.WAITING_FOR_DATA:
            return (
                replace(state, phase=Phase.ACTIVE),
                [CancelTimers(), Log(f"✅ ARDUINO FOUND ON {port}!")],
            )
        if phase is Phase.ACTIVE and event.line.strip():
            return state, [RouteLine(event.line, port)]
        return unchanged

    if isinstance(event, PortErrored):
        if phase not in (Phase.PROBING, Phase.WAITING_FOR_DATA, Phase.ACTIVE):
            return unchanged
        return _advance(state, timing, Log(f"Port error on {port}: {event.error}", logging.WARNING))

    if isinstance(event, PortClosed):
        if phase is Phase.ACTIVE:
            return _backoff(
                state, 0, timing.lost_backoff_s,
                Log(f"Connection to {port} lost. Reconnecting...", logging.WARNING),
            )
        if phase in (Phase.PROBING, Phase.WAITING_FOR_DATA):
            reason = f": {event.error}" if event.error else ""
            return _advance(state, timing, Log(f"{port} closed before sending data{reason}", logging.WARNING))
        return unchanged

    return unchanged


class Connection(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...


PostEvent = Callable[[Event], None]
ConnectionFactory = Callable[[str, int, int, PostEvent], Connection]


class SerialConnection:
    """One candidate port, read on its own daemon thread.

    Opening happens on the reader thread so the scanner never blocks. Every
    outcome is reported through ``post`` tagged with the scanner epoch. After
    ``close()`` the connection goes quiet.
    """

    def __init__(
        self,
        port: str,
        baudrate: int,
        epoch: int,
        post: PostEvent,
        read_timeout_s: float = 0.5,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.epoch = epoch
        self._post = post
        self._read_timeout_s = read_timeout_s
        self._serial: Optional[serial.Serial] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        self._thread = threading.Thread(target=self._run, name=f"serial-{self.port}", daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Safe to call any number of times, before or after open."""
        self._stop_event.set()
        self._close_serial()

    def _close_serial(self) -> None:
        ser = self._serial
        if ser is None or not ser.is_open:
            return
        try:
            ser.close()
        except (serial.SerialException, OSError) as e:
            logger.debug(f"Ignoring error while closing {self.port}: {e}")

    def _emit(self, event: Event) -> None:
        if not self._stop_event.is_set():
            self._post(event)

    def _run(self) -> None:
        try:
            ser = serial.Serial(port=self.port, baudrate=self.baudrate, timeout=self._read_timeout_s)
        except (serial.SerialException, OSError, ValueError) as e:
            self._emit(OpenFailed(self.epoch, PortOpenError(self.port, str(e))))
            return

        self._serial = ser
        if self._stop_event.is_set():
            # Closed while we were still opening.
            self._close_serial()
            return
        self._emit(OpenSucceeded(self.epoch))

        buffer = ""
        try:
            while not self._stop_event.is_set():
                chunk = ser.read(ser.in_waiting or 1)
                if not chunk:
                    continue
                buffer += chunk.decode("ascii", errors="ignore")
                *lines, buffer = buffer.split("\n")
                for line in lines:
                    self._emit(LineReceived(self.epoch, line.rstrip("\r")))
        except (serial.SerialException, OSError) as e:
            self._emit(PortClosed(self.epoch, ConnectionLostError(self.port, str(e))))
        except Exception as e:
            self._emit(PortErrored(self.epoch, PortRuntimeError(self.port, str(e))))
        finally:
            self._close_serial()


class Scheduler(Protocol):
    def call_soon(self, callback: Callable[[], None]) -> None: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> "Cancellable": ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class ConnectionManager:
    """Executes scanner transitions. Only this object opens or closes ports.

    ``dispatch`` must run on the scheduler's thread; other threads use
    ``post``.
    """

    def __init__(
        self,
        ports: Sequence[str],
        scheduler: Scheduler,
        on_line: Callable[[str, str], None],
        log: Optional[Callable[..., None]] = None,
        *,
        baudrate: int = DEFAULT_BAUDRATE,
        timing: ScanTiming = DEFAULT_TIMING,
        connection_factory: ConnectionFactory = SerialConnection,
    ) -> None:
        self.ports: Tuple[str, ...] = tuple(ports)
        self.baudrate = baudrate
        self.timing = timing
        self.state = ScannerState()
        self._scheduler = scheduler
        self._on_line = on_line
        self._log = log or (lambda message, level=logging.INFO: logger.log(level, message))
        self._factory = connection_factory
        self._connection: Optional[Connection] = None
        self._timers: List[Cancellable] = []

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected

    @property
    def active_port(self) -> Optional[str]:
        return self.state.port if self.state.is_connected else None

    def start(self) -> None:
        self.dispatch(Start())

    def stop(self) -> None:
        self.dispatch(Stop())

    def post(self, event: Event) -> None:
        """Thread-safe entry point for reader threads."""
        self._scheduler.call_soon(lambda: self.dispatch(event))

    def dispatch(self, event: Event) -> None:
        self.state, effects = handle_event(self.state, event, self.ports, self.timing)
        for effect in effects:
            self._apply(effect)

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, OpenPort):
            self._close_connection()
            self._connection = self._factory(effect.port, self.baudrate, effect.epoch, self.post)
            self._connection.open()
        elif isinstance(effect, ClosePort):
            self._close_connection()
        elif isinstance(effect, StartTimer):
            fired = TimerFired(effect.epoch, effect.kind)
            self._timers.append(self._scheduler.call_later(effect.delay_s, lambda: self.dispatch(fired)))
        elif isinstance(effect, CancelTimers):
            for handle in self._timers:
                handle.cancel()
            self._timers = []
        elif isinstance(effect, Log):
            self._log(effect.message, effect.level)
        elif isinstance(effect, RouteLine):
            self._on_line(effect.line, effect.port)

    def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()


