"""Error taxonomy and structured command results for the Arduino logger."""
from __future__ import annotations

import errno
from dataclasses import dataclass
from typing import Optional


# Codes a busy, locked, or briefly missing log file reports.
TRANSIENT_ERRNOS = frozenset({errno.EBUSY, errno.ENOENT, errno.EPERM, errno.EACCES})
LOCKED_ERRNOS = frozenset({errno.EBUSY, errno.EPERM, errno.EACCES})


class ArduinoLoggerError(Exception):
    """Base class for all logger errors."""


class PortError(ArduinoLoggerError):
    def __init__(self, port: str, message: str = "") -> None:
        super().__init__(message or port)
        self.port = port


class PortOpenError(PortError):
    """Candidate port unreachable or busy."""


class PortTimeoutError(PortError):
    """Port opened but stayed silent."""


class PortRuntimeError(PortError):
    """Error reported by a port after it was opened."""


class ConnectionLostError(PortError):
    """Active port closed unexpectedly."""


class FileAccessError(ArduinoLoggerError):
    def __init__(self, path: object, message: str, transient: bool) -> None:
        super().__init__(message)
        self.path = path
        self.transient = transient


class ValidationError(ArduinoLoggerError):
    """Malformed header schema."""


def classify_os_error(exc: OSError, path: object = None) -> FileAccessError:
    """Map an OSError from the log/config path onto FileAccessError."""
    transient = exc.errno in TRANSIENT_ERRNOS
    return FileAccessError(path, exc.strerror or str(exc), transient=transient)


def is_locked(exc: OSError) -> bool:
    return exc.errno in LOCKED_ERRNOS


@dataclass(frozen=True)
class CommandResult:
    """Outcome handed back to the UI for every command."""

    success: bool
    error: Optional[str] = None
    file_path: Optional[str] = None
    original_file: Optional[str] = None

    @classmethod
    def ok(cls, **kwargs: Optional[str]) -> "CommandResult":
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, error: str) -> "CommandResult":
        return cls(success=False, error=error)
