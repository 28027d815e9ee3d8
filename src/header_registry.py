"""Ordered CSV column schema, persisted across restarts."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

from config_manager import delete_config, load_config, save_config
from logger_errors import CommandResult, ValidationError

RESERVED_COLUMN = "Timestamp"
DEFAULT_HEADERS: Tuple[str, ...] = (RESERVED_COLUMN, "Data1", "Data2", "Data3", "Data4", "Data5")
MIN_COLUMNS = 2

logger = logging.getLogger(__name__)


def validate_headers(headers: object) -> Tuple[str, ...]:
    """Return a normalised schema or raise ValidationError.

    Column 0 is always replaced by the reserved timestamp column.
    """
    if isinstance(headers, (str, bytes)) or not isinstance(headers, Sequence):
        raise ValidationError("Headers must be a list of column names")
    if len(headers) < MIN_COLUMNS:
        raise ValidationError(
            "Headers must be an array with at least 2 items (Timestamp + 1 data field)"
        )
    columns = [str(h).strip() for h in headers]
    columns[0] = RESERVED_COLUMN
    return tuple(columns)


class HeaderRegistry:
    """Holds the current header schema.

    The schema is an immutable tuple that is swapped wholesale, so ``get()``
    always returns a consistent snapshot.
    """

    def __init__(self, path: Path, log: Optional[Callable[..., None]] = None) -> None:
        self.path = Path(path)
        self._log = log or logger.info
        self._headers: Tuple[str, ...] = DEFAULT_HEADERS

    def load(self) -> Tuple[str, ...]:
        try:
            config = load_config(self.path)
        except FileNotFoundError:
            self._headers = DEFAULT_HEADERS
            return self._headers
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {self.path}: {e}")
            self._log("Using default headers (config load failed)")
            self._headers = DEFAULT_HEADERS
            return self._headers

        try:
            self._headers = validate_headers(config.get("headers"))
        except ValidationError as e:
            logger.warning(f"Invalid headers in {self.path}: {e}")
            self._log("Using default headers (config load failed)")
            self._headers = DEFAULT_HEADERS
            return self._headers

        self._log("Loaded saved headers from config")
        return self._headers

    def get(self) -> Tuple[str, ...]:
        return self._headers

    def save(self, headers: object) -> CommandResult:
        try:
            columns = validate_headers(headers)
        except ValidationError as e:
            return CommandResult.fail(str(e))

        self._headers = columns
        try:
            save_config(self.path, {"headers": list(columns)})
        except OSError as e:
            logger.error(f"Failed to persist headers to {self.path}: {e}")
            return CommandResult.fail(str(e))

        self._log(f"Headers updated: {len(columns)} columns configured")
        return CommandResult.ok()

    def reset(self) -> CommandResult:
        self._headers = DEFAULT_HEADERS
        try:
            delete_config(self.path)
        except OSError as e:
            logger.error(f"Error removing config file {self.path}: {e}")
        self._log("Headers reset to default")
        return CommandResult.ok()
