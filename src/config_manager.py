from __future__ import annotations

import os
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


APP_NAME = "arduino_logger"
HEADERS_FILE_NAME = "headers_config.json"
SETTINGS_FILE_NAME = "settings.json"

DEFAULT_PORTS: Tuple[str, ...] = ("COM1", "COM2", "COM3", "COM4", "COM5", "COM6")
# Must match the Arduino sketch's Serial.begin().
DEFAULT_BAUDRATE = 115200
DEFAULT_LOG_DIR = Path("Log")

logger = logging.getLogger(__name__)


def get_user_config_dir() -> Path:
    """Return per-user config directory.

    Windows: %APPDATA%\\arduino_logger
    Others:  ~/.config/arduino_logger
    """
    if os.name == "nt":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / APP_NAME
        return Path.home() / "AppData" / "Roaming" / APP_NAME

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def get_headers_config_path() -> Path:
    return get_user_config_dir() / HEADERS_FILE_NAME


def get_settings_path() -> Path:
    return get_user_config_dir() / SETTINGS_FILE_NAME


def load_config(path: Path) -> Dict[str, Any]:
    """Read a JSON object from ``path``.

    Raises FileNotFoundError, ValueError (bad JSON or not an object) and OSError;
    callers decide what a fallback looks like.
    """
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} does not hold a JSON object")
    return data


def save_config(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    tmp.replace(path)


def delete_config(path: Path) -> bool:
    """Remove ``path`` if present. Returns True if a file was deleted."""
    if not path.exists():
        return False
    path.unlink()
    return True


@dataclass
class AppSettings:
    ports: Tuple[str, ...] = DEFAULT_PORTS
    baudrate: int = DEFAULT_BAUDRATE
    log_dir: Path = DEFAULT_LOG_DIR
    headers_path: Path = field(default_factory=get_headers_config_path)


def _coerce_ports(value: Any) -> Optional[Tuple[str, ...]]:
    if not isinstance(value, list):
        return None
    ports = tuple(str(p).strip() for p in value if str(p).strip())
    return ports or None


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load small persistent settings; anything missing or broken uses defaults."""
    path = path or get_settings_path()
    settings = AppSettings()
    try:
        data = load_config(path)
    except FileNotFoundError:
        return settings
    except (OSError, ValueError) as e:
        # Don't brick the app if settings are corrupted.
        logger.warning(f"Ignoring unreadable settings {path}: {e}")
        return settings

    ports = _coerce_ports(data.get("ports"))
    if ports:
        settings.ports = ports
    try:
        settings.baudrate = int(data.get("baudrate", settings.baudrate))
    except (TypeError, ValueError):
        logger.warning(f"Invalid baudrate in {path}, using {DEFAULT_BAUDRATE}")
    log_dir = data.get("log_dir")
    if isinstance(log_dir, str) and log_dir.strip():
        settings.log_dir = Path(log_dir).expanduser()
    return settings


def save_settings(settings: AppSettings, path: Optional[Path] = None) -> Path:
    path = path or get_settings_path()
    payload: Dict[str, Any] = {
        "ports": list(settings.ports),
        "baudrate": settings.baudrate,
        "log_dir": str(settings.log_dir),
    }
    save_config(path, payload)
    return path


def parse_ports_argument(raw: Optional[List[str]]) -> Optional[Tuple[str, ...]]:
    """Accept ``--ports COM3 COM4`` as well as ``--ports COM3,COM4``."""
    if not raw:
        return None
    ports: List[str] = []
    for item in raw:
        ports.extend(p.strip() for p in item.split(",") if p.strip())
    return tuple(ports) or None
