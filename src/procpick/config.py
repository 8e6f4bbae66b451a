"""Configuration for procpick.

Settings are read from a ``[procpick]`` table in ``procpick.toml`` (current
directory or any parent) or ``$XDG_CONFIG_HOME/procpick/config.toml``.
"""

import logging
import os
import re
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path

from procpick.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "procpick.toml"

# The trace buffer name doubles as the Textual widget id of the trace log
_BUFFER_NAME = re.compile(r"[a-zA-Z_\-][a-zA-Z0-9_\-]*")


@dataclass(slots=True, frozen=True)
class ProcPickConfig:
    """Settings shared by the lookup, action and trace components."""

    polite_kill_delay: float = 10.0
    trace_buffer_name: str = "strace-output"
    trace_process_name: str = "strace"
    tracer: str = "strace"
    tracer_args: tuple[str, ...] = ("-p",)
    escalation_command: tuple[str, ...] = ("sudo", "-S")
    trace_duration: float = 10.0
    trace_kill_grace: float = 2.0
    search_strategy: str = "pgrep"
    search_command: str = "pgrep"
    search_timeout: float = 5.0
    proc_root: Path = Path("/proc")
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if not _BUFFER_NAME.fullmatch(self.trace_buffer_name):
            raise ConfigError(
                f"trace_buffer_name must contain only letters, digits, '-' and '_' "
                f"and not start with a digit, got {self.trace_buffer_name!r}"
            )


def _find_config_file() -> Path | None:
    """Find the config file in the current/parent directories or XDG config dir."""
    current = Path.cwd()

    for parent in [current] + list(current.parents):
        config_file = parent / CONFIG_FILENAME
        if config_file.exists():
            return config_file

    xdg_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    config_file = Path(xdg_home) / "procpick" / "config.toml"
    if config_file.exists():
        return config_file

    return None


def _coerce(name: str, expected: object, value: object) -> object:
    """Convert a raw TOML value to the type of the dataclass default."""
    if isinstance(expected, bool) or isinstance(value, bool):
        raise ConfigError(f"Invalid value for '{name}': {value!r}")
    if isinstance(expected, float):
        if not isinstance(value, (int, float)) or value < 0:
            raise ConfigError(f"'{name}' must be a non-negative number, got {value!r}")
        return float(value)
    if isinstance(expected, tuple):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"'{name}' must be a list of strings, got {value!r}")
        return tuple(value)
    if isinstance(expected, Path):
        if not isinstance(value, str):
            raise ConfigError(f"'{name}' must be a path string, got {value!r}")
        return Path(value).expanduser()
    if not isinstance(value, str):
        raise ConfigError(f"'{name}' must be a string, got {value!r}")
    return value


def config_from_mapping(data: dict) -> ProcPickConfig:
    """Build a config from a ``[procpick]`` table, validating keys and types."""
    defaults = ProcPickConfig()
    known = {f.name for f in fields(ProcPickConfig)}

    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    level = data.get("log_level")
    if isinstance(level, str):
        if level.upper() not in logging.getLevelNamesMapping():
            raise ConfigError(f"Unknown log level '{level}'")
        data = {**data, "log_level": level.upper()}

    changes = {name: _coerce(name, getattr(defaults, name), value) for name, value in data.items()}
    return replace(defaults, **changes)


def load_config(path: Path | None = None) -> ProcPickConfig:
    """Load configuration from ``path`` or the first config file found.

    Returns the defaults when no file exists.
    """
    if path is None:
        path = _find_config_file()

    if path is None or not path.exists():
        return ProcPickConfig()

    logger.debug("Loading config from %s", path)
    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    table = raw.get("procpick", {})
    if not isinstance(table, dict):
        raise ConfigError(f"[procpick] in {path} must be a table")
    return config_from_mapping(table)
