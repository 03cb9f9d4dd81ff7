"""ctxexec environment configuration.

Environment variables:
    CTXEXEC_TIMEOUT: Default run timeout in seconds
        - empty/unset = no deadline (the run ends on Ctrl+C or SIGTERM)
        - e.g. "30" or "2.5"

    CTXEXEC_TERMINATOR: Termination strategy
        - default = interrupt + terminate, kill at once if the signal fired (default)
        - graceful = interrupt + terminate, wait CTXEXEC_TERM_TIMEOUT, then kill

    CTXEXEC_TERM_TIMEOUT: Grace period after SIGTERM for "graceful" (default 2.0)

    CTXEXEC_KILL_TIMEOUT: Wait after SIGKILL for "graceful" (default 1.0)

    CTXEXEC_LOG_DEBUG: Debug logging
        - true/1/yes = on (DEBUG log written to a temp file)
        - false/0/no = off (default, INFO to stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from .terminator import DEFAULT_KILL_TIMEOUT, DEFAULT_TERM_TIMEOUT

__all__ = ["Config", "TerminatorKind", "get_config", "load_config", "reload_config"]


class TerminatorKind(Enum):
    DEFAULT = "default"
    GRACEFUL = "graceful"

    @classmethod
    def from_string(cls, value: str) -> "TerminatorKind":
        """Parse a strategy name; unknown values fall back to DEFAULT."""
        value = value.lower().strip()
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.DEFAULT


@dataclass
class Config:
    """ctxexec configuration.

    Attributes:
        timeout: Default run timeout in seconds, None for no deadline
        terminator: Termination strategy
        term_timeout: Grace period after SIGTERM (graceful only)
        kill_timeout: Wait after SIGKILL (graceful only)
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug is on)
    """

    timeout: float | None = None
    terminator: TerminatorKind = TerminatorKind.DEFAULT
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(value: str | None, default: float | None) -> float | None:
    """Parse a non-negative duration; invalid input yields the default."""
    if not value or not value.strip():
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    if seconds < 0:
        return default
    return seconds


def _generate_log_file_path() -> str:
    log_dir = Path(tempfile.gettempdir()) / "ctxexec"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"ctxexec_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("CTXEXEC_LOG_DEBUG"), default=False)

    return Config(
        timeout=_parse_seconds(os.environ.get("CTXEXEC_TIMEOUT"), None),
        terminator=TerminatorKind.from_string(os.environ.get("CTXEXEC_TERMINATOR", "")),
        term_timeout=_parse_seconds(
            os.environ.get("CTXEXEC_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT
        ),
        kill_timeout=_parse_seconds(
            os.environ.get("CTXEXEC_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT
        ),
        log_debug=log_debug,
        log_file=_generate_log_file_path() if log_debug else None,
    )


_config: Config | None = None


def get_config() -> Config:
    """Return the lazily loaded global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
