"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path
from unittest import mock

import anyio
import pytest

PROJECT_ROOT = Path(__file__).parent.parent

SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CLI_PATH = FIXTURES_DIR / "fake_cli.py"

from ctxexec.process import ProcessHandle, ProcessSpec  # noqa: E402


@pytest.fixture
def fake_cli() -> Callable[..., list[str]]:
    """Build an argv running tests/fixtures/fake_cli.py."""

    def _argv(
        *,
        duration: float = 10.0,
        on_signal: str = "default",
        exit_code: int = 0,
        ready_file: Path | None = None,
    ) -> list[str]:
        argv = [
            sys.executable,
            str(FAKE_CLI_PATH),
            "--duration",
            str(duration),
            "--on-signal",
            on_signal,
            "--exit-code",
            str(exit_code),
        ]
        if ready_file is not None:
            argv += ["--ready-file", str(ready_file)]
        return argv

    return _argv


@pytest.fixture
def python_handle() -> Callable[[str], ProcessHandle]:
    """Build a handle running ``python -c <code>``."""

    def _handle(code: str) -> ProcessHandle:
        return ProcessHandle(ProcessSpec(argv=[sys.executable, "-c", code]))

    return _handle


@pytest.fixture
def wait_for_file():
    """Poll until a file exists (the fake program's readiness marker)."""

    async def _wait(path: Path, timeout: float = 5.0) -> None:
        with anyio.fail_after(timeout):
            while not path.exists():
                await anyio.sleep(0.02)

    return _wait


@pytest.fixture
def clean_env():
    """Environment without CTXEXEC_* variables, config reloaded."""
    from ctxexec.config import reload_config

    env = {k: v for k, v in os.environ.items() if not k.startswith("CTXEXEC_")}
    with mock.patch.dict(os.environ, env, clear=True):
        reload_config()
        yield
    reload_config()
