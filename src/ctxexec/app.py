"""ctxexec command line entry point.

Runs one program under a cancel signal built from --timeout and the
process's own SIGINT/SIGTERM, and exits with a shell-style code.

Usage:
    ctxexec --timeout 5 -- sleep 60
    ctxexec --timeout 30 --terminator graceful --term-timeout 1 --json -- ./server
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Iterator
from dataclasses import replace

from .cancellation import CancelSignal
from .cmd import supervise
from .config import Config, TerminatorKind, get_config
from .errors import Cancelled
from .outcome import RunOutcome
from .process import IS_WINDOWS, ProcessSpec
from .terminator import GracefulTerminator, Terminator, stop_process

__all__ = ["main", "run_command"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ctxexec",
        description="Run a program and stop it when a deadline or Ctrl+C fires.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline in seconds (required unless CTXEXEC_TIMEOUT is set)",
    )
    parser.add_argument(
        "--terminator",
        choices=[kind.value for kind in TerminatorKind],
        default=None,
        help="Termination strategy",
    )
    parser.add_argument("--term-timeout", type=float, default=None, help="Grace after SIGTERM")
    parser.add_argument("--kill-timeout", type=float, default=None, help="Wait after SIGKILL")
    parser.add_argument("--json", action="store_true", help="Print the outcome as JSON")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Program and arguments")
    return parser


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Overlay command line flags on the environment configuration."""
    overrides: dict[str, object] = {}
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.terminator is not None:
        overrides["terminator"] = TerminatorKind(args.terminator)
    if args.term_timeout is not None:
        overrides["term_timeout"] = args.term_timeout
    if args.kill_timeout is not None:
        overrides["kill_timeout"] = args.kill_timeout
    return replace(config, **overrides)


def build_terminator(config: Config) -> Terminator:
    if config.terminator is TerminatorKind.GRACEFUL:
        return GracefulTerminator(
            term_timeout=config.term_timeout,
            kill_timeout=config.kill_timeout,
        )
    return stop_process


@contextlib.contextmanager
def cancel_on_signals(cancel_signal: CancelSignal) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into cancel_signal.cancel() for the block.

    Must be entered from inside the running event loop.
    """
    loop = asyncio.get_running_loop()
    signums = (signal.SIGINT,) if IS_WINDOWS else (signal.SIGINT, signal.SIGTERM)

    def _on_signal(signum: signal.Signals) -> None:
        logger.info(f"{signum.name} received, cancelling run")
        cancel_signal.cancel(Cancelled(f"received {signum.name}"))

    previous: dict[signal.Signals, object] = {}
    for signum in signums:
        if IS_WINDOWS:
            previous[signum] = signal.signal(
                signum,
                lambda sig, frame: loop.call_soon_threadsafe(_on_signal, signal.Signals(sig)),
            )
        else:
            loop.add_signal_handler(signum, _on_signal, signum)
    try:
        yield
    finally:
        for signum in signums:
            if IS_WINDOWS:
                signal.signal(signum, previous[signum])  # type: ignore[arg-type]
            else:
                loop.remove_signal_handler(signum)


async def run_command(command: list[str], config: Config) -> RunOutcome:
    """Supervise ``command`` according to ``config``."""
    if config.timeout is not None:
        cancel_signal = CancelSignal.with_timeout(config.timeout)
    else:
        cancel_signal = CancelSignal.with_cancel()

    logger.debug(f"Running {command} with {config}")
    with cancel_on_signals(cancel_signal):
        outcome = await supervise(
            cancel_signal,
            ProcessSpec(argv=command),
            build_terminator(config),
        )
    logger.info(
        f"Run finished: kind={outcome.kind.value} returncode={outcome.returncode} "
        f"elapsed={outcome.elapsed:.3f}s"
    )
    return outcome


def configure_logging(config: Config) -> None:
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    logging.getLogger("ctxexec").setLevel(log_level)


def main(argv: list[str] | None = None) -> int:
    """Main entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.error("no command given")

    config = apply_args(get_config(), args)
    if config.timeout is None:
        # wait() only returns once the signal fires, so a run needs a deadline
        parser.error("--timeout (or CTXEXEC_TIMEOUT) is required")
    configure_logging(config)

    outcome = asyncio.run(run_command(command, config))

    if args.json:
        print(outcome.model_dump_json())
    elif not outcome.ok:
        print(f"ctxexec: {outcome.error}", file=sys.stderr)

    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
