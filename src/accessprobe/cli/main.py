# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""accessprobe CLI.

Takes no positional arguments: the target, credential and checks come from
the environment or a config file so secrets never show up in process
listings.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace

from ..config import ProbeSettings, load_probe_settings
from ..errors import ProbeConfigError
from ..loader import load_config
from ..log import install_redaction, setup_logging
from ..probe.cancel import CancelToken
from ..render import append_step_summary, render_json, render_text, write_json_report
from ..runtime import AccessProbe
from ..version import __version__

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accessprobe",
        description=(
            "Credentialed health/readiness probe. Target, credential and checks are read from "
            "ACCESSPROBE_* environment variables or a config file."
        ),
    )
    parser.add_argument("--config", help="JSON or YAML config file (default: $ACCESSPROBE_CONFIG)")
    parser.add_argument("--json", action="store_true", help="Print the JSON report instead of the text summary")
    parser.add_argument("--output", help="Also write the JSON report to this file")
    parser.add_argument("--deadline", type=float, help="Overall run deadline in seconds")
    parser.add_argument("--concurrency", type=int, help="Run independent checks on up to N threads")
    parser.add_argument(
        "--ignore-ssl-errors",
        action="store_true",
        help="Skip TLS verification (useful for lab/self-signed targets)",
    )
    parser.add_argument("--log-level", help="Logging level (default: $ACCESSPROBE_LOG_LEVEL or WARNING)")
    parser.add_argument(
        "--no-step-summary",
        action="store_true",
        help="Do not append a Markdown summary to $GITHUB_STEP_SUMMARY",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _apply_cli_overrides(settings: ProbeSettings, args: argparse.Namespace) -> ProbeSettings:
    if args.ignore_ssl_errors:
        settings = replace(settings, verify_ssl=False)
    if args.deadline is not None:
        settings = replace(settings, deadline=args.deadline if args.deadline > 0 else None)
    if args.concurrency is not None:
        settings = replace(settings, concurrency=max(1, args.concurrency))
    return settings


@contextmanager
def _cancel_on_signals(cancel: CancelToken) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into a cancellation of the run (main thread only)."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, _frame: object) -> None:
        logger.warning("received signal %d, cancelling run", signum)
        cancel.cancel()

    previous: dict[int, Callable | int | None] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, handler)
    try:
        yield
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old if old is not None else signal.SIG_DFL)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    settings = _apply_cli_overrides(load_probe_settings(), args)
    try:
        config = load_config(args.config, settings=settings)
    except ProbeConfigError as exc:
        print(f"accessprobe: configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    # CLI flags beat the config file's settings section.
    config = replace(config, settings=_apply_cli_overrides(config.settings, args))
    install_redaction(config.credential.redactor())

    cancel = CancelToken(deadline=config.settings.deadline)
    try:
        with _cancel_on_signals(cancel), AccessProbe(settings=config.settings) as probe:
            report = probe.run_config(config, cancel=cancel)
    except ProbeConfigError as exc:
        print(f"accessprobe: configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    if args.json:
        print(render_json(report))
    else:
        print(render_text(report))

    if args.output:
        write_json_report(report, args.output)

    summary_path = os.getenv("GITHUB_STEP_SUMMARY")
    if summary_path and not args.no_step_summary:
        try:
            append_step_summary(report, summary_path)
        except OSError as exc:
            logger.warning("could not write step summary to %s: %s", summary_path, exc)

    return EXIT_OK if report.passed else EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
