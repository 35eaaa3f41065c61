# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Logging helpers for accessprobe."""

from __future__ import annotations

import logging
import os

from .redact import Redactor

DEFAULT_LOG_LEVEL = os.getenv("ACCESSPROBE_LOG_LEVEL", "WARNING").upper()


class SecretRedactingFilter(logging.Filter):
    """Rewrite log records so no credential value reaches a handler."""

    def __init__(self, redactor: Redactor):
        super().__init__()
        self.redactor = redactor

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.redactor.active:
            return True
        try:
            message = record.getMessage()
        except Exception:  # noqa: BLE001
            message = str(record.msg)
        record.msg = self.redactor.redact(message)
        record.args = None
        if record.exc_text:
            record.exc_text = self.redactor.redact(record.exc_text)
        return True


def setup_logging(level: str | None = None, redactor: Redactor | None = None) -> None:
    """Configure standard logging for CLI/library use."""
    effective_level = (level or DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, effective_level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )
    if redactor is not None:
        install_redaction(redactor)


def install_redaction(redactor: Redactor, logger: logging.Logger | None = None) -> SecretRedactingFilter:
    """Attach a redacting filter to every handler of ``logger`` (root by default)."""
    target = logger or logging.getLogger()
    redacting = SecretRedactingFilter(redactor)
    for handler in target.handlers:
        handler.addFilter(redacting)
    return redacting


__all__ = ["SecretRedactingFilter", "install_redaction", "setup_logging"]
