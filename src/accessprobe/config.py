# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Configuration helpers for accessprobe."""

import os
from dataclasses import dataclass

from .version import __version__

DEFAULT_USER_AGENT = f"accessprobe/{__version__}"
DEFAULT_ID_HEADER = "CF-Access-Client-Id"
DEFAULT_SECRET_HEADER = "CF-Access-Client-Secret"


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _optional_float_env(name: str, default: float | None) -> float | None:
    try:
        value = os.getenv(name)
        if value is None:
            return default
        parsed = float(value)
        return parsed if parsed > 0 else None
    except ValueError:
        return default


def _str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass
class ProbeSettings:
    """HTTP and engine defaults shared by every check in a run."""

    timeout: float = 10.0
    retries: int = 2
    backoff_factor: float = 2.0
    initial_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.5
    user_agent: str = DEFAULT_USER_AGENT
    allow_redirects: bool = False
    verify_ssl: bool = True
    max_body_bytes: int = 1024 * 1024
    max_snippet_bytes: int = 2048
    concurrency: int = 1
    deadline: float | None = None
    id_header: str = DEFAULT_ID_HEADER
    secret_header: str = DEFAULT_SECRET_HEADER

    @classmethod
    def from_env(cls) -> "ProbeSettings":
        """Create settings from environment variables (evaluated at call time)."""
        timeout = _float_env("ACCESSPROBE_HTTP_TIMEOUT", cls.timeout)
        if timeout <= 0:
            timeout = cls.timeout
        retries = _int_env("ACCESSPROBE_HTTP_RETRIES", cls.retries)
        if retries < 0:
            retries = cls.retries
        max_body_bytes = _int_env("ACCESSPROBE_HTTP_MAX_BODY_BYTES", cls.max_body_bytes)
        if max_body_bytes <= 0:
            max_body_bytes = cls.max_body_bytes
        max_snippet_bytes = _int_env("ACCESSPROBE_SNIPPET_BYTES", cls.max_snippet_bytes)
        if max_snippet_bytes <= 0:
            max_snippet_bytes = cls.max_snippet_bytes
        jitter = _float_env("ACCESSPROBE_HTTP_JITTER", cls.jitter)
        if not 0.0 <= jitter <= 1.0:
            jitter = cls.jitter
        return cls(
            timeout=timeout,
            retries=retries,
            backoff_factor=_float_env("ACCESSPROBE_HTTP_BACKOFF", cls.backoff_factor),
            initial_delay=_float_env("ACCESSPROBE_HTTP_INITIAL_DELAY", cls.initial_delay),
            max_delay=_float_env("ACCESSPROBE_HTTP_MAX_DELAY", cls.max_delay),
            jitter=jitter,
            user_agent=os.getenv("ACCESSPROBE_USER_AGENT", cls.user_agent),
            allow_redirects=_bool_env("ACCESSPROBE_HTTP_REDIRECTS", cls.allow_redirects),
            verify_ssl=_bool_env("ACCESSPROBE_HTTP_VERIFY_SSL", cls.verify_ssl),
            max_body_bytes=max_body_bytes,
            max_snippet_bytes=max_snippet_bytes,
            concurrency=max(1, _int_env("ACCESSPROBE_CONCURRENCY", cls.concurrency)),
            deadline=_optional_float_env("ACCESSPROBE_DEADLINE", cls.deadline),
            id_header=_str_env("ACCESSPROBE_ID_HEADER", cls.id_header),
            secret_header=_str_env("ACCESSPROBE_SECRET_HEADER", cls.secret_header),
        )


def load_probe_settings() -> ProbeSettings:
    """Load probe settings from environment with sensible defaults."""
    return ProbeSettings.from_env()
