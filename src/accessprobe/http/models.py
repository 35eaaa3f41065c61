# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP request/response data models used across accessprobe."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any

from ..config import ProbeSettings

Headers = dict[str, str]


@dataclass
class HttpRequest:
    """Normalized request representation consumed by HttpClient implementations.

    Headers carry credential values, so they are kept out of ``repr()``.
    """

    url: str
    method: str = "GET"
    headers: Headers | None = field(default=None, repr=False)
    body: bytes | str | None = field(default=None, repr=False)
    timeout: float | None = None
    allow_redirects: bool = False


@dataclass
class HttpResponse:
    """Normalized HTTP response with the metadata the probe engine needs."""

    ok: bool
    status_code: int | None = None
    headers: Headers = field(default_factory=dict)
    text: str = ""
    content: bytes = b""
    url: str | None = None
    error_message: str | None = None
    error_type: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        """True when the server answered, whatever the status code."""
        return self.status_code is not None


@dataclass
class RetryConfig:
    """Retry policy for transport failures: capped exponential backoff with jitter."""

    max_attempts: int = 3
    backoff_factor: float = 2.0
    initial_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.5

    def base_delay(self, retry_index: int) -> float:
        """Delay before retry ``retry_index`` (0-based), before jitter."""
        delay = self.initial_delay * (self.backoff_factor**retry_index)
        return max(0.0, min(self.max_delay, delay))

    def delay_for(self, retry_index: int, rng: random.Random | None = None) -> float:
        base = self.base_delay(retry_index)
        if self.jitter <= 0 or base <= 0:
            return base
        draw = (rng or random).uniform(1.0 - self.jitter, 1.0)
        return base * draw

    def max_total_backoff(self) -> float:
        """Upper bound on the summed sleep between all attempts."""
        return sum(self.base_delay(i) for i in range(max(0, self.max_attempts - 1)))

    @classmethod
    def from_settings(cls, settings: ProbeSettings) -> RetryConfig:
        """Build a retry config from the shared ProbeSettings."""
        return cls(
            max_attempts=max(1, settings.retries + 1),
            backoff_factor=settings.backoff_factor,
            initial_delay=settings.initial_delay,
            max_delay=settings.max_delay,
            jitter=settings.jitter,
        )
