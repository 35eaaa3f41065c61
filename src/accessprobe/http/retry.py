# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Retry helper for HttpClient implementations."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING

from ..config import load_probe_settings
from ..errors import ErrorCategory, categorize_exception
from .client import HttpClient
from .models import HttpRequest, HttpResponse, RetryConfig

if TYPE_CHECKING:
    from ..probe.cancel import CancelToken

logger = logging.getLogger(__name__)

RetryHook = Callable[[int, float, HttpResponse], None]


def build_default_retry_config() -> RetryConfig:
    """Create a RetryConfig from environment-backed ProbeSettings."""
    settings = load_probe_settings()
    return RetryConfig.from_settings(settings)


def cancelled_response(attempts: int) -> HttpResponse:
    return HttpResponse(
        ok=False,
        error_message="cancelled",
        error_type="Cancelled",
        meta={"attempts": attempts, "error_category": ErrorCategory.CANCELLED},
    )


def _clamp_timeout(request: HttpRequest, cancel: CancelToken | None) -> HttpRequest:
    if cancel is None:
        return request
    remaining = cancel.remaining()
    if remaining is None:
        return request
    timeout = remaining if request.timeout is None else min(request.timeout, remaining)
    return replace(request, timeout=max(timeout, 0.001))


def _sleep(delay: float, cancel: CancelToken | None) -> bool:
    """Sleep between attempts; return True when the run was cancelled meanwhile."""
    if delay <= 0:
        return cancel is not None and cancel.cancelled()
    if cancel is None:
        time.sleep(delay)
        return False
    return cancel.wait(delay)


def send_with_retries(
    client: HttpClient,
    request: HttpRequest,
    *,
    retry_config: RetryConfig | None = None,
    cancel: CancelToken | None = None,
    rng: random.Random | None = None,
    on_retry: RetryHook | None = None,
) -> HttpResponse:
    """Execute a request, retrying transport failures with capped exponential backoff.

    Responses that carry a status code are returned immediately, whatever the
    code: a deterministic rejection does not change on retry. The number of
    attempts made is recorded in ``meta["attempts"]``.
    """
    cfg = retry_config or build_default_retry_config()

    attempt = 0
    last_response: HttpResponse | None = None

    while attempt < cfg.max_attempts:
        if cancel is not None and cancel.cancelled():
            return cancelled_response(attempt)
        try:
            response = client.request(_clamp_timeout(request, cancel))
        except Exception as exc:  # noqa: BLE001
            response = HttpResponse(
                ok=False,
                error_message=str(exc) or exc.__class__.__name__,
                error_type=exc.__class__.__name__,
                meta={"error_category": categorize_exception(exc)},
            )
        attempt += 1
        last_response = response

        if cancel is not None and cancel.cancelled():
            return cancelled_response(attempt)

        # Only transport-level failures (no status code) are retried.
        if response.ok or response.status_code is not None:
            response.meta["attempts"] = attempt
            return response

        if attempt >= cfg.max_attempts:
            break
        delay = cfg.delay_for(attempt - 1, rng)
        if on_retry is not None:
            on_retry(attempt, delay, response)
        if _sleep(delay, cancel):
            return cancelled_response(attempt)

    if last_response is None:
        return HttpResponse(ok=False, error_message="No attempts made", meta={"attempts": 0, "retry_exhausted": True})
    last_response.meta["attempts"] = attempt
    last_response.meta["retry_exhausted"] = True
    return last_response
