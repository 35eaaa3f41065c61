# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP client exports."""

from .adapters import StubHttpClient
from .client import HttpClient, create_default_http_client
from .headers import REDACTED, is_valid_header_name, redact_headers
from .httpx_client import HttpxClient
from .models import Headers, HttpRequest, HttpResponse, RetryConfig
from .retry import build_default_retry_config, send_with_retries
from .url import build_check_url, normalize_target

__all__ = [
    "REDACTED",
    "Headers",
    "HttpClient",
    "HttpxClient",
    "HttpRequest",
    "HttpResponse",
    "RetryConfig",
    "StubHttpClient",
    "build_check_url",
    "build_default_retry_config",
    "create_default_http_client",
    "is_valid_header_name",
    "normalize_target",
    "redact_headers",
    "send_with_retries",
]
