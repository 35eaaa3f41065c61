# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
accessprobe package entrypoint.

A credentialed health/readiness probe: it sends a sequence of named HTTP
checks to a target behind an access gateway, authenticating with a pair of
service-token headers, and reduces the outcomes to a pass/fail report. HTTP
behavior is abstracted behind an injectable client interface, and domain
objects are modeled with typed dataclasses.
"""

from .config import ProbeSettings, load_probe_settings
from .errors import ErrorCategory, ProbeConfigError
from .http import (
    HttpClient,
    HttpRequest,
    HttpResponse,
    HttpxClient,
    RetryConfig,
    StubHttpClient,
    create_default_http_client,
)
from .loader import ProbeConfig, load_config
from .log import setup_logging
from .models import (
    BodyPredicate,
    CheckResult,
    CheckSpec,
    CheckStatus,
    Credential,
    ProbeReport,
    Target,
    aggregate_status,
)
from .probe import CancelToken, ProbeEngine, run_checks
from .redact import Redactor
from .runtime import AccessProbe
from .version import __version__

__all__ = [
    "AccessProbe",
    "BodyPredicate",
    "CancelToken",
    "CheckResult",
    "CheckSpec",
    "CheckStatus",
    "Credential",
    "ErrorCategory",
    "HttpClient",
    "HttpRequest",
    "HttpResponse",
    "HttpxClient",
    "ProbeConfig",
    "ProbeConfigError",
    "ProbeEngine",
    "ProbeReport",
    "ProbeSettings",
    "Redactor",
    "RetryConfig",
    "StubHttpClient",
    "Target",
    "aggregate_status",
    "create_default_http_client",
    "load_config",
    "load_probe_settings",
    "run_checks",
    "setup_logging",
    "__version__",
]
