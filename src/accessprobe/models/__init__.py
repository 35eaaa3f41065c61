# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Dataclass exports for accessprobe."""

from ..http.models import Headers, HttpRequest, HttpResponse, RetryConfig
from .check import BodyPredicate, CheckResult, CheckSpec, CheckStatus, PredicateKind
from .credential import Credential, Target
from .report import ProbeReport, aggregate_status

__all__ = [
    "BodyPredicate",
    "CheckResult",
    "CheckSpec",
    "CheckStatus",
    "Credential",
    "Headers",
    "HttpRequest",
    "HttpResponse",
    "PredicateKind",
    "ProbeReport",
    "RetryConfig",
    "Target",
    "aggregate_status",
]
