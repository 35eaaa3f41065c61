# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy and exception helpers."""

from __future__ import annotations

import socket
import ssl as ssl_module
from enum import Enum

import httpx


class ProbeConfigError(ValueError):
    """Invalid run input: raised before any network call is made."""


class ErrorCategory(str, Enum):
    TIMEOUT = "TIMEOUT"
    SSL_ERROR = "SSL_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DNS_ERROR = "DNS_ERROR"
    CANCELLED = "CANCELLED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    NONE = "NONE"


_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated",
)


def categorize_exception(exc: BaseException) -> ErrorCategory:
    """
    Map Python/httpx exceptions to ErrorCategory.
    """
    if isinstance(exc, httpx.TimeoutException):
        return ErrorCategory.TIMEOUT

    cause = exc.__cause__ or exc.__context__
    if isinstance(exc, httpx.ConnectError):
        message = str(exc).lower()
        if isinstance(cause, socket.gaierror) or any(marker in message for marker in _DNS_MARKERS):
            return ErrorCategory.DNS_ERROR
        if isinstance(cause, ssl_module.SSLError) or "certificate" in message or "ssl" in message:
            return ErrorCategory.SSL_ERROR
        return ErrorCategory.CONNECTION_ERROR

    if isinstance(exc, (httpx.RemoteProtocolError, httpx.NetworkError, httpx.ProxyError)):
        return ErrorCategory.CONNECTION_ERROR

    if isinstance(exc, (ssl_module.SSLError, ssl_module.CertificateError)):
        return ErrorCategory.SSL_ERROR

    if isinstance(exc, (socket.gaierror, socket.herror)):
        return ErrorCategory.DNS_ERROR

    if isinstance(exc, TimeoutError):
        return ErrorCategory.TIMEOUT

    if isinstance(exc, (ConnectionError, ConnectionRefusedError, ConnectionResetError)):
        return ErrorCategory.CONNECTION_ERROR

    return ErrorCategory.UNKNOWN_ERROR


def categorize_error_type(error_type: str | None) -> ErrorCategory:
    """Best-effort category for a response that only kept the exception class name."""
    if not error_type:
        return ErrorCategory.UNKNOWN_ERROR
    if error_type == "Cancelled":
        return ErrorCategory.CANCELLED
    if "Timeout" in error_type:
        return ErrorCategory.TIMEOUT
    if error_type in {"gaierror", "herror"}:
        return ErrorCategory.DNS_ERROR
    if "SSL" in error_type or "Certificate" in error_type:
        return ErrorCategory.SSL_ERROR
    if "Connect" in error_type or "Network" in error_type or "Protocol" in error_type or "Proxy" in error_type:
        return ErrorCategory.CONNECTION_ERROR
    return ErrorCategory.UNKNOWN_ERROR


def error_category_to_reason(category: ErrorCategory | None) -> str:
    """User-facing reason string."""
    mapping = {
        ErrorCategory.TIMEOUT: "Network timeout during check",
        ErrorCategory.SSL_ERROR: "TLS/certificate issue",
        ErrorCategory.CONNECTION_ERROR: "Network connectivity issue",
        ErrorCategory.DNS_ERROR: "DNS resolution failure",
        ErrorCategory.CANCELLED: "cancelled",
        ErrorCategory.UNKNOWN_ERROR: "Network error during check",
        ErrorCategory.NONE: "",
        None: "",
    }
    return mapping.get(category, "Check failed due to network error")


__all__ = [
    "ErrorCategory",
    "ProbeConfigError",
    "categorize_error_type",
    "categorize_exception",
    "error_category_to_reason",
]
