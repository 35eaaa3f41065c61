# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""URL helpers for targets and check paths."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from ..errors import ProbeConfigError

ALLOWED_SCHEMES = ("http", "https")


def normalize_target(base_url: str) -> str:
    """
    Validate a target base URL and return it without a trailing slash.

    Example:
      HTTPS://Gateway.example.com/api/ -> https://gateway.example.com/api
    """
    raw = str(base_url or "").strip()
    if not raw:
        raise ProbeConfigError("target is empty")
    try:
        parts = urlsplit(raw)
    except ValueError as exc:
        raise ProbeConfigError(f"target is not a valid URL: {exc}") from None
    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise ProbeConfigError(f"target scheme must be one of {', '.join(ALLOWED_SCHEMES)}")
    if not parts.hostname:
        raise ProbeConfigError("target has no host")
    if parts.username or parts.password:
        raise ProbeConfigError("target must not embed userinfo")
    if parts.query or parts.fragment:
        raise ProbeConfigError("target must not carry a query or fragment")
    path = parts.path.rstrip("/")
    return urlunsplit((scheme, parts.netloc.lower(), path, "", ""))


def build_check_url(base_url: str, path: str) -> str:
    """
    Join a normalized target with a check path.

    The target's own path is kept as a prefix:
      https://host/api + /health -> https://host/api/health
    """
    raw_path = str(path or "")
    if not raw_path.startswith("/"):
        raw_path = f"/{raw_path}"
    return f"{base_url.rstrip('/')}{raw_path}"


__all__ = ["ALLOWED_SCHEMES", "build_check_url", "normalize_target"]
