# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Header redaction for diagnostics.

HTTP header field names are case-insensitive (RFC 9110), so sensitive names
match without regard to case.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "<redacted>"

_ALWAYS_HIDDEN = frozenset({"authorization", "cookie", "proxy-authorization"})
# RFC 9110 field-name token characters.
_FIELD_NAME = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


def is_valid_header_name(name: object) -> bool:
    return isinstance(name, str) and _FIELD_NAME.fullmatch(name) is not None


def _as_mapping(headers: Any) -> Mapping[object, object] | None:
    """Accept dicts, httpx.Headers and iterables of pairs."""
    if not headers:
        return None
    if isinstance(headers, Mapping):
        return headers
    try:
        return dict(headers)
    except (TypeError, ValueError):
        return None


def redact_headers(headers: Mapping[object, object] | None, sensitive: Iterable[str]) -> dict[str, str]:
    """Copy ``headers`` with every sensitive header value replaced by a placeholder."""
    hidden = {str(name).lower() for name in sensitive} | _ALWAYS_HIDDEN
    mapping = _as_mapping(headers)
    if not mapping:
        return {}
    out: dict[str, str] = {}
    for key, value in mapping.items():
        if key is None:
            continue
        name = str(key)
        out[name] = REDACTED if name.lower() in hidden else ("" if value is None else str(value))
    return out


__all__ = ["REDACTED", "is_valid_header_name", "redact_headers"]
