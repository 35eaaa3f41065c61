# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential and target value objects."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from ..errors import ProbeConfigError
from ..http.url import normalize_target
from ..redact import Redactor

_FORBIDDEN_HEADER_CHARS = ("\r", "\n", "\x00")


def _check_header_value(field_name: str, value: object) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ProbeConfigError(f"credential {field_name} is missing")
    if any(ch in value for ch in _FORBIDDEN_HEADER_CHARS):
        raise ProbeConfigError(f"credential {field_name} contains control characters")
    # httpx encodes header values as ASCII.
    if not value.isascii():
        raise ProbeConfigError(f"credential {field_name} contains non-ASCII characters")


@dataclass(frozen=True, repr=False)
class Credential:
    """
    Identifier/secret pair sent as two request headers.

    Neither value is ever rendered by ``repr()`` or ``str()``; use
    ``redactor()`` to scrub them from arbitrary text.
    """

    identifier: str
    secret: str

    def __post_init__(self) -> None:
        _check_header_value("identifier", self.identifier)
        _check_header_value("secret", self.secret)

    def __repr__(self) -> str:
        return "Credential(identifier=<redacted>, secret=<redacted>)"

    __str__ = __repr__

    def headers(self, id_header: str, secret_header: str) -> dict[str, str]:
        return {id_header: self.identifier, secret_header: self.secret}

    def redactor(self) -> Redactor:
        return Redactor((self.identifier, self.secret))


@dataclass(frozen=True)
class Target:
    """Base address (scheme + host, optional path prefix) every check runs against."""

    url: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "url", normalize_target(self.url))

    @classmethod
    def parse(cls, raw: str) -> Target:
        return cls(url=raw)

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or ""

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    def __str__(self) -> str:
        return self.url
