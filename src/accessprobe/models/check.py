# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Check definitions and check result models."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..config import ProbeSettings
from ..errors import ErrorCategory, ProbeConfigError
from ..http.models import RetryConfig

ALLOWED_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})


class CheckStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    ERROR = "ERROR"


class PredicateKind(str, Enum):
    CONTAINS = "contains"
    JSON_KEY = "json_key"
    JSON_EQUALS = "json_equals"


@dataclass(frozen=True)
class BodyPredicate:
    """
    Condition a completed response body must satisfy.

    - ``contains``: the decoded body contains ``value`` as a substring.
    - ``json_key``: the body is JSON and the dotted path ``value`` exists.
    - ``json_equals``: the body is JSON and the value at ``value`` equals ``expected``.

    Dotted paths walk objects by key and arrays by integer index
    (``choices.0.message``).
    """

    kind: PredicateKind
    value: str
    expected: Any = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "kind", PredicateKind(self.kind))
        except ValueError:
            raise ProbeConfigError(f"unknown body predicate kind: {self.kind!r}") from None
        if not isinstance(self.value, str) or not self.value:
            raise ProbeConfigError("body predicate needs a non-empty value")

    @classmethod
    def contains(cls, text: str) -> BodyPredicate:
        return cls(PredicateKind.CONTAINS, text)

    @classmethod
    def json_key(cls, path: str) -> BodyPredicate:
        return cls(PredicateKind.JSON_KEY, path)

    @classmethod
    def json_equals(cls, path: str, expected: Any) -> BodyPredicate:
        return cls(PredicateKind.JSON_EQUALS, path, expected)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BodyPredicate:
        """Accepts ``{"contains": ..}``, ``{"json_key": ..}``, ``{"json_path": .., "equals": ..}``
        or the explicit ``{"kind": .., "value": .., "expected": ..}`` form."""
        if not isinstance(data, Mapping):
            raise ProbeConfigError("body predicate must be a mapping")
        if "kind" in data:
            return cls(data["kind"], data.get("value"), data.get("expected"))
        if "contains" in data:
            return cls.contains(data["contains"])
        if "json_key" in data:
            return cls.json_key(data["json_key"])
        if "json_path" in data and "equals" in data:
            return cls.json_equals(data["json_path"], data["equals"])
        raise ProbeConfigError(f"unrecognized body predicate keys: {', '.join(sorted(map(str, data)))}")

    def describe(self) -> str:
        if self.kind == PredicateKind.CONTAINS:
            return f"body contains {self.value!r}"
        if self.kind == PredicateKind.JSON_KEY:
            return f"JSON key {self.value!r} present"
        return f"JSON {self.value!r} == {self.expected!r}"


def _coerce_status_codes(value: Any) -> tuple[int, ...]:
    if isinstance(value, bool):
        raise ProbeConfigError("expected_status must be an integer or a list of integers")
    if isinstance(value, (int, str)):
        value = [value]
    try:
        codes = tuple(int(code) for code in value)
    except (TypeError, ValueError):
        raise ProbeConfigError("expected_status must be an integer or a list of integers") from None
    if not codes:
        raise ProbeConfigError("expected_status must not be empty")
    for code in codes:
        if not 100 <= code <= 599:
            raise ProbeConfigError(f"expected_status {code} is not a valid HTTP status code")
    return codes


@dataclass(frozen=True)
class CheckSpec:
    """Declarative description of one HTTP verification step."""

    name: str
    path: str = "/"
    method: str = "GET"
    body: str | bytes | Mapping[str, Any] | list[Any] | None = None
    headers: Mapping[str, str] | None = None
    expected_status: tuple[int, ...] = (200,)
    body_predicate: BodyPredicate | None = None
    timeout: float = 10.0
    retries: int = 2
    backoff_initial: float = 0.5
    backoff_factor: float = 2.0
    backoff_max: float = 8.0
    jitter: float = 0.5
    depends_on: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ProbeConfigError("check name is empty")
        label = self.name
        if not isinstance(self.method, str) or self.method.upper() not in ALLOWED_METHODS:
            raise ProbeConfigError(f"check {label!r}: unsupported method {self.method!r}")
        object.__setattr__(self, "method", self.method.upper())
        if not isinstance(self.path, str):
            raise ProbeConfigError(f"check {label!r}: path must be a string")
        object.__setattr__(self, "expected_status", _coerce_status_codes(self.expected_status))
        if self.headers is not None:
            if not isinstance(self.headers, Mapping):
                raise ProbeConfigError(f"check {label!r}: headers must be a mapping")
            object.__setattr__(self, "headers", {str(k): str(v) for k, v in self.headers.items()})
        if isinstance(self.body_predicate, Mapping):
            object.__setattr__(self, "body_predicate", BodyPredicate.from_mapping(self.body_predicate))
        if self.timeout is None or self.timeout <= 0:
            raise ProbeConfigError(f"check {label!r}: timeout must be positive")
        if self.retries is None or int(self.retries) < 0:
            raise ProbeConfigError(f"check {label!r}: retries must be >= 0")
        object.__setattr__(self, "retries", int(self.retries))
        if self.backoff_initial < 0 or self.backoff_max < 0:
            raise ProbeConfigError(f"check {label!r}: backoff delays must be >= 0")
        if self.backoff_factor < 1:
            raise ProbeConfigError(f"check {label!r}: backoff_factor must be >= 1")
        if not 0.0 <= self.jitter <= 1.0:
            raise ProbeConfigError(f"check {label!r}: jitter must be between 0 and 1")
        if isinstance(self.depends_on, str):
            object.__setattr__(self, "depends_on", (self.depends_on,))
        else:
            object.__setattr__(self, "depends_on", tuple(str(dep) for dep in self.depends_on))
        if self.name in self.depends_on:
            raise ProbeConfigError(f"check {label!r} depends on itself")

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retries + 1,
            backoff_factor=self.backoff_factor,
            initial_delay=self.backoff_initial,
            max_delay=self.backoff_max,
            jitter=self.jitter,
        )

    def worst_case_duration(self) -> float:
        """Upper bound on wall time: every attempt times out and every backoff is taken in full."""
        return self.timeout * (self.retries + 1) + self.retry_config().max_total_backoff()

    def encoded_body(self) -> tuple[str | bytes | None, str | None]:
        """Return the request payload and the content type it implies."""
        if self.body is None:
            return None, None
        if isinstance(self.body, bytes):
            return self.body, "application/octet-stream"
        if isinstance(self.body, str):
            return self.body, "text/plain; charset=utf-8"
        return json.dumps(self.body, separators=(",", ":")), "application/json"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], defaults: ProbeSettings | None = None) -> CheckSpec:
        """Build a spec from a config-file entry, filling gaps from ``defaults``."""
        if not isinstance(data, Mapping):
            raise ProbeConfigError("each check must be a mapping")
        settings = defaults or ProbeSettings()
        name = data.get("name")

        body = data.get("body")
        if "json" in data:
            body = data["json"]

        predicate: BodyPredicate | None = None
        raw_predicate = data.get("body_predicate", data.get("expect_body"))
        if raw_predicate is not None:
            predicate = BodyPredicate.from_mapping(raw_predicate)
        elif "contains" in data:
            predicate = BodyPredicate.contains(data["contains"])
        elif "json_key" in data:
            predicate = BodyPredicate.json_key(data["json_key"])
        elif "json_path" in data:
            predicate = BodyPredicate.json_equals(data["json_path"], data.get("equals"))

        backoff = data.get("backoff") or {}
        if not isinstance(backoff, Mapping):
            raise ProbeConfigError(f"check {name!r}: backoff must be a mapping")

        try:
            return cls(
                name=name,
                path=data.get("path", "/"),
                method=data.get("method", "GET"),
                body=body,
                headers=data.get("headers"),
                expected_status=data.get("expected_status", data.get("expect_status", (200,))),
                body_predicate=predicate,
                timeout=float(data.get("timeout", settings.timeout)),
                retries=int(data.get("retries", settings.retries)),
                backoff_initial=float(backoff.get("initial", data.get("backoff_initial", settings.initial_delay))),
                backoff_factor=float(backoff.get("factor", data.get("backoff_factor", settings.backoff_factor))),
                backoff_max=float(backoff.get("max", data.get("backoff_max", settings.max_delay))),
                jitter=float(backoff.get("jitter", data.get("jitter", settings.jitter))),
                depends_on=data.get("depends_on", ()),
            )
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ProbeConfigError):
                raise
            raise ProbeConfigError(f"check {name!r}: {exc}") from None


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one CheckSpec."""

    name: str
    status: CheckStatus
    status_code: int | None = None
    body: str = ""
    elapsed: float = 0.0
    attempts: int = 0
    reason: str = ""
    error_category: ErrorCategory | None = None
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details or {})))

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASS

    @property
    def cancelled(self) -> bool:
        return self.error_category == ErrorCategory.CANCELLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "status_code": self.status_code,
            "elapsed": round(self.elapsed, 4),
            "attempts": self.attempts,
            "reason": self.reason,
            "error_category": self.error_category.value if self.error_category else None,
            "body": self.body,
            "details": dict(self.details),
        }


__all__ = [
    "ALLOWED_METHODS",
    "BodyPredicate",
    "CheckResult",
    "CheckSpec",
    "CheckStatus",
    "PredicateKind",
]
