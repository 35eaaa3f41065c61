# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Success predicates applied to completed responses."""

from __future__ import annotations

import json
from typing import Any

from ..models.check import BodyPredicate, CheckSpec, PredicateKind

_MISSING = object()


def status_matches(spec: CheckSpec, status_code: int | None) -> bool:
    return status_code is not None and status_code in spec.expected_status


def resolve_path(document: Any, path: str) -> Any:
    """Walk a dotted path through decoded JSON; return a sentinel when absent."""
    current = document
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list):
            try:
                index = int(part)
            except ValueError:
                return _MISSING
            if not -len(current) <= index < len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def evaluate_body(predicate: BodyPredicate, text: str) -> tuple[bool, str]:
    """Return ``(matched, reason)``; ``reason`` is empty on a match."""
    if predicate.kind == PredicateKind.CONTAINS:
        if predicate.value in text:
            return True, ""
        return False, f"response body does not contain {predicate.value!r}"

    try:
        document = json.loads(text)
    except (TypeError, ValueError, RecursionError):
        # RecursionError: nesting deeper than the interpreter's recursion limit.
        return False, "response body is not valid JSON"

    found = resolve_path(document, predicate.value)
    if found is _MISSING:
        return False, f"JSON key {predicate.value!r} not found"
    if predicate.kind == PredicateKind.JSON_KEY:
        return True, ""
    if found == predicate.expected:
        return True, ""
    return False, f"JSON {predicate.value!r} is {found!r}, expected {predicate.expected!r}"


__all__ = ["evaluate_body", "resolve_path", "status_matches"]
