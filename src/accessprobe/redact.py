# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Secret masking for every string that leaves the engine.

Each region of the input covered by an occurrence of any secret (overlapping
occurrences included) is replaced by a mask built from a character that none
of the secrets contain. A secret therefore cannot span a mask, and any
occurrence inside an unmasked region would have been covered in the input, so
the output never contains a secret.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

_MASK_CANDIDATES = "*#~?%^"
_MASK_WIDTH = 3


def _pick_mask_char(secrets: Iterable[str]) -> str:
    used: set[str] = set()
    for secret in secrets:
        used.update(secret)
    for candidate in _MASK_CANDIDATES:
        if candidate not in used:
            return candidate
    codepoint = 0x2022
    while chr(codepoint) in used:
        codepoint += 1
    return chr(codepoint)


def _covered_spans(text: str, secrets: Iterable[str]) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    for secret in secrets:
        start = text.find(secret)
        while start != -1:
            spans.append((start, start + len(secret)))
            start = text.find(secret, start + 1)
    if not spans:
        return []
    spans.sort()
    merged = [spans[0]]
    for begin, end in spans[1:]:
        last_begin, last_end = merged[-1]
        if begin <= last_end:
            merged[-1] = (last_begin, max(last_end, end))
        else:
            merged.append((begin, end))
    return merged


class Redactor:
    """Masks a fixed set of secret strings."""

    def __init__(self, secrets: Iterable[str] = ()):
        self._secrets = tuple(sorted({s for s in secrets if s}, key=len, reverse=True))
        self.mask = _pick_mask_char(self._secrets) * _MASK_WIDTH

    @property
    def active(self) -> bool:
        return bool(self._secrets)

    def redact(self, text: str | None) -> str:
        if not text:
            return "" if text is None else text
        if not self._secrets:
            return text
        spans = _covered_spans(text, self._secrets)
        if not spans:
            return text
        out: list[str] = []
        cursor = 0
        for begin, end in spans:
            out.append(text[cursor:begin])
            out.append(self.mask)
            cursor = end
        out.append(text[cursor:])
        return "".join(out)

    def redact_value(self, value: Any) -> Any:
        """Recursively redact strings inside mappings, lists and tuples."""
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, dict):
            return {self.redact_value(k): self.redact_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.redact_value(v) for v in value)
        return value


__all__ = ["Redactor"]
