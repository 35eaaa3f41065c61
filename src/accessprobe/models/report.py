# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Aggregated probe report."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .check import CheckResult, CheckStatus


def aggregate_status(results: Iterable[CheckResult]) -> CheckStatus:
    """
    Reduce check outcomes to an overall status.

    PASS iff every result passed. Otherwise ERROR dominates FAIL, since a
    check that never got an answer says less about the target than one that
    was rejected. An empty sequence verified nothing and is an ERROR.
    """
    statuses = [result.status for result in results]
    if not statuses:
        return CheckStatus.ERROR
    if all(status == CheckStatus.PASS for status in statuses):
        return CheckStatus.PASS
    if any(status == CheckStatus.ERROR for status in statuses):
        return CheckStatus.ERROR
    return CheckStatus.FAIL


@dataclass(frozen=True)
class ProbeReport:
    """Ordered outcome of one run; one CheckResult per input CheckSpec."""

    target: str
    results: tuple[CheckResult, ...]
    cancelled: bool = False
    started_at: str = ""
    finished_at: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "results", tuple(self.results))

    @property
    def status(self) -> CheckStatus:
        return aggregate_status(self.results)

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASS

    @property
    def elapsed(self) -> float:
        return sum(result.elapsed for result in self.results)

    def counts(self) -> dict[str, int]:
        out = {status.value: 0 for status in CheckStatus}
        for result in self.results:
            out[result.status.value] += 1
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "status": self.status.value,
            "cancelled": self.cancelled,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "counts": self.counts(),
            "checks": [result.to_dict() for result in self.results],
        }


__all__ = ["ProbeReport", "aggregate_status"]
