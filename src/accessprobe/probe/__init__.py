# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Probe engine exports."""

from .cancel import CancelToken
from .engine import CANCELLED_REASON, ProbeEngine, run_checks
from .predicates import evaluate_body, resolve_path, status_matches

__all__ = [
    "CANCELLED_REASON",
    "CancelToken",
    "ProbeEngine",
    "evaluate_body",
    "resolve_path",
    "run_checks",
    "status_matches",
]
