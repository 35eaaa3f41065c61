# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""High-level accessprobe facade."""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import suppress

from .config import ProbeSettings, load_probe_settings
from .http.client import HttpClient, create_default_http_client
from .loader import ProbeConfig
from .models import CheckSpec, Credential, ProbeReport, Target
from .probe.cancel import CancelToken
from .probe.engine import ProbeEngine


class AccessProbe:
    """
    Convenience wrapper that owns one HTTP client and one engine.

    Every attempt opens its own connection so the per-attempt timeout can
    close it.
    """

    def __init__(self, http_client: HttpClient | None = None, settings: ProbeSettings | None = None):
        self.settings = settings or load_probe_settings()
        self.http_client = http_client or create_default_http_client(self.settings)
        self.engine = ProbeEngine(self.http_client, self.settings)

    def run(
        self,
        target: Target | str,
        credential: Credential,
        specs: Iterable[CheckSpec],
        *,
        cancel: CancelToken | None = None,
    ) -> ProbeReport:
        return self.engine.run_checks(target, credential, specs, cancel=cancel)

    def run_config(self, config: ProbeConfig, *, cancel: CancelToken | None = None) -> ProbeReport:
        return self.engine.run_checks(config.target, config.credential, config.checks, cancel=cancel)

    def close(self) -> None:
        with suppress(Exception):
            if hasattr(self.http_client, "close"):
                self.http_client.close()

    def __enter__(self) -> AccessProbe:
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self.close()
