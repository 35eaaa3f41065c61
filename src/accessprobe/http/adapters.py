# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""In-memory HttpClient for tests and dry runs."""

from __future__ import annotations

from collections.abc import Callable

from .client import HttpClient
from .models import HttpRequest, HttpResponse

Responder = Callable[[HttpRequest], HttpResponse]


class StubHttpClient(HttpClient):
    """Deterministic, programmable HttpClient for tests.

    Responses are looked up by URL; a value may be a fixed HttpResponse or a
    callable that receives the request.
    """

    def __init__(self, responses: dict[str, HttpResponse | Responder] | None = None):
        self._responses = responses or {}
        self.requests: list[HttpRequest] = []
        self.closed = False

    def add(self, url: str, response: HttpResponse | Responder) -> None:
        self._responses[url] = response

    def request(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        stubbed = self._responses.get(request.url)
        if stubbed is None:
            return HttpResponse(ok=False, status_code=None, error_message="No stubbed response configured", error_type="ConnectError")
        if callable(stubbed):
            return stubbed(request)
        return stubbed

    def close(self) -> None:
        self.closed = True
