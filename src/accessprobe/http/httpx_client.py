# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""httpx-backed HttpClient implementation."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any

import httpx

from ..config import ProbeSettings, load_probe_settings
from ..errors import categorize_exception
from .client import HttpClient
from .models import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

_STREAM_EVENTS = ("connection.connect_tcp.complete", "connection.start_tls.complete")


class _AttemptDeadline:
    """
    Wall-clock limit for one request/response exchange.

    httpx timeouts apply to each connect, write and read separately, so a peer
    that trickles bytes can hold an attempt open indefinitely. When the limit
    passes, the timer shuts down the attempt's socket, which makes the blocked
    read return and the exchange fail.
    """

    def __init__(self, seconds: float):
        self.expired = False
        self._lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._timer = threading.Timer(seconds, self._expire)
        self._timer.daemon = True

    def trace(self, event_name: str, info: dict[str, Any]) -> None:
        # httpcore reports each new network stream through the trace extension.
        if event_name not in _STREAM_EVENTS:
            return
        stream = info.get("return_value")
        get_extra_info = getattr(stream, "get_extra_info", None)
        sock = get_extra_info("socket") if callable(get_extra_info) else None
        if sock is None:
            return
        with self._lock:
            self._sock = sock
            expired = self.expired
        if expired:
            self._shutdown(sock)

    def _expire(self) -> None:
        with self._lock:
            self.expired = True
            sock = self._sock
        if sock is not None:
            self._shutdown(sock)

    @staticmethod
    def _shutdown(sock: socket.socket) -> None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except (OSError, ValueError):
            pass

    def __enter__(self) -> _AttemptDeadline:
        self._timer.start()
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self._timer.cancel()


class HttpxClient(HttpClient):
    """Synchronous httpx client wrapper.

    Keep-alive is disabled on the default client so every attempt opens its
    own connection, which the per-attempt deadline can then abort.
    """

    def __init__(self, settings: ProbeSettings | None = None, client: httpx.Client | None = None):
        self.settings = settings or load_probe_settings()
        self._client = client or httpx.Client(
            follow_redirects=self.settings.allow_redirects,
            timeout=self.settings.timeout,
            verify=self.settings.verify_ssl,
            limits=httpx.Limits(max_keepalive_connections=0),
        )

    def request(self, request: HttpRequest) -> HttpResponse:
        headers = dict(request.headers or {})
        headers.setdefault("User-Agent", self.settings.user_agent)

        max_body_bytes = self.settings.max_body_bytes
        if max_body_bytes <= 0:
            max_body_bytes = 1024 * 1024
        timeout = request.timeout if request.timeout is not None else self.settings.timeout
        deadline = _AttemptDeadline(timeout)

        try:
            with deadline, self._client.stream(
                request.method,
                request.url,
                headers=headers,
                content=request.body,
                timeout=timeout,
                follow_redirects=request.allow_redirects,
                extensions={"trace": deadline.trace},
            ) as resp:
                content = bytearray()
                truncated = False
                for chunk in resp.iter_bytes():
                    if deadline.expired:
                        raise httpx.ReadTimeout("response not completed within timeout", request=resp.request)
                    if not chunk:
                        continue
                    remaining = max_body_bytes - len(content)
                    if remaining <= 0:
                        truncated = True
                        break
                    if len(chunk) > remaining:
                        content.extend(chunk[:remaining])
                        truncated = True
                        break
                    content.extend(chunk)
                if deadline.expired and not truncated:
                    # The shutdown may look like end-of-body on close-delimited responses.
                    raise httpx.ReadTimeout("response not completed within timeout", request=resp.request)

                encoding = resp.encoding or "utf-8"
                try:
                    text = bytes(content).decode(encoding, errors="replace")
                except LookupError:
                    text = bytes(content).decode("utf-8", errors="replace")

            return HttpResponse(
                ok=True,
                status_code=resp.status_code,
                headers=dict(resp.headers),
                text=text,
                content=bytes(content),
                url=str(resp.url),
                meta={
                    "body_truncated": truncated,
                    "body_bytes_read": len(content),
                    "body_bytes_limit": max_body_bytes,
                },
            )
        except Exception as exc:  # noqa: BLE001
            if deadline.expired and not isinstance(exc, httpx.TimeoutException):
                logger.debug("attempt aborted after %.2fs: %s", timeout, type(exc).__name__)
                exc = httpx.ReadTimeout("response not completed within timeout")
            return HttpResponse(
                ok=False,
                error_message=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
                meta={"error_category": categorize_exception(exc)},
            )

    def close(self) -> None:
        self._client.close()
