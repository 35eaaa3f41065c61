# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import json
import logging
import random
import string
import threading
import time

import httpx
import pytest

from accessprobe.config import ProbeSettings
from accessprobe.errors import ErrorCategory, ProbeConfigError
from accessprobe.http.adapters import StubHttpClient
from accessprobe.http.httpx_client import HttpxClient
from accessprobe.http.models import HttpRequest, HttpResponse
from accessprobe.models import BodyPredicate, CheckSpec, CheckStatus, Credential, Target
from accessprobe.probe.cancel import CancelToken
from accessprobe.probe.engine import CANCELLED_REASON, ProbeEngine, run_checks
from accessprobe.render import render_json, render_markdown, render_text

BASE = "https://gateway.example.com"
CREDENTIAL = Credential(identifier="client-id.access", secret="client-secret-value")


def _settings(**kwargs) -> ProbeSettings:
    return ProbeSettings(**kwargs)


def _fast(name: str, path: str, **kwargs) -> CheckSpec:
    kwargs.setdefault("retries", 0)
    kwargs.setdefault("backoff_initial", 0.0)
    kwargs.setdefault("jitter", 0.0)
    return CheckSpec(name=name, path=path, **kwargs)


def _ok(text: str = '{"status":"ok"}', status: int = 200) -> HttpResponse:
    return HttpResponse(ok=True, status_code=status, text=text)


def _engine(client, **settings_kwargs) -> ProbeEngine:
    return ProbeEngine(client, _settings(**settings_kwargs), rng=random.Random(0))


def test_health_check_passes_on_200():
    client = StubHttpClient({f"{BASE}/health": _ok()})
    report = _engine(client).run_checks(BASE, CREDENTIAL, [_fast("health", "/health")])
    assert report.status == CheckStatus.PASS
    result = report.results[0]
    assert result.status == CheckStatus.PASS
    assert result.status_code == 200
    assert result.attempts == 1
    assert result.body == '{"status":"ok"}'


def test_forbidden_functional_check_fails_with_observed_code():
    client = StubHttpClient({f"{BASE}/v1/chat/completions": _ok('{"error":"forbidden"}', status=403)})
    spec = _fast("chat", "/v1/chat/completions", method="POST", body={"messages": []})
    report = _engine(client).run_checks(BASE, CREDENTIAL, [spec])
    result = report.results[0]
    assert result.status == CheckStatus.FAIL
    assert result.status_code == 403
    assert result.reason == "expected status 200, got 403"
    assert report.status == CheckStatus.FAIL


def test_body_predicate_decides_pass_or_fail():
    spec = _fast("chat", "/v1/chat/completions", body_predicate=BodyPredicate.json_key("choices"))
    good = StubHttpClient({f"{BASE}/v1/chat/completions": _ok('{"choices":[{"index":0}]}')})
    bad = StubHttpClient({f"{BASE}/v1/chat/completions": _ok('{"error":"bad request"}')})
    assert _engine(good).run_checks(BASE, CREDENTIAL, [spec]).results[0].status == CheckStatus.PASS
    failed = _engine(bad).run_checks(BASE, CREDENTIAL, [spec]).results[0]
    assert failed.status == CheckStatus.FAIL
    assert failed.status_code == 200
    assert "choices" in failed.reason


def test_request_carries_credential_headers_and_json_body():
    client = StubHttpClient({f"{BASE}/api/v1/chat": _ok()})
    spec = _fast("chat", "/v1/chat", method="POST", body={"model": "m"}, headers={"X-Trace": "1"})
    _engine(client).run_checks(f"{BASE}/api/", CREDENTIAL, [spec])
    request = client.requests[0]
    assert request.url == f"{BASE}/api/v1/chat"
    assert request.method == "POST"
    assert request.headers["CF-Access-Client-Id"] == CREDENTIAL.identifier
    assert request.headers["CF-Access-Client-Secret"] == CREDENTIAL.secret
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["X-Trace"] == "1"
    assert json.loads(request.body) == {"model": "m"}
    assert request.allow_redirects is False


def test_custom_header_names_are_used():
    client = StubHttpClient({f"{BASE}/health": _ok()})
    engine = _engine(client, id_header="X-Id", secret_header="X-Secret")
    engine.run_checks(BASE, CREDENTIAL, [_fast("health", "/health")])
    headers = client.requests[0].headers
    assert headers["X-Id"] == CREDENTIAL.identifier
    assert headers["X-Secret"] == CREDENTIAL.secret
    assert "CF-Access-Client-Id" not in headers


def test_results_follow_input_order_and_later_checks_still_run():
    client = StubHttpClient(
        {
            f"{BASE}/a": _ok(status=500),
            f"{BASE}/c": _ok(),
        }
    )
    specs = [_fast("a", "/a"), _fast("b", "/b"), _fast("c", "/c")]
    report = _engine(client).run_checks(BASE, CREDENTIAL, specs)
    assert [r.name for r in report.results] == ["a", "b", "c"]
    assert [r.status for r in report.results] == [CheckStatus.FAIL, CheckStatus.ERROR, CheckStatus.PASS]
    assert report.status == CheckStatus.ERROR
    assert len(client.requests) == 3


def test_deeply_nested_body_fails_the_check_and_the_run_continues():
    client = StubHttpClient({f"{BASE}/a": _ok("[" * 200000), f"{BASE}/b": _ok()})
    specs = [
        _fast("a", "/a", body_predicate=BodyPredicate.json_key("choices")),
        _fast("b", "/b"),
    ]
    report = _engine(client).run_checks(BASE, CREDENTIAL, specs)
    assert [r.status for r in report.results] == [CheckStatus.FAIL, CheckStatus.PASS]
    assert report.results[0].reason == "response body is not valid JSON"
    assert len(client.requests) == 2


def test_transport_errors_are_retried_then_reported():
    calls = []

    def flaky(request: HttpRequest) -> HttpResponse:
        calls.append(request.url)
        return HttpResponse(ok=False, error_message="[Errno 111] Connection refused", error_type="ConnectError")

    client = StubHttpClient({f"{BASE}/health": flaky})
    spec = _fast("health", "/health", retries=2, backoff_initial=0.001)
    result = _engine(client).run_checks(BASE, CREDENTIAL, [spec]).results[0]
    assert len(calls) == 3
    assert result.status == CheckStatus.ERROR
    assert result.attempts == 3
    assert result.status_code is None
    assert result.error_category == ErrorCategory.CONNECTION_ERROR
    assert "Connection refused" in result.reason
    assert result.details["retry_exhausted"] is True


def test_predicate_failures_are_not_retried():
    client = StubHttpClient({f"{BASE}/health": _ok(status=503)})
    spec = _fast("health", "/health", retries=3, backoff_initial=0.001)
    result = _engine(client).run_checks(BASE, CREDENTIAL, [spec]).results[0]
    assert result.status == CheckStatus.FAIL
    assert result.attempts == 1
    assert len(client.requests) == 1


def test_unresponsive_endpoint_errors_within_time_bound():
    def never_answers(request: HttpRequest) -> HttpResponse:
        time.sleep(request.timeout)
        return HttpResponse(ok=False, error_message="timed out", error_type="ReadTimeout")

    client = StubHttpClient({f"{BASE}/health": never_answers})
    spec = CheckSpec(
        name="health",
        path="/health",
        timeout=0.05,
        retries=2,
        backoff_initial=0.01,
        backoff_factor=2.0,
        backoff_max=1.0,
        jitter=0.5,
    )
    started = time.monotonic()
    report = _engine(client).run_checks(BASE, CREDENTIAL, [spec])
    elapsed = time.monotonic() - started

    result = report.results[0]
    assert result.status == CheckStatus.ERROR
    assert result.error_category == ErrorCategory.TIMEOUT
    assert result.attempts == 3
    bound = spec.worst_case_duration()
    assert bound == pytest.approx(0.05 * 3 + 0.01 + 0.02)
    assert elapsed <= bound + 0.5
    assert result.elapsed >= 0.05 * 3


def test_cancel_after_first_of_three_checks():
    cancel = CancelToken()

    def cancels_midway(_request: HttpRequest) -> HttpResponse:
        cancel.cancel()
        return _ok()

    client = StubHttpClient(
        {
            f"{BASE}/one": _ok(),
            f"{BASE}/two": cancels_midway,
            f"{BASE}/three": _ok(),
        }
    )
    specs = [_fast("one", "/one"), _fast("two", "/two"), _fast("three", "/three")]
    report = _engine(client).run_checks(BASE, CREDENTIAL, specs, cancel=cancel)

    assert report.cancelled is True
    assert len(report.results) == 3
    assert report.results[0].status == CheckStatus.PASS
    for result in report.results[1:]:
        assert result.status == CheckStatus.ERROR
        assert result.reason == CANCELLED_REASON
        assert result.error_category == ErrorCategory.CANCELLED
    assert [r.url for r in client.requests] == [f"{BASE}/one", f"{BASE}/two"]
    assert report.status == CheckStatus.ERROR


def test_deadline_cancels_in_flight_and_pending_checks():
    def slow(_request: HttpRequest) -> HttpResponse:
        time.sleep(0.1)
        return _ok()

    client = StubHttpClient({f"{BASE}/slow": slow, f"{BASE}/next": _ok()})
    specs = [_fast("slow", "/slow", timeout=5.0), _fast("next", "/next")]
    started = time.monotonic()
    report = _engine(client).run_checks(BASE, CREDENTIAL, specs, cancel=CancelToken(deadline=0.05))
    assert time.monotonic() - started < 0.5
    assert client.requests[0].timeout <= 0.05
    assert report.cancelled is True
    assert [r.reason for r in report.results] == [CANCELLED_REASON, CANCELLED_REASON]
    assert len(client.requests) == 1


def test_settings_deadline_applies_without_explicit_token():
    client = StubHttpClient({f"{BASE}/health": _ok()})
    report = _engine(client, deadline=30.0).run_checks(BASE, CREDENTIAL, [_fast("health", "/health")])
    assert report.passed
    assert client.requests[0].timeout <= 10.0


def test_concurrent_run_keeps_input_order_and_dependencies():
    events = []
    lock = threading.Lock()

    def timed(label: str, delay: float):
        def respond(_request: HttpRequest) -> HttpResponse:
            with lock:
                events.append(("start", label))
            time.sleep(delay)
            with lock:
                events.append(("end", label))
            return _ok()

        return respond

    client = StubHttpClient(
        {
            f"{BASE}/health": timed("health", 0.05),
            f"{BASE}/status": timed("status", 0.01),
            f"{BASE}/chat": timed("chat", 0.0),
        }
    )
    specs = [
        _fast("health", "/health"),
        _fast("status", "/status"),
        _fast("chat", "/chat", depends_on=("health",)),
    ]
    report = _engine(client, concurrency=3).run_checks(BASE, CREDENTIAL, specs)

    assert [r.name for r in report.results] == ["health", "status", "chat"]
    assert report.passed
    assert events.index(("end", "health")) < events.index(("start", "chat"))


def test_concurrent_run_marks_unstarted_checks_cancelled():
    cancel = CancelToken()

    def cancels(_request: HttpRequest) -> HttpResponse:
        cancel.cancel()
        return _ok()

    client = StubHttpClient({f"{BASE}/health": cancels, f"{BASE}/chat": _ok()})
    specs = [_fast("health", "/health"), _fast("chat", "/chat", depends_on=("health",))]
    report = _engine(client, concurrency=2).run_checks(BASE, CREDENTIAL, specs, cancel=cancel)
    assert [r.reason for r in report.results] == [CANCELLED_REASON, CANCELLED_REASON]
    assert len(client.requests) == 1


@pytest.mark.parametrize(
    ("target", "credential", "specs"),
    [
        ("", CREDENTIAL, [CheckSpec(name="a")]),
        ("ftp://h.example", CREDENTIAL, [CheckSpec(name="a")]),
        (42, CREDENTIAL, [CheckSpec(name="a")]),
        (BASE, ("id", "secret"), [CheckSpec(name="a")]),
        (BASE, CREDENTIAL, []),
        (BASE, CREDENTIAL, None),
        (BASE, CREDENTIAL, [{"name": "a"}]),
        (BASE, CREDENTIAL, [CheckSpec(name="a"), CheckSpec(name="a")]),
        (BASE, CREDENTIAL, [CheckSpec(name="a", depends_on=("b",)), CheckSpec(name="b")]),
        (BASE, CREDENTIAL, [CheckSpec(name="a", headers={"cf-access-client-secret": "x"})]),
    ],
)
def test_invalid_inputs_abort_before_any_request(target, credential, specs):
    client = StubHttpClient()
    with pytest.raises(ProbeConfigError):
        _engine(client).run_checks(target, credential, specs)
    assert client.requests == []


def test_identical_header_names_are_rejected():
    client = StubHttpClient()
    engine = _engine(client, id_header="X-Token", secret_header="x-token")
    with pytest.raises(ProbeConfigError):
        engine.run_checks(BASE, CREDENTIAL, [CheckSpec(name="a")])


@pytest.mark.parametrize("id_header", ["X Client Id", "", "X-Id:"])
def test_malformed_header_names_are_rejected_before_sending(id_header):
    client = StubHttpClient()
    engine = _engine(client, id_header=id_header)
    with pytest.raises(ProbeConfigError, match="valid HTTP field names"):
        engine.run_checks(BASE, CREDENTIAL, [CheckSpec(name="a")])
    assert client.requests == []


def test_debug_log_shows_masked_headers_and_plain_http_warning(caplog):
    plain = "http://gateway.example.com"
    client = StubHttpClient({f"{plain}/health": _ok('{"status": "ok"}')})
    spec = _fast("health", "/health", body_predicate=BodyPredicate.json_equals("status", "ok"))
    with caplog.at_level(logging.DEBUG, logger="accessprobe"):
        report = _engine(client).run_checks(plain, CREDENTIAL, [spec])
    assert report.passed
    assert "uses plain http" in caplog.text
    assert "gateway.example.com" in caplog.text
    assert "<redacted>" in caplog.text
    assert "JSON 'status' == 'ok'" in caplog.text
    assert CREDENTIAL.secret not in caplog.text
    assert CREDENTIAL.identifier not in caplog.text


def test_snippet_is_truncated_to_configured_bytes():
    client = StubHttpClient({f"{BASE}/big": _ok("é" * 5000)})
    result = _engine(client, max_snippet_bytes=64).run_checks(BASE, CREDENTIAL, [_fast("big", "/big")]).results[0]
    assert len(result.body.encode("utf-8")) <= 64
    assert result.body.endswith("...[truncated]")


def _random_secret(rng: random.Random) -> str:
    alphabet = string.ascii_letters + string.digits + "-_.~+/=!@$%^&*()[]{}:;,<>?"
    return "".join(rng.choice(alphabet) for _ in range(rng.randint(12, 48)))


@pytest.mark.parametrize("seed", range(25))
def test_credential_values_never_leak(seed, caplog):
    rng = random.Random(seed)
    credential = Credential(identifier=_random_secret(rng), secret=_random_secret(rng))

    def echo_headers(request: HttpRequest) -> HttpResponse:
        lines = [f"{name}: {value}" for name, value in (request.headers or {}).items()]
        return HttpResponse(ok=True, status_code=200, text="\n".join(lines))

    def echo_forbidden(request: HttpRequest) -> HttpResponse:
        return HttpResponse(ok=True, status_code=403, text=f"denied token {request.headers['CF-Access-Client-Secret']}")

    def echo_error(request: HttpRequest) -> HttpResponse:
        return HttpResponse(
            ok=False,
            error_type="ConnectError",
            error_message=f"connect failed id={request.headers['CF-Access-Client-Id']}",
        )

    padded = "x" * (2048 - 20)

    def boundary(request: HttpRequest) -> HttpResponse:
        return HttpResponse(ok=True, status_code=200, text=padded + request.headers["CF-Access-Client-Secret"] * 2)

    client = StubHttpClient(
        {
            f"{BASE}/echo": echo_headers,
            f"{BASE}/forbidden": echo_forbidden,
            f"{BASE}/error": echo_error,
            f"{BASE}/boundary": boundary,
        }
    )
    specs = [
        _fast("echo", "/echo", body_predicate=BodyPredicate.contains("never-there")),
        _fast("forbidden", "/forbidden"),
        _fast("error", "/error", retries=1, backoff_initial=0.001),
        _fast("boundary", "/boundary"),
    ]

    with caplog.at_level(logging.DEBUG, logger="accessprobe"):
        report = _engine(client).run_checks(BASE, credential, specs)

    rendered = [render_text(report), render_json(report), render_markdown(report), repr(report), caplog.text]
    rendered.extend(repr(request) for request in client.requests)
    for result in report.results:
        rendered.extend([result.name, result.body, result.reason, repr(result.details)])
    for secret in (credential.identifier, credential.secret):
        for text in rendered:
            assert secret not in text
    assert [r.status for r in report.results] == [CheckStatus.FAIL, CheckStatus.FAIL, CheckStatus.ERROR, CheckStatus.PASS]


def test_config_errors_do_not_echo_credential_values():
    with pytest.raises(ProbeConfigError) as info:
        Credential(identifier="visible-id", secret="hidden\nsecret-value")
    assert "secret-value" not in str(info.value)
    assert "visible-id" not in str(info.value)


def test_run_checks_helper_closes_only_owned_clients():
    client = StubHttpClient({f"{BASE}/health": _ok()})
    report = run_checks(Target(BASE), CREDENTIAL, [_fast("health", "/health")], http_client=client, settings=_settings())
    assert report.passed
    assert client.closed is False


def test_engine_against_httpx_mock_transport():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen[request.url.path] = dict(request.headers)
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if request.url.path == "/v1/chat/completions":
            if request.headers.get("cf-access-client-secret") != CREDENTIAL.secret:
                return httpx.Response(403, text="Forbidden")
            return httpx.Response(200, json={"choices": [{"message": {"content": "pong"}}]})
        return httpx.Response(404)

    settings = _settings()
    http_client = HttpxClient(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))
    specs = [
        _fast("health", "/health", body_predicate=BodyPredicate.json_equals("status", "ok")),
        _fast(
            "chat",
            "/v1/chat/completions",
            method="POST",
            body={"model": "test", "messages": [{"role": "user", "content": "ping"}]},
            body_predicate=BodyPredicate.json_key("choices"),
        ),
        _fast("missing", "/nope", expected_status=(404,)),
    ]
    report = ProbeEngine(http_client, settings).run_checks(BASE, CREDENTIAL, specs)
    http_client.close()

    assert report.passed, render_text(report)
    assert seen["/health"]["cf-access-client-id"] == CREDENTIAL.identifier
    assert seen["/v1/chat/completions"]["content-type"] == "application/json"
