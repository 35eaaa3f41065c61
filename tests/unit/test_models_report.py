# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import itertools
import json

import pytest

from accessprobe.config import ProbeSettings
from accessprobe.errors import ErrorCategory, ProbeConfigError
from accessprobe.models import (
    BodyPredicate,
    CheckResult,
    CheckSpec,
    CheckStatus,
    Credential,
    PredicateKind,
    ProbeReport,
    Target,
    aggregate_status,
)


def _result(name: str, status: CheckStatus) -> CheckResult:
    return CheckResult(name=name, status=status)


def test_aggregate_status_is_pass_iff_every_result_passes():
    for combo in itertools.product(list(CheckStatus), repeat=3):
        results = [_result(f"c{i}", status) for i, status in enumerate(combo)]
        overall = aggregate_status(results)
        assert (overall == CheckStatus.PASS) == all(status == CheckStatus.PASS for status in combo)
        if CheckStatus.ERROR in combo:
            assert overall == CheckStatus.ERROR


def test_aggregate_status_of_nothing_is_error():
    assert aggregate_status([]) == CheckStatus.ERROR


def test_probe_report_to_dict_and_counts():
    report = ProbeReport(
        target="https://h.example",
        results=[
            CheckResult(name="health", status=CheckStatus.PASS, status_code=200, elapsed=0.01234, attempts=1),
            CheckResult(
                name="chat",
                status=CheckStatus.FAIL,
                status_code=403,
                attempts=1,
                reason="expected status 200, got 403",
                error_category=ErrorCategory.NONE,
            ),
        ],
    )
    assert isinstance(report.results, tuple)
    assert report.status == CheckStatus.FAIL
    assert report.passed is False
    assert report.counts() == {"PASS": 1, "FAIL": 1, "ERROR": 0}

    payload = report.to_dict()
    json.dumps(payload)
    assert payload["status"] == "FAIL"
    assert [c["name"] for c in payload["checks"]] == ["health", "chat"]
    assert payload["checks"][1]["error_category"] == "NONE"
    assert payload["checks"][0]["elapsed"] == 0.0123


def test_check_result_details_are_read_only():
    source = {"retry_exhausted": True}
    result = CheckResult(name="chat", status=CheckStatus.ERROR, details=source)
    source["retry_exhausted"] = False
    assert result.details["retry_exhausted"] is True
    with pytest.raises(TypeError):
        result.details["retry_exhausted"] = False
    assert result.to_dict()["details"] == {"retry_exhausted": True}
    assert dict(CheckResult(name="x", status=CheckStatus.PASS).details) == {}


def test_credential_never_renders_values():
    credential = Credential(identifier="client-id-123", secret="super-secret-456")
    for text in (repr(credential), str(credential), f"{credential}", repr([credential])):
        assert "client-id-123" not in text
        assert "super-secret-456" not in text
    assert credential.headers("A", "B") == {"A": "client-id-123", "B": "super-secret-456"}


@pytest.mark.parametrize(
    ("identifier", "secret"),
    [
        ("", "s"),
        ("id", ""),
        ("   ", "s"),
        ("id", None),
        ("id", "line\nbreak"),
        ("a\rb", "s"),
        ("id-1", "sécret"),
        ("clïent", "secret"),
    ],
)
def test_credential_validation(identifier, secret):
    with pytest.raises(ProbeConfigError) as info:
        Credential(identifier=identifier, secret=secret)
    assert "line\nbreak" not in str(info.value)
    assert "sécret" not in str(info.value)
    assert "clïent" not in str(info.value)


def test_target_normalizes_and_exposes_parts():
    target = Target.parse("https://Gateway.example.com/api/")
    assert target.url == "https://gateway.example.com/api"
    assert target.host == "gateway.example.com"
    assert target.scheme == "https"
    assert str(target) == target.url
    with pytest.raises(ProbeConfigError):
        Target("not a url")


def test_check_spec_defaults_and_coercion():
    spec = CheckSpec(name="chat", path="/v1/chat/completions", method="post", expected_status=200, depends_on="health")
    assert spec.method == "POST"
    assert spec.expected_status == (200,)
    assert spec.depends_on == ("health",)
    assert spec.retry_config().max_attempts == spec.retries + 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": ""},
        {"name": "x", "method": "BREW"},
        {"name": "x", "expected_status": []},
        {"name": "x", "expected_status": [700]},
        {"name": "x", "expected_status": True},
        {"name": "x", "timeout": 0},
        {"name": "x", "retries": -1},
        {"name": "x", "backoff_factor": 0.5},
        {"name": "x", "jitter": 1.5},
        {"name": "x", "depends_on": ["x"]},
        {"name": "x", "headers": ["nope"]},
    ],
)
def test_check_spec_rejects_invalid_fields(kwargs):
    with pytest.raises(ProbeConfigError):
        CheckSpec(**kwargs)


def test_check_spec_worst_case_duration():
    spec = CheckSpec(name="x", timeout=2.0, retries=2, backoff_initial=1.0, backoff_factor=2.0, backoff_max=10.0)
    assert spec.worst_case_duration() == 2.0 * 3 + 1.0 + 2.0


def test_check_spec_encoded_body_content_types():
    assert CheckSpec(name="a").encoded_body() == (None, None)
    assert CheckSpec(name="b", body="hi").encoded_body() == ("hi", "text/plain; charset=utf-8")
    assert CheckSpec(name="c", body=b"\x00").encoded_body() == (b"\x00", "application/octet-stream")
    payload, content_type = CheckSpec(name="d", body={"model": "m", "messages": []}).encoded_body()
    assert content_type == "application/json"
    assert json.loads(payload) == {"model": "m", "messages": []}


def test_check_spec_from_mapping_uses_settings_defaults():
    settings = ProbeSettings(timeout=3.0, retries=4, initial_delay=0.2, backoff_factor=3.0, max_delay=6.0, jitter=0.1)
    spec = CheckSpec.from_mapping(
        {
            "name": "chat",
            "method": "POST",
            "path": "/v1/chat/completions",
            "json": {"messages": [{"role": "user", "content": "ping"}]},
            "expect_status": [200, 201],
            "json_key": "choices",
            "backoff": {"max": 2.5},
        },
        settings,
    )
    assert spec.timeout == 3.0
    assert spec.retries == 4
    assert spec.backoff_initial == 0.2
    assert spec.backoff_factor == 3.0
    assert spec.backoff_max == 2.5
    assert spec.jitter == 0.1
    assert spec.expected_status == (200, 201)
    assert spec.body_predicate == BodyPredicate.json_key("choices")
    assert spec.encoded_body()[1] == "application/json"


def test_check_spec_from_mapping_reports_bad_numbers():
    with pytest.raises(ProbeConfigError, match="check 'x'"):
        CheckSpec.from_mapping({"name": "x", "timeout": "soon"})
    with pytest.raises(ProbeConfigError):
        CheckSpec.from_mapping(["not", "a", "mapping"])


def test_body_predicate_from_mapping_forms():
    assert BodyPredicate.from_mapping({"contains": "ok"}).kind == PredicateKind.CONTAINS
    assert BodyPredicate.from_mapping({"json_key": "choices"}).value == "choices"
    equals = BodyPredicate.from_mapping({"json_path": "status", "equals": "ok"})
    assert (equals.kind, equals.value, equals.expected) == (PredicateKind.JSON_EQUALS, "status", "ok")
    explicit = BodyPredicate.from_mapping({"kind": "json_key", "value": "data.0"})
    assert explicit.kind == PredicateKind.JSON_KEY
    assert "choices" in BodyPredicate.json_key("choices").describe()
    with pytest.raises(ProbeConfigError):
        BodyPredicate.from_mapping({"regex": ".*"})
    with pytest.raises(ProbeConfigError):
        BodyPredicate("xpath", "/a")
    with pytest.raises(ProbeConfigError):
        BodyPredicate.contains("")
