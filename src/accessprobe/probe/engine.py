# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Probe engine: run an ordered list of credentialed HTTP checks against a target.

Every check produces exactly one CheckResult, in input order, whatever happens
to the others: a failed health check does not stop the functional check, so
the report shows which layer (egress, gateway auth, upstream) broke.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone

from ..config import ProbeSettings, load_probe_settings
from ..errors import ErrorCategory, ProbeConfigError, categorize_error_type, error_category_to_reason
from ..http.client import HttpClient, create_default_http_client
from ..http.headers import is_valid_header_name, redact_headers
from ..http.models import HttpRequest, HttpResponse
from ..http.retry import send_with_retries
from ..http.url import build_check_url
from ..models.check import CheckResult, CheckSpec, CheckStatus
from ..models.credential import Credential, Target
from ..models.report import ProbeReport
from ..redact import Redactor
from ..utils import truncate_text_bytes
from .cancel import CancelToken
from .predicates import evaluate_body, status_matches

logger = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProbeEngine:
    """Runs CheckSpecs against a Target with a Credential and builds a ProbeReport."""

    def __init__(
        self,
        http_client: HttpClient | None = None,
        settings: ProbeSettings | None = None,
        *,
        rng: random.Random | None = None,
    ):
        self.settings = settings or load_probe_settings()
        self.http_client = http_client or create_default_http_client(self.settings)
        self.rng = rng

    def run_checks(
        self,
        target: Target | str,
        credential: Credential,
        specs: Iterable[CheckSpec],
        *,
        cancel: CancelToken | None = None,
    ) -> ProbeReport:
        """
        Execute ``specs`` and return a report with one result per spec.

        Raises ProbeConfigError, before any request is sent, when the inputs
        are malformed. Transport problems, predicate mismatches and
        cancellation are recorded in the report instead.
        """
        target, spec_list = self._validate(target, credential, specs)
        redactor = credential.redactor()
        if cancel is None and self.settings.deadline:
            cancel = CancelToken(deadline=self.settings.deadline)

        started_at = _utc_now()
        logger.info("probing %s with %d check(s)", target.url, len(spec_list))
        if target.scheme == "http":
            logger.warning("target %s uses plain http; the credential is sent unencrypted", target.host)
        if self.settings.concurrency > 1 and len(spec_list) > 1:
            results = self._run_concurrent(target, credential, spec_list, redactor, cancel)
        else:
            results = self._run_sequential(target, credential, spec_list, redactor, cancel)

        was_cancelled = any(result.cancelled for result in results)
        if was_cancelled:
            why = "deadline exceeded" if cancel is not None and cancel.deadline_exceeded else "cancelled"
            logger.warning("probe of %s stopped early: %s", target.url, why)

        report = ProbeReport(
            target=target.url,
            results=tuple(results),
            cancelled=was_cancelled,
            started_at=started_at,
            finished_at=_utc_now(),
        )
        logger.info(
            "probe of %s finished: %s (%d/%d passed)",
            target.url,
            report.status.value,
            report.counts()[CheckStatus.PASS.value],
            len(report.results),
        )
        return report

    # -- validation -------------------------------------------------------

    def _validate(
        self,
        target: Target | str,
        credential: Credential,
        specs: Iterable[CheckSpec] | None,
    ) -> tuple[Target, list[CheckSpec]]:
        if isinstance(target, str):
            target = Target.parse(target)
        elif not isinstance(target, Target):
            raise ProbeConfigError("target must be a Target or a URL string")

        if not isinstance(credential, Credential):
            raise ProbeConfigError("credential must be a Credential")

        if not (is_valid_header_name(self.settings.id_header) and is_valid_header_name(self.settings.secret_header)):
            raise ProbeConfigError("credential header names must be valid HTTP field names")
        id_header = self.settings.id_header.lower()
        secret_header = self.settings.secret_header.lower()
        if id_header == secret_header:
            raise ProbeConfigError("credential header names must be two distinct names")

        if specs is None:
            raise ProbeConfigError("no checks configured")
        spec_list = list(specs)
        if not spec_list:
            raise ProbeConfigError("no checks configured")

        seen: set[str] = set()
        for spec in spec_list:
            if not isinstance(spec, CheckSpec):
                raise ProbeConfigError(f"expected CheckSpec, got {type(spec).__name__}")
            if spec.name in seen:
                raise ProbeConfigError(f"duplicate check name {spec.name!r}")
            for dep in spec.depends_on:
                if dep not in seen:
                    raise ProbeConfigError(f"check {spec.name!r} depends on {dep!r}, which is not an earlier check")
            for header in spec.headers or {}:
                if header.strip().lower() in {id_header, secret_header}:
                    raise ProbeConfigError(f"check {spec.name!r} must not set credential header {header!r}")
            seen.add(spec.name)
        return target, spec_list

    # -- scheduling -------------------------------------------------------

    def _run_sequential(
        self,
        target: Target,
        credential: Credential,
        specs: list[CheckSpec],
        redactor: Redactor,
        cancel: CancelToken | None,
    ) -> list[CheckResult]:
        results: list[CheckResult] = []
        for spec in specs:
            if cancel is not None and cancel.cancelled():
                results.append(_cancelled_result(spec, attempts=0, elapsed=0.0))
                continue
            results.append(self._run_one(target, credential, spec, redactor, cancel))
        return results

    def _run_concurrent(
        self,
        target: Target,
        credential: Credential,
        specs: list[CheckSpec],
        redactor: Redactor,
        cancel: CancelToken | None,
    ) -> list[CheckResult]:
        # A check is submitted once every check it depends on has finished.
        results: list[CheckResult | None] = [None] * len(specs)
        pending = list(range(len(specs)))
        running: dict[Future[CheckResult], int] = {}
        finished: set[str] = set()

        with ThreadPoolExecutor(max_workers=self.settings.concurrency, thread_name_prefix="accessprobe") as pool:
            while pending or running:
                if cancel is not None and cancel.cancelled():
                    for index in pending:
                        results[index] = _cancelled_result(specs[index], attempts=0, elapsed=0.0)
                    pending = []
                else:
                    ready = [i for i in pending if all(dep in finished for dep in specs[i].depends_on)]
                    for index in ready:
                        future = pool.submit(self._run_one, target, credential, specs[index], redactor, cancel)
                        running[future] = index
                    pending = [i for i in pending if i not in ready]

                if not running:
                    continue
                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in done:
                    index = running.pop(future)
                    results[index] = future.result()
                    finished.add(specs[index].name)

        return [result for result in results if result is not None]

    # -- single check -----------------------------------------------------

    def _build_request(self, target: Target, credential: Credential, spec: CheckSpec) -> HttpRequest:
        headers: dict[str, str] = {"User-Agent": self.settings.user_agent}
        headers.update(spec.headers or {})
        body, content_type = spec.encoded_body()
        if content_type and not any(name.lower() == "content-type" for name in headers):
            headers["Content-Type"] = content_type
        headers.update(credential.headers(self.settings.id_header, self.settings.secret_header))
        return HttpRequest(
            url=build_check_url(target.url, spec.path),
            method=spec.method,
            headers=headers,
            body=body,
            timeout=spec.timeout,
            allow_redirects=self.settings.allow_redirects,
        )

    def _run_one(
        self,
        target: Target,
        credential: Credential,
        spec: CheckSpec,
        redactor: Redactor,
        cancel: CancelToken | None,
    ) -> CheckResult:
        request = self._build_request(target, credential, spec)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "check %s: %s %s expecting %s%s headers=%s",
                spec.name,
                spec.method,
                redactor.redact(request.url),
                "/".join(str(code) for code in spec.expected_status),
                f", {spec.body_predicate.describe()}" if spec.body_predicate is not None else "",
                redactor.redact_value(
                    redact_headers(request.headers, (self.settings.id_header, self.settings.secret_header))
                ),
            )

        def on_retry(attempt: int, delay: float, response: HttpResponse) -> None:
            logger.info(
                "check %s: attempt %d/%d failed (%s), retrying in %.2fs",
                spec.name,
                attempt,
                spec.retries + 1,
                redactor.redact(response.error_message or response.error_type or "transport error"),
                delay,
            )

        started = time.monotonic()
        response = send_with_retries(
            self.http_client,
            request,
            retry_config=spec.retry_config(),
            cancel=cancel,
            rng=self.rng,
            on_retry=on_retry,
        )
        elapsed = time.monotonic() - started
        attempts = int(response.meta.get("attempts", 1))
        result = self._classify(spec, response, elapsed, attempts, redactor)

        log = logger.info if result.passed else logger.warning
        log(
            "check %s: %s%s after %d attempt(s) in %.3fs%s",
            result.name,
            result.status.value,
            f" [{result.status_code}]" if result.status_code is not None else "",
            result.attempts,
            result.elapsed,
            f": {result.reason}" if result.reason else "",
        )
        return result

    def _classify(
        self,
        spec: CheckSpec,
        response: HttpResponse,
        elapsed: float,
        attempts: int,
        redactor: Redactor,
    ) -> CheckResult:
        category = response.meta.get("error_category")
        if category == ErrorCategory.CANCELLED or response.error_type == "Cancelled":
            return _cancelled_result(spec, attempts=attempts, elapsed=elapsed)

        if not response.completed:
            if not isinstance(category, ErrorCategory):
                category = categorize_error_type(response.error_type)
            detail = redactor.redact(response.error_message or response.error_type or "")
            label = error_category_to_reason(category)
            reason = f"{label}: {detail}" if detail else label
            return CheckResult(
                name=spec.name,
                status=CheckStatus.ERROR,
                elapsed=elapsed,
                attempts=attempts,
                reason=redactor.redact(reason),
                error_category=category,
                details={"retry_exhausted": bool(response.meta.get("retry_exhausted"))},
            )

        snippet = self._snippet(response.text, redactor)
        details = {"body_truncated": bool(response.meta.get("body_truncated"))}

        if not status_matches(spec, response.status_code):
            expected = ", ".join(str(code) for code in spec.expected_status)
            return CheckResult(
                name=spec.name,
                status=CheckStatus.FAIL,
                status_code=response.status_code,
                body=snippet,
                elapsed=elapsed,
                attempts=attempts,
                reason=f"expected status {expected}, got {response.status_code}",
                error_category=ErrorCategory.NONE,
                details=details,
            )

        if spec.body_predicate is not None:
            matched, why = evaluate_body(spec.body_predicate, response.text)
            if not matched:
                return CheckResult(
                    name=spec.name,
                    status=CheckStatus.FAIL,
                    status_code=response.status_code,
                    body=snippet,
                    elapsed=elapsed,
                    attempts=attempts,
                    reason=redactor.redact(why),
                    error_category=ErrorCategory.NONE,
                    details=details,
                )

        return CheckResult(
            name=spec.name,
            status=CheckStatus.PASS,
            status_code=response.status_code,
            body=snippet,
            elapsed=elapsed,
            attempts=attempts,
            error_category=ErrorCategory.NONE,
            details=details,
        )

    def _snippet(self, text: str, redactor: Redactor) -> str:
        # Redact again after cutting so the truncation marker cannot complete a secret.
        cut = truncate_text_bytes(redactor.redact(text or ""), self.settings.max_snippet_bytes)
        return redactor.redact(cut)

    def close(self) -> None:
        close = getattr(self.http_client, "close", None)
        if callable(close):
            close()


def _cancelled_result(spec: CheckSpec, *, attempts: int, elapsed: float) -> CheckResult:
    return CheckResult(
        name=spec.name,
        status=CheckStatus.ERROR,
        elapsed=elapsed,
        attempts=attempts,
        reason=CANCELLED_REASON,
        error_category=ErrorCategory.CANCELLED,
    )


def run_checks(
    target: Target | str,
    credential: Credential,
    specs: Iterable[CheckSpec],
    *,
    settings: ProbeSettings | None = None,
    http_client: HttpClient | None = None,
    cancel: CancelToken | None = None,
) -> ProbeReport:
    """One-shot helper: run ``specs`` with a fresh engine, closing any client it created."""
    owns_client = http_client is None
    engine = ProbeEngine(http_client, settings)
    try:
        return engine.run_checks(target, credential, specs, cancel=cancel)
    finally:
        if owns_client:
            engine.close()


__all__ = ["CANCELLED_REASON", "ProbeEngine", "run_checks"]
