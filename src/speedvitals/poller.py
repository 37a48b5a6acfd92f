# Copyright (c) Syntropy Systems
"""Submit-and-poll state machine for a single Lighthouse test.

One call to :meth:`TestPoller.run` is one attempt: create the test, poll it
until it leaves the idle/active states, then check that every budgeted
metric was measured. Any failure is raised as a :class:`RequestError`
subclass for the retry policy to handle.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from speedvitals.clock import Clock, SystemClock
from speedvitals.errors import (
    MissingMetricError,
    PollTimeoutError,
    RemoteError,
    RunAbortedError,
)
from speedvitals.models.analysis import AnalysisResult, BudgetRule, TestRequest
from speedvitals.models.api import STATUS_FAILED, ErrorEnvelope, TestJob

if TYPE_CHECKING:
    import threading

    from speedvitals.ci import CIMetadata
    from speedvitals.client import TestResponse

logger = logging.getLogger(__name__)


class LighthouseService(Protocol):
    """The two remote operations the engine depends on."""

    def create_test(self, request: TestRequest, ci: CIMetadata | None = None) -> TestResponse:
        ...

    def get_test(self, job_id: str) -> TestResponse:
        ...


def format_error_details(error: object) -> str:
    """Render a job's ``error`` field as a readable message."""
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return str(error)


def missing_metrics(job: TestJob, rules: Sequence[BudgetRule]) -> list[str]:
    """Return budgeted metrics that have no value on the job, in rule order."""
    missing: list[str] = []
    for rule in rules:
        if job.metric(rule.metric) is None and rule.metric not in missing:
            missing.append(rule.metric)
    return missing


def _check_response(response: TestResponse, request: TestRequest) -> TestJob:
    if isinstance(response, ErrorEnvelope):
        msg = f"Analysis failed for {request.url}: {response.message} (code: {response.code})"
        raise RemoteError(msg, code=response.code)
    if response.error is not None:
        msg = f"Analysis error for {request.url}: {format_error_details(response.error)}"
        raise RemoteError(msg)
    return response


class TestPoller:
    """Drives one test from creation to a terminal outcome."""

    __test__ = False

    def __init__(
        self,
        service: LighthouseService,
        rules: Sequence[BudgetRule],
        *,
        poll_interval: float = 5.0,
        max_poll_attempts: int = 60,
        clock: Clock | None = None,
        ci: CIMetadata | None = None,
    ) -> None:
        self.service = service
        self.rules = tuple(rules)
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.clock = clock if clock is not None else SystemClock()
        self.ci = ci

    def run(
        self,
        request: TestRequest,
        stop: threading.Event | None = None,
    ) -> AnalysisResult:
        """Run one full attempt for request.

        Raises:
            RemoteError: The service rejected or failed the test
            PollTimeoutError: The test was still pending after every poll
            MissingMetricError: The test finished without a budgeted metric
            RunAbortedError: ``stop`` was set while waiting between polls

        """
        created = _check_response(self.service.create_test(request, self.ci), request)
        logger.debug("Created test %s for %s (status: %s)", created.id, request, created.status)

        job = self._poll(created.id, request, stop)

        missing = missing_metrics(job, self.rules)
        if missing:
            raise MissingMetricError(request.url, missing)

        return AnalysisResult(request=request, job=job)

    def _poll(
        self,
        job_id: str,
        request: TestRequest,
        stop: threading.Event | None,
    ) -> TestJob:
        """Poll until the job leaves idle/active or attempts run out."""
        for attempt in range(1, self.max_poll_attempts + 1):
            job = _check_response(self.service.get_test(job_id), request)
            logger.debug(
                "Poll %d/%d for test %s: %s",
                attempt,
                self.max_poll_attempts,
                job_id,
                job.status,
            )

            if job.status == STATUS_FAILED:
                msg = f"Analysis failed for {request.url}: test {job_id} reported status failed"
                raise RemoteError(msg)

            if not job.is_pending:
                return job

            if attempt == self.max_poll_attempts:
                raise PollTimeoutError(job_id, job.status, attempt)

            self.clock.sleep(self.poll_interval)
            if stop is not None and stop.is_set():
                msg = f"Stopped polling test {job_id} for {request.url}"
                raise RunAbortedError(msg)

        msg = f"Unexpected error while polling results for test {job_id}"
        raise RemoteError(msg)
