# Copyright (c) Syntropy Systems
"""Exception hierarchy for speedvitals."""
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from speedvitals.models.analysis import TestRequest, Violation


class SpeedVitalsError(Exception):
    """Base class for all speedvitals errors."""


class ConfigError(SpeedVitalsError):
    """Invalid configuration file or command-line options."""


class RequestError(SpeedVitalsError):
    """A single submit-and-poll attempt failed.

    Subclasses are recovered by the retry policy.
    """


class RemoteError(RequestError):
    """The service reported an error for a test."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class SpeedVitalsClientError(RemoteError):
    """Error communicating with the SpeedVitals API."""


class MissingMetricError(RequestError):
    """A finished test has no value for one or more budgeted metrics."""

    def __init__(self, url: str, metrics: Sequence[str]) -> None:
        self.url = url
        self.metrics = list(metrics)
        super().__init__(
            f"Analysis returned null for url {url} and metric(s) {', '.join(self.metrics)}"
        )


class PollTimeoutError(RequestError, TimeoutError):
    """A test stayed idle/active for every allowed poll."""

    def __init__(self, job_id: str, last_status: str, attempts: int) -> None:
        self.job_id = job_id
        self.last_status = last_status
        self.attempts = attempts
        super().__init__(
            f"Timed out waiting for test {job_id} to leave the active/idle state "
            f"after {attempts} polls. Last known status: {last_status}"
        )


class RunAbortedError(SpeedVitalsError):
    """Work was abandoned because another request failed the run."""


class ExhaustedRetriesError(SpeedVitalsError):
    """Every allowed attempt for a request failed."""

    def __init__(
        self,
        request: TestRequest,
        attempts: int,
        last_error: BaseException,
    ) -> None:
        self.request = request
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed to analyze {request.url} (device: {request.device}, "
            f"location: {request.location}) after {attempts} attempt(s): {last_error}"
        )


class RegressionError(SpeedVitalsError):
    """Budget regressions were found and the run is configured to fail on them."""

    def __init__(self, violations: Sequence[Violation]) -> None:
        self.violations = list(violations)
        super().__init__(
            f"Budget regression detected: {len(self.violations)} violation(s)"
        )
