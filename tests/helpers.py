# Copyright (c) Syntropy Systems
"""Fakes shared by the speedvitals tests."""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Any

from speedvitals.ci import CIMetadata
from speedvitals.models.analysis import TestRequest
from speedvitals.models.api import ErrorEnvelope, TestJob

GOOD_METRICS: dict[str, float | None] = {
    "performance_score": 95,
    "largest_contentful_paint": 2000,
    "cumulative_layout_shift": 0.05,
    "first_contentful_paint": 1200,
    "total_blocking_time": 100,
    "server_response_time": 300,
    "speed_index": 2500,
    "time_to_interactive": 3000,
}


def pending(status: str = "active") -> dict[str, Any]:
    """Poll response for a test that is still queued or running."""
    return {"status": status}


def success(**overrides: float | None) -> dict[str, Any]:
    """Poll response for a finished test with good metrics."""
    metrics = dict(GOOD_METRICS)
    metrics.update(overrides)
    return {
        "status": "success",
        "metrics": metrics,
        "report_url": "https://speedvitals.com/report/abc",
    }


def failed(error: str = "internal error") -> dict[str, Any]:
    """Poll response for a test the service gave up on."""
    return {"status": "failed", "error": error}


def envelope(code: str = "NOT_FOUND", message: str = "Test not found") -> dict[str, Any]:
    """Error envelope returned instead of a job."""
    return {"code": code, "message": message}


class FakeService:
    """In-memory stand-in for the SpeedVitals API.

    Each attempt for a URL follows the next queued plan: either an error
    envelope returned by create_test, or the list of responses successive
    get_test calls return (the last one repeats). Without a plan, tests
    succeed on the first poll.
    """

    def __init__(self, poll_delay: float = 0.0) -> None:
        self.poll_delay = poll_delay
        self.plans: dict[str, list[Any]] = defaultdict(list)
        self.created: list[TestRequest] = []
        self.ci_seen: list[CIMetadata | None] = []
        self.polls: dict[str, int] = defaultdict(int)
        self.active = 0
        self.max_active = 0
        self.closed = False
        self._jobs: dict[str, list[dict[str, Any]]] = {}
        self._finished: set[str] = set()
        self._lock = threading.Lock()

    def plan(self, url: str, *attempts: Any) -> None:
        """Queue attempt plans for url."""
        self.plans[url].extend(attempts)

    def create_test(self, request: TestRequest, ci: CIMetadata | None = None) -> TestJob | ErrorEnvelope:
        with self._lock:
            self.created.append(request)
            self.ci_seen.append(ci)
            plan = self.plans[request.url].pop(0) if self.plans[request.url] else [success()]
            if isinstance(plan, dict):
                return ErrorEnvelope.model_validate(plan)
            job_id = f"job-{len(self.created)}"
            self._jobs[job_id] = list(plan)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        return TestJob(id=job_id, url=request.url, device=request.device, location=request.location, status="idle")

    def get_test(self, job_id: str) -> TestJob | ErrorEnvelope:
        if self.poll_delay:
            time.sleep(self.poll_delay)
        with self._lock:
            self.polls[job_id] += 1
            responses = self._jobs[job_id]
            data = responses.pop(0) if len(responses) > 1 else responses[0]
            if "code" in data:
                self._finish(job_id)
                return ErrorEnvelope.model_validate(data)
            job = TestJob.model_validate({"id": job_id, **data})
            if not job.is_pending or job.error is not None:
                self._finish(job_id)
            return job

    def _finish(self, job_id: str) -> None:
        if job_id not in self._finished:
            self._finished.add(job_id)
            self.active -= 1

    def __enter__(self) -> FakeService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed = True


class FakeClock:
    """Clock that records sleeps instead of waiting."""

    def __init__(self) -> None:
        self.sleeps: list[float] = []
        self._lock = threading.Lock()

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)


class RecordingReporter:
    """Progress reporter that records every event."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self._lock = threading.Lock()

    def start(self, total: int) -> None:
        with self._lock:
            self.events.append(("start", total))

    def update(self, completed: int, message: str | None = None) -> None:
        with self._lock:
            self.events.append(("update", completed, message))

    def complete(self, message: str | None = None) -> None:
        with self._lock:
            self.events.append(("complete", message))

    def stop(self) -> None:
        with self._lock:
            self.events.append(("stop",))

    def named(self, name: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == name]
