# Copyright (c) Syntropy Systems
"""Pydantic models for SpeedVitals API requests and responses."""

from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator

from .base import JSONValue, SpeedVitalsBaseModel

STATUS_IDLE = "idle"
STATUS_ACTIVE = "active"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

PENDING_STATUSES = frozenset({STATUS_IDLE, STATUS_ACTIVE})

# Metric name -> measured value. A None value means the service could not
# measure the metric for this test.
MetricSet = dict[str, Optional[float]]


class CreateTestPayload(SpeedVitalsBaseModel):
    """Body of POST /lighthouse-tests."""

    ci_env: dict[str, JSONValue] = Field(default_factory=dict, alias="ciEnv")
    config: dict[str, JSONValue] = Field(default_factory=dict)
    url: str
    device: str
    location: str


class TestJob(SpeedVitalsBaseModel):
    """Snapshot of a Lighthouse test job owned by the service."""

    __test__ = False

    id: str
    url: str | None = None
    device: str | None = None
    location: str | None = None
    status: str
    metrics: MetricSet | None = None
    error: JSONValue = None
    report_url: str | None = None
    config: dict[str, JSONValue] | None = None
    lighthouse_version: str | None = None
    created_at: int | None = None
    expires_at: int | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def is_pending(self) -> bool:
        """True while the service is still queueing or running the test."""
        return self.status in PENDING_STATUSES

    def metric(self, name: str) -> float | None:
        """Return a metric value, or None if absent or unmeasured."""
        if self.metrics is None:
            return None
        return self.metrics.get(name)


class ErrorEnvelope(SpeedVitalsBaseModel):
    """Error body returned by the service instead of a job."""

    code: str
    message: str

    @field_validator("code", mode="before")
    @classmethod
    def _coerce_code(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value
