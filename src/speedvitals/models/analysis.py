# Copyright (c) Syntropy Systems
"""Domain models for test requests, budgets and analysis outcomes."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, computed_field

from .api import STATUS_SUCCESS, TestJob
from .base import FrozenModel, SpeedVitalsBaseModel

Direction = Literal["above", "below"]


class TestRequest(FrozenModel):
    """One unit of work: a URL tested on a device from a location."""

    __test__ = False

    url: str
    device: str
    location: str

    def __str__(self) -> str:
        return f"{self.url} ({self.device}, {self.location})"


class BudgetRule(FrozenModel):
    """Threshold a metric must satisfy.

    ``above`` rules pass when the value is >= threshold (scores),
    ``below`` rules pass when the value is <= threshold (timings, shifts).
    """

    metric: str
    threshold: float
    direction: Direction

    @property
    def comparator(self) -> str:
        """Operator describing a failing comparison."""
        return "<" if self.direction == "above" else ">"

    def is_violated_by(self, value: float | None) -> bool:
        """Return True when ``value`` fails this rule."""
        if value is None:
            return True
        if self.direction == "above":
            return value < self.threshold
        return value > self.threshold


class AnalysisResult(SpeedVitalsBaseModel):
    """Successful outcome of one request.

    The job has ``status == "success"`` and a value for every budgeted
    metric.
    """

    request: TestRequest
    job: TestJob

    @property
    def succeeded(self) -> bool:
        return self.job.status == STATUS_SUCCESS

    @property
    def report_url(self) -> str | None:
        return self.job.report_url

    def metric(self, name: str) -> float | None:
        return self.job.metric(name)


class Violation(FrozenModel):
    """A budgeted metric that failed its threshold for one request."""

    metric: str
    value: float | None
    threshold: float
    comparator: str
    url: str
    device: str
    location: str

    def describe(self) -> str:
        measured = "N/A" if self.value is None else f"{self.value:g}"
        return (
            f"{self.metric}: {measured} {self.comparator} {self.threshold:g} "
            f"| URL {self.url} Device: {self.device}, Location: {self.location}"
        )


class BudgetVerdict(SpeedVitalsBaseModel):
    """Result of evaluating budgets over a set of results."""

    violations: list[Violation] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_regression(self) -> bool:
        return bool(self.violations)


class RunSummary(SpeedVitalsBaseModel):
    """Completed results of a run plus their budget verdict."""

    results: list[AnalysisResult] = Field(default_factory=list)
    rules: list[BudgetRule] = Field(default_factory=list)
    verdict: BudgetVerdict = Field(default_factory=BudgetVerdict)

    @property
    def has_regression(self) -> bool:
        return self.verdict.has_regression

    @property
    def violations(self) -> list[Violation]:
        return self.verdict.violations
