# Copyright (c) Syntropy Systems
"""Run an analysis: submit every test, wait for results, evaluate budgets."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from speedvitals.budget import build_budget_rules, evaluate_budgets
from speedvitals.ci import detect_ci
from speedvitals.config import SpeedVitalsConfig
from speedvitals.errors import RegressionError
from speedvitals.models.analysis import RunSummary
from speedvitals.options import build_requests
from speedvitals.poller import TestPoller
from speedvitals.retry import RetryPolicy
from speedvitals.scheduler import Scheduler

if TYPE_CHECKING:
    from speedvitals.ci import CIMetadata
    from speedvitals.clock import Clock
    from speedvitals.options import AnalyzeOptions
    from speedvitals.poller import LighthouseService
    from speedvitals.progress import ProgressReporter

logger = logging.getLogger(__name__)


def analyze(  # noqa: PLR0913
    options: AnalyzeOptions,
    service: LighthouseService,
    *,
    config: SpeedVitalsConfig | None = None,
    reporter: ProgressReporter | None = None,
    clock: Clock | None = None,
    ci: CIMetadata | None = None,
) -> RunSummary:
    """Analyze every requested URL and evaluate the budget.

    Args:
        options: Validated analyze options
        service: Remote test service (normally a SpeedVitalsClient)
        config: Concurrency, polling and retry settings
        reporter: Progress reporter
        clock: Clock used between polls
        ci: CI metadata; detected from the environment when omitted

    Returns:
        RunSummary with results in input order and the budget verdict.
        Regressions are reported in the verdict, not raised.

    Raises:
        ExhaustedRetriesError: A request failed every attempt; the run is aborted

    """
    if config is None:
        config = SpeedVitalsConfig()

    rules = build_budget_rules(options.budget.model_dump())
    requests = build_requests(
        config=options.config,
        urls=options.urls,
        device=options.device,
        location=options.location,
    )
    if ci is None:
        ci = detect_ci()
    ci = ci.with_branch(options.base_branch)

    logger.info(
        "Starting analysis of %d URL(s) with %d budget rule(s)",
        len(requests),
        len(rules),
    )

    scheduler = Scheduler(concurrency=config.concurrency, reporter=reporter)
    poller = TestPoller(
        service,
        rules,
        poll_interval=config.poll_interval,
        max_poll_attempts=config.max_poll_attempts,
        clock=clock,
        ci=ci,
    )
    policy = RetryPolicy(
        poller,
        max_retries=config.max_retries,
        on_retry=scheduler.on_retry,
    )

    results = scheduler.run(requests, policy.run)
    verdict = evaluate_budgets(results, rules)
    logger.info(
        "Analysis finished: %d result(s), %d budget violation(s)",
        len(results),
        len(verdict.violations),
    )
    return RunSummary(results=results, rules=rules, verdict=verdict)


def enforce_budget(summary: RunSummary, *, fail_on_regression: bool) -> None:
    """Raise RegressionError if the run regressed and that should fail it."""
    if summary.has_regression and fail_on_regression:
        raise RegressionError(summary.violations)
