# Copyright (c) Syntropy Systems
"""Performance budgets: building rules and evaluating results against them."""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING

from speedvitals.models.analysis import BudgetRule, BudgetVerdict, Direction, Violation

if TYPE_CHECKING:
    from speedvitals.models.analysis import AnalysisResult

PERFORMANCE_SCORE = "performance_score"
LARGEST_CONTENTFUL_PAINT = "largest_contentful_paint"
CUMULATIVE_LAYOUT_SHIFT = "cumulative_layout_shift"
FIRST_CONTENTFUL_PAINT = "first_contentful_paint"
TOTAL_BLOCKING_TIME = "total_blocking_time"
SERVER_RESPONSE_TIME = "server_response_time"
SPEED_INDEX = "speed_index"

# Budget option name -> (metric reported by the API, passing direction)
BUDGET_METRICS: dict[str, tuple[str, Direction]] = {
    "performance_score": (PERFORMANCE_SCORE, "above"),
    "lcp": (LARGEST_CONTENTFUL_PAINT, "below"),
    "cls": (CUMULATIVE_LAYOUT_SHIFT, "below"),
    "fcp": (FIRST_CONTENTFUL_PAINT, "below"),
    "tbt": (TOTAL_BLOCKING_TIME, "below"),
    "server_response_time": (SERVER_RESPONSE_TIME, "below"),
    "speed_index": (SPEED_INDEX, "below"),
}

DEFAULT_BUDGET: dict[str, float] = {
    "performance_score": 90,
    "lcp": 2500,
    "cls": 0.1,
    "fcp": 1800,
    "tbt": 200,
    "server_response_time": 800,
    "speed_index": 3400,
}


def build_budget_rules(budget: Mapping[str, float | None] | None = None) -> list[BudgetRule]:
    """Turn budget options into rules.

    Options set to None are skipped. When nothing is set the default budget
    is used.

    Raises:
        ValueError: An option name is not a known budget

    """
    rules: list[BudgetRule] = []
    for key, threshold in (budget or {}).items():
        if threshold is None:
            continue
        if key not in BUDGET_METRICS:
            msg = f"Unknown budget metric: {key}"
            raise ValueError(msg)
        metric, direction = BUDGET_METRICS[key]
        rules.append(BudgetRule(metric=metric, threshold=threshold, direction=direction))

    if rules:
        return rules
    return build_budget_rules(DEFAULT_BUDGET)


def evaluate_budgets(
    results: Iterable[AnalysisResult],
    rules: Sequence[BudgetRule],
) -> BudgetVerdict:
    """Check every result against every rule.

    A missing metric counts as a violation. Every violation is reported;
    evaluation does not stop at the first one.
    """
    violations: list[Violation] = []
    for result in results:
        for rule in rules:
            value = result.metric(rule.metric)
            if not rule.is_violated_by(value):
                continue
            violations.append(
                Violation(
                    metric=rule.metric,
                    value=value,
                    threshold=rule.threshold,
                    comparator=rule.comparator,
                    url=result.request.url,
                    device=result.request.device,
                    location=result.request.location,
                ),
            )
    return BudgetVerdict(violations=violations)


def format_metric_value(value: float | None, metric: str) -> str:
    """Format a metric for display: CLS as a decimal, score as an integer, rest in ms."""
    if value is None:
        return "N/A"
    if metric == CUMULATIVE_LAYOUT_SHIFT:
        return f"{value:.3f}"
    if metric == PERFORMANCE_SCORE:
        return f"{value:.0f}"
    return f"{round(value)}ms"
