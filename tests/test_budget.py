# Copyright (c) Syntropy Systems
"""Tests for budget rules and evaluation."""

from __future__ import annotations

import itertools
from collections import Counter

import pytest

from speedvitals.budget import (
    DEFAULT_BUDGET,
    build_budget_rules,
    evaluate_budgets,
    format_metric_value,
)
from speedvitals.models.analysis import AnalysisResult, BudgetRule, TestRequest
from speedvitals.models.api import TestJob

LCP_RULE = BudgetRule(metric="largest_contentful_paint", threshold=2500, direction="below")
SCORE_RULE = BudgetRule(metric="performance_score", threshold=90, direction="above")


def make_result(url: str = "https://example.com", **metrics: float | None) -> AnalysisResult:
    request = TestRequest(url=url, device="mobile", location="us")
    job = TestJob(id=f"job-{url}", status="success", metrics=dict(metrics))
    return AnalysisResult(request=request, job=job)


class TestBuildBudgetRules:
    """Tests for turning budget options into rules."""

    def test_maps_options_to_metrics_and_directions(self) -> None:
        """Test each option maps to its metric with the right direction."""
        rules = build_budget_rules({"lcp": 2000, "performance_score": 85, "cls": 0.2})

        assert rules == [
            BudgetRule(metric="largest_contentful_paint", threshold=2000, direction="below"),
            BudgetRule(metric="performance_score", threshold=85, direction="above"),
            BudgetRule(metric="cumulative_layout_shift", threshold=0.2, direction="below"),
        ]

    def test_unset_options_are_skipped(self) -> None:
        """Test None thresholds do not produce rules."""
        rules = build_budget_rules({"lcp": 2000, "tbt": None, "tti": None})

        assert [r.metric for r in rules] == ["largest_contentful_paint"]

    def test_default_budget_when_nothing_set(self) -> None:
        """Test the default budget applies when no option is set."""
        rules = build_budget_rules({"lcp": None})

        assert len(rules) == len(DEFAULT_BUDGET)
        by_metric = {r.metric: r for r in rules}
        assert by_metric["performance_score"].threshold == 90
        assert by_metric["performance_score"].direction == "above"
        assert by_metric["largest_contentful_paint"].threshold == 2500
        assert by_metric["cumulative_layout_shift"].threshold == 0.1
        assert by_metric["speed_index"].threshold == 3400

    def test_default_budget_when_none_given(self) -> None:
        """Test build_budget_rules() with no argument uses the defaults."""
        assert build_budget_rules() == build_budget_rules(DEFAULT_BUDGET)

    def test_unknown_option_rejected(self) -> None:
        """Test an unknown budget name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown budget metric: fmp"):
            _ = build_budget_rules({"fmp": 1000})

    def test_tti_has_no_metric(self) -> None:
        """Test a TTI budget is rejected since the API reports no such metric."""
        with pytest.raises(ValueError, match="Unknown budget metric: tti"):
            _ = build_budget_rules({"tti": 3800})


class TestEvaluateBudgets:
    """Tests for the budget evaluator."""

    def test_below_rule_violated(self) -> None:
        """Test LCP over its threshold is a regression."""
        verdict = evaluate_budgets([make_result(largest_contentful_paint=3000)], [LCP_RULE])

        assert verdict.has_regression
        assert len(verdict.violations) == 1
        violation = verdict.violations[0]
        assert violation.metric == "largest_contentful_paint"
        assert violation.value == 3000
        assert violation.threshold == 2500
        assert violation.comparator == ">"
        assert violation.url == "https://example.com"
        assert violation.device == "mobile"
        assert violation.location == "us"

    def test_below_rule_passes(self) -> None:
        """Test LCP under its threshold is not a regression."""
        verdict = evaluate_budgets([make_result(largest_contentful_paint=2000)], [LCP_RULE])

        assert not verdict.has_regression
        assert verdict.violations == []

    def test_above_rule_violated(self) -> None:
        """Test a score under its threshold is a regression."""
        verdict = evaluate_budgets([make_result(performance_score=85)], [SCORE_RULE])

        assert verdict.has_regression
        assert verdict.violations[0].comparator == "<"
        assert verdict.violations[0].value == 85

    def test_above_rule_passes(self) -> None:
        """Test a score over its threshold is not a regression."""
        verdict = evaluate_budgets([make_result(performance_score=95)], [SCORE_RULE])

        assert not verdict.has_regression

    def test_threshold_is_inclusive(self) -> None:
        """Test values equal to the threshold pass in both directions."""
        result = make_result(largest_contentful_paint=2500, performance_score=90)

        verdict = evaluate_budgets([result], [LCP_RULE, SCORE_RULE])

        assert not verdict.has_regression

    def test_null_metric_is_regression(self) -> None:
        """Test a missing value counts as a violation."""
        verdict = evaluate_budgets(
            [make_result(largest_contentful_paint=None)],
            [LCP_RULE, SCORE_RULE],
        )

        assert verdict.has_regression
        assert {v.metric for v in verdict.violations} == {
            "largest_contentful_paint",
            "performance_score",
        }
        assert all(v.value is None for v in verdict.violations)

    def test_reports_every_violation(self) -> None:
        """Test evaluation does not stop at the first violation."""
        results = [
            make_result("https://a.example", largest_contentful_paint=3000, performance_score=50),
            make_result("https://b.example", largest_contentful_paint=2600, performance_score=99),
            make_result("https://c.example", largest_contentful_paint=1000, performance_score=99),
        ]

        verdict = evaluate_budgets(results, [LCP_RULE, SCORE_RULE])

        assert len(verdict.violations) == 3
        assert [v.url for v in verdict.violations] == [
            "https://a.example",
            "https://a.example",
            "https://b.example",
        ]

    def test_order_independent(self) -> None:
        """Test permuting results gives the same verdict and violations."""
        results = [
            make_result("https://a.example", largest_contentful_paint=3000, performance_score=95),
            make_result("https://b.example", largest_contentful_paint=2000, performance_score=80),
            make_result("https://c.example", largest_contentful_paint=2000, performance_score=95),
        ]
        rules = [LCP_RULE, SCORE_RULE]
        expected = evaluate_budgets(results, rules)

        for permutation in itertools.permutations(results):
            verdict = evaluate_budgets(list(permutation), rules)
            assert verdict.has_regression == expected.has_regression
            assert Counter(verdict.violations) == Counter(expected.violations)

    def test_no_results(self) -> None:
        """Test an empty run has no regression."""
        verdict = evaluate_budgets([], [LCP_RULE])

        assert not verdict.has_regression

    def test_violation_description(self) -> None:
        """Test the human-readable violation line."""
        verdict = evaluate_budgets([make_result(largest_contentful_paint=3000)], [LCP_RULE])

        assert verdict.violations[0].describe() == (
            "largest_contentful_paint: 3000 > 2500 "
            "| URL https://example.com Device: mobile, Location: us"
        )


class TestFormatMetricValue:
    """Tests for metric display formatting."""

    def test_formats(self) -> None:
        """Test CLS, score, timings and missing values."""
        assert format_metric_value(0.12345, "cumulative_layout_shift") == "0.123"
        assert format_metric_value(92.4, "performance_score") == "92"
        assert format_metric_value(2499.6, "largest_contentful_paint") == "2500ms"
        assert format_metric_value(None, "speed_index") == "N/A"
