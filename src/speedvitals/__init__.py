"""
speedvitals - Lighthouse performance budgets for CI.

Submit tests to SpeedVitals, wait for results, fail the build on regressions.
"""

from speedvitals.budget import build_budget_rules, evaluate_budgets

__version__ = "0.1.0"
__all__ = ["build_budget_rules", "evaluate_budgets", "__version__"]
