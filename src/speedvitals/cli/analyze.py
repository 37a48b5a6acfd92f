# Copyright (c) Syntropy Systems
"""speedvitals analyze command."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from speedvitals.analyze import analyze as run_analysis
from speedvitals.analyze import enforce_budget
from speedvitals.budget import format_metric_value
from speedvitals.ci import detect_ci
from speedvitals.client import SpeedVitalsClient
from speedvitals.config import API_KEY_ENVVAR, SpeedVitalsConfig, load_config
from speedvitals.errors import RegressionError, SpeedVitalsError
from speedvitals.options import validate_options
from speedvitals.progress import make_reporter

if TYPE_CHECKING:
    from speedvitals.models.analysis import RunSummary, Violation

console = Console()

CONFIG_EXAMPLE = '[["https://example.com", "mobile", "us"], ["https://example.com/about", "desktop", "uk"]]'
URLS_EXAMPLE = '["https://example.com", "https://example.com/about"]'


def _configure_logging(verbose: bool) -> None:
    """Send log records to stderr through rich."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _parse_json_list(value: str | None, option: str, example: str) -> list[object] | None:
    """Parse a JSON array passed on the command line."""
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        console.print(
            f"[red]Error:[/red] Invalid JSON format for {option} option. "
            "Please provide a valid JSON array."
        )
        console.print(f"Example: '{escape(example)}'", highlight=False)
        console.print(f"[dim]{escape(str(e))}[/dim]")
        raise typer.Exit(1) from e
    if not isinstance(parsed, list):
        console.print(f"[red]Error:[/red] {option} must be a JSON array.")
        console.print(f"Example: '{escape(example)}'", highlight=False)
        raise typer.Exit(1)
    return parsed


def _make_client(api_key: str, config: SpeedVitalsConfig) -> SpeedVitalsClient:
    """Create the HTTP client for the SpeedVitals API."""
    return SpeedVitalsClient(api_key, api_url=config.api_url, timeout=config.timeout)


def build_results_table(summary: RunSummary) -> Table:
    """Build the results table: one row per test, one column per budgeted metric."""
    failing = {(v.url, v.device, v.location, v.metric) for v in summary.violations}
    metrics: list[str] = []
    for rule in summary.rules:
        if rule.metric not in metrics:
            metrics.append(rule.metric)

    table = Table(title="Results", show_header=True, header_style="bold")
    table.add_column("#", style="dim")
    table.add_column("URL")
    table.add_column("Device")
    table.add_column("Location")
    for metric in metrics:
        table.add_column(metric, justify="right")
    table.add_column("Report", overflow="fold")

    for index, result in enumerate(summary.results, start=1):
        request = result.request
        cells: list[str] = []
        for metric in metrics:
            text = format_metric_value(result.metric(metric), metric)
            key = (request.url, request.device, request.location, metric)
            style = "red" if key in failing else "green"
            cells.append(f"[{style}]{text}[/{style}]")
        table.add_row(
            str(index),
            escape(request.url),
            escape(request.device),
            escape(request.location),
            *cells,
            escape(result.report_url or "-"),
        )

    return table


def _print_violation(violation: Violation) -> None:
    measured = "N/A" if violation.value is None else f"{violation.value:g}"
    console.print(
        f"[yellow]Budget regression detected for {violation.metric}:[/yellow] "
        f"[red]{measured}[/red] {violation.comparator} [green]{violation.threshold:g}[/green] "
        f"| URL {escape(violation.url)} Device: {escape(violation.device)}, "
        f"Location: {escape(violation.location)}",
    )


def print_summary(summary: RunSummary) -> None:
    """Print the results table followed by any budget regressions."""
    if summary.results:
        console.print(build_results_table(summary))

    for violation in summary.violations:
        _print_violation(violation)

    if not summary.has_regression:
        console.print("[green]No budget regressions detected.[/green]")


def analyze(  # noqa: PLR0913
    config: Optional[str] = typer.Option(
        None,
        "--config",
        help=f"JSON array of (url, device, location) triples, e.g. {CONFIG_EXAMPLE}",
    ),
    urls: Optional[str] = typer.Option(
        None,
        "--urls",
        help=f"JSON array of URLs to analyze, e.g. {URLS_EXAMPLE}",
    ),
    device: Optional[str] = typer.Option(
        None,
        "--device",
        help="Device type for --urls, e.g. mobile, desktop, ipad102 (default: mobile)",
    ),
    location: Optional[str] = typer.Option(
        None,
        "--location",
        help="Testing location for --urls, e.g. us, uk, de, in, jp (default: us)",
    ),
    lcp: Optional[float] = typer.Option(None, "--lcp", help="Largest Contentful Paint budget in ms"),
    cls: Optional[float] = typer.Option(None, "--cls", help="Cumulative Layout Shift budget as a decimal score"),
    fcp: Optional[float] = typer.Option(None, "--fcp", help="First Contentful Paint budget in ms"),
    tbt: Optional[float] = typer.Option(None, "--tbt", help="Total Blocking Time budget in ms"),
    tti: Optional[float] = typer.Option(None, "--tti", help="Time to Interactive budget (unsupported, the API does not report TTI)"),
    server_response_time: Optional[float] = typer.Option(
        None,
        "--server-response-time",
        help="Server response time budget in ms",
    ),
    speed_index: Optional[float] = typer.Option(None, "--speed-index", help="Speed Index budget in ms"),
    performance_score: Optional[float] = typer.Option(
        None,
        "--performance-score",
        help="Minimum performance score (0-100)",
    ),
    fail_on_regression: str = typer.Option(
        "true",
        "--fail-on-regression",
        help="Exit with an error code on budget regression (true/false)",
    ),
    no_fail_on_regression: bool = typer.Option(
        False,
        "--no-fail-on-regression",
        help="Same as --fail-on-regression false",
    ),
    base_branch: Optional[str] = typer.Option(
        None,
        "--base-branch",
        "--baseBranch",
        help="Branch to report instead of the detected one",
    ),
    api_key: str = typer.Option(
        "",
        "--api-key",
        envvar=API_KEY_ENVVAR,
        help="SpeedVitals API key (https://speedvitals.com/account/api)",
        show_default=False,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config-file",
        help="YAML file with concurrency, polling and retry settings",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log every API call and retry",
    ),
) -> None:
    """Analyze URLs for performance metrics and check them against budgets.

    Examples:

        speedvitals analyze --urls '["https://example.com"]' --lcp 2500

        speedvitals analyze --config '[["https://example.com", "desktop", "uk"]]'

    When no budget flag is given the default budget is used.
    """
    _configure_logging(verbose)

    raw_options: dict[str, object] = {
        "api_key": api_key,
        "config": _parse_json_list(config, "--config", CONFIG_EXAMPLE),
        "urls": _parse_json_list(urls, "--urls", URLS_EXAMPLE),
        "device": device,
        "location": location,
        "base_branch": base_branch,
        "fail_on_regression": False if no_fail_on_regression else fail_on_regression,
        "budget": {
            "lcp": lcp,
            "cls": cls,
            "fcp": fcp,
            "tbt": tbt,
            "tti": tti,
            "server_response_time": server_response_time,
            "speed_index": speed_index,
            "performance_score": performance_score,
        },
    }
    options, errors = validate_options(raw_options)
    if options is None:
        console.print("[red]Invalid options:[/red]")
        for error in errors:
            console.print(f"  - {escape(error)}")
        raise typer.Exit(1)

    try:
        settings = load_config(config_file)
    except SpeedVitalsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    ci = detect_ci()
    reporter = make_reporter(console, is_ci=ci.is_ci)
    try:
        with _make_client(options.api_key, settings) as service:
            summary = run_analysis(
                options,
                service,
                config=settings,
                reporter=reporter,
                ci=ci,
            )
    except SpeedVitalsError as e:
        console.print(f"\n[red]Error analyzing URL:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    print_summary(summary)

    try:
        enforce_budget(summary, fail_on_regression=options.fail_on_regression)
    except RegressionError as e:
        console.print(f"[red]{e}. Exiting with error.[/red]")
        raise typer.Exit(1) from e

    if summary.results:
        console.print(
            f"[green]Successfully completed analysis of {len(summary.results)} URL(s).[/green]"
        )
