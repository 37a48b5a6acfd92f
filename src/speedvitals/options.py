# Copyright (c) Syntropy Systems
"""Validation of analyze options and expansion into test requests."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from pydantic import AnyHttpUrl, Field, TypeAdapter, ValidationError, ValidationInfo, field_validator

from speedvitals.config import DEFAULT_DEVICE, DEFAULT_LOCATION
from speedvitals.models.analysis import TestRequest
from speedvitals.models.base import SpeedVitalsBaseModel

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails

_HTTP_URL: TypeAdapter[AnyHttpUrl] = TypeAdapter(AnyHttpUrl)

# A config entry is [url, device, location]
ConfigEntry = tuple[str, str, str]

_LABELS = {
    "lcp": "LCP",
    "cls": "CLS",
    "fcp": "FCP",
    "tbt": "TBT",
    "server_response_time": "Server Response Time",
    "speed_index": "Speed Index",
}


def _check_url(url: str) -> str:
    try:
        _ = _HTTP_URL.validate_python(url)
    except ValidationError as e:
        msg = f"Invalid URL format: {url}"
        raise ValueError(msg) from e
    return url


class BudgetOptions(SpeedVitalsBaseModel):
    """Budget thresholds given on the command line."""

    lcp: Optional[float] = None
    cls: Optional[float] = None
    fcp: Optional[float] = None
    tbt: Optional[float] = None
    tti: Optional[float] = None
    server_response_time: Optional[float] = None
    speed_index: Optional[float] = None
    performance_score: Optional[float] = None

    @field_validator("lcp", "fcp", "server_response_time", "speed_index")
    @classmethod
    def _positive(cls, value: float | None, info: ValidationInfo) -> float | None:
        if value is not None and value <= 0:
            msg = f"{_LABELS[info.field_name]} budget must be a positive number"
            raise ValueError(msg)
        return value

    @field_validator("cls", "tbt")
    @classmethod
    def _non_negative(cls, value: float | None, info: ValidationInfo) -> float | None:
        if value is not None and value < 0:
            msg = f"{_LABELS[info.field_name]} budget must be non-negative"
            raise ValueError(msg)
        return value

    @field_validator("tti")
    @classmethod
    def _unsupported(cls, value: float | None) -> float | None:
        # The API reports no Time to Interactive metric.
        if value is not None:
            msg = "TTI budget is not supported: SpeedVitals does not report Time to Interactive"
            raise ValueError(msg)
        return value

    @field_validator("performance_score")
    @classmethod
    def _score_range(cls, value: float | None) -> float | None:
        if value is not None and not 0 <= value <= 100:
            msg = "Performance Score must be between 0 and 100"
            raise ValueError(msg)
        return value


class AnalyzeOptions(SpeedVitalsBaseModel):
    """Everything the analyze command needs before any test is submitted."""

    api_key: str = Field(min_length=1)
    config: Optional[list[ConfigEntry]] = None
    urls: Optional[list[str]] = None
    device: Optional[str] = None
    location: Optional[str] = None
    base_branch: Optional[str] = None
    fail_on_regression: bool = True
    budget: BudgetOptions = Field(default_factory=BudgetOptions)

    @field_validator("urls")
    @classmethod
    def _valid_urls(cls, value: list[str] | None) -> list[str] | None:
        if value is not None:
            for url in value:
                _ = _check_url(url)
        return value

    @field_validator("config")
    @classmethod
    def _valid_config_urls(cls, value: list[ConfigEntry] | None) -> list[ConfigEntry] | None:
        if value is not None:
            for url, _device, _location in value:
                _ = _check_url(url)
        return value


def _message(error: ErrorDetails) -> str:
    loc = error["loc"]
    if loc and loc[0] == "api_key" and error["type"] in ("string_too_short", "missing"):
        return (
            "API key is required. Set it via --api-key or "
            "SPEEDVITALS_API_KEY environment variable."
        )
    if loc and loc[0] == "fail_on_regression":
        return f"--fail-on-regression must be true or false, got {error['input']!r}"
    # Messages from our validators are prefixed by pydantic
    return error["msg"].removeprefix("Value error, ")


def validate_options(data: dict[str, object]) -> tuple[AnalyzeOptions | None, list[str]]:
    """Validate raw analyze options.

    Returns the parsed options (None if field validation failed) and every
    problem found, so the user sees them all at once.
    """
    errors: list[str] = []
    options: AnalyzeOptions | None = None
    try:
        options = AnalyzeOptions.model_validate(data)
    except ValidationError as e:
        errors.extend(_message(err) for err in e.errors())

    config = data.get("config")
    urls = data.get("urls")
    has_config = bool(config)
    has_urls = bool(urls)
    if has_config and has_urls:
        errors.append(
            "Cannot provide both config and urls. Use either --config or --urls, not both."
        )
    elif not has_config and not has_urls:
        errors.append("Either config or urls must be provided. Use --config or --urls.")

    if (data.get("location") or data.get("device")) and not has_urls:
        errors.append("--location and --device can only be used with --urls option.")

    if errors:
        return None, errors
    return options, errors


def build_requests(
    config: list[ConfigEntry] | None = None,
    urls: list[str] | None = None,
    device: str | None = None,
    location: str | None = None,
) -> list[TestRequest]:
    """Expand options into the ordered list of test requests.

    Explicit ``config`` triples win; otherwise each url is tested on
    ``device`` from ``location`` (defaults: mobile, us).
    """
    if config:
        return [
            TestRequest(url=url, device=entry_device, location=entry_location)
            for url, entry_device, entry_location in config
        ]
    return [
        TestRequest(
            url=url,
            device=device or DEFAULT_DEVICE,
            location=location or DEFAULT_LOCATION,
        )
        for url in urls or []
    ]
