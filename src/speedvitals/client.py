# Copyright (c) Syntropy Systems
"""HTTP client for the SpeedVitals Lighthouse test API."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Union

import httpx
from pydantic import ValidationError
from typing_extensions import Self, TypeAlias

from speedvitals.config import BASE_API_URL
from speedvitals.errors import SpeedVitalsClientError
from speedvitals.models.api import CreateTestPayload, ErrorEnvelope, TestJob

if TYPE_CHECKING:
    from types import TracebackType

    from speedvitals.ci import CIMetadata
    from speedvitals.models.analysis import TestRequest

logger = logging.getLogger(__name__)

TestResponse: TypeAlias = Union[TestJob, ErrorEnvelope]


class SpeedVitalsClient:
    """HTTP client for creating and fetching Lighthouse tests."""

    api_url: str
    timeout: float

    def __init__(
        self,
        api_key: str,
        api_url: str = BASE_API_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: SpeedVitals API key sent as X-API-KEY
            api_url: Base URL of the API (e.g., "https://api.speedvitals.com/v1")
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests

        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=self.api_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "X-API-KEY": api_key,
            },
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        json: dict[str, object] | None = None,
    ) -> TestResponse:
        """Make an HTTP request and decode a job or an error envelope.

        A ``{code, message}`` body is returned as an ErrorEnvelope whatever
        the HTTP status, since that is how the API reports test errors.
        """
        try:
            response = self._client.request(method, path, json=json)
        except httpx.RequestError as e:
            msg = f"Connection error: {e}"
            raise SpeedVitalsClientError(msg) from e

        try:
            data = response.json()
        except ValueError as e:
            msg = f"Invalid response from {method} {path} (HTTP {response.status_code})"
            raise SpeedVitalsClientError(msg) from e

        if isinstance(data, dict) and "code" in data and "message" in data:
            try:
                return ErrorEnvelope.model_validate(data)
            except ValidationError as e:
                msg = f"Malformed error from {method} {path}: {e}"
                raise SpeedVitalsClientError(msg) from e

        try:
            _ = response.raise_for_status()
        except httpx.HTTPStatusError as e:
            msg = f"Server error: {e}"
            raise SpeedVitalsClientError(msg, code=str(response.status_code)) from e

        try:
            return TestJob.model_validate(data)
        except ValidationError as e:
            msg = f"Unexpected response from {method} {path}: {e}"
            raise SpeedVitalsClientError(msg) from e

    def create_test(self, request: TestRequest, ci: CIMetadata | None = None) -> TestResponse:
        """Create a Lighthouse test.

        Args:
            request: URL, device and location to test
            ci: CI metadata attached to the test

        Returns:
            The created job, or the error envelope returned by the API

        """
        payload = CreateTestPayload(
            ci_env=ci.to_payload() if ci is not None else {},
            url=request.url,
            device=request.device,
            location=request.location,
        )
        logger.debug("Creating test for %s", request)
        return self._request(
            "POST",
            "/lighthouse-tests",
            json=payload.model_dump(by_alias=True),
        )

    def get_test(self, job_id: str) -> TestResponse:
        """Fetch the current state of a Lighthouse test.

        Args:
            job_id: Test ID returned by create_test

        Returns:
            The job snapshot, or the error envelope returned by the API

        """
        return self._request("GET", f"/lighthouse-tests/{job_id}")
