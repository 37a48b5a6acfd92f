# Copyright (c) Syntropy Systems
"""Retry policy around the submit-and-poll state machine."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from speedvitals.errors import ExhaustedRetriesError, RequestError, RunAbortedError

if TYPE_CHECKING:
    import threading

    from speedvitals.models.analysis import AnalysisResult, TestRequest
    from speedvitals.poller import TestPoller

logger = logging.getLogger(__name__)

# (request, retry number starting at 1, max retries, error that caused it)
RetryCallback = Callable[["TestRequest", int, int, RequestError], None]


class RetryPolicy:
    """Re-runs the whole create-and-poll cycle after a failed attempt.

    A request gets at most ``max_retries + 1`` attempts. Each retry creates
    a new test; nothing from the failed attempt is reused. Attempts for one
    request never overlap.
    """

    def __init__(
        self,
        poller: TestPoller,
        max_retries: int = 2,
        on_retry: RetryCallback | None = None,
    ) -> None:
        self.poller = poller
        self.max_retries = max_retries
        self.on_retry = on_retry

    def run(
        self,
        request: TestRequest,
        stop: threading.Event | None = None,
    ) -> AnalysisResult:
        """Run request until an attempt succeeds or retries are exhausted.

        Raises:
            ExhaustedRetriesError: Every attempt failed
            RunAbortedError: The run was aborted while this request was polling

        """
        attempts = 0
        while True:
            attempts += 1
            try:
                result = self.poller.run(request, stop)
            except RequestError as e:
                logger.debug("Attempt %d for %s failed: %s", attempts, request, e)
                if attempts > self.max_retries:
                    raise ExhaustedRetriesError(request, attempts, e) from e
                if stop is not None and stop.is_set():
                    msg = f"Not retrying {request.url}: run aborted"
                    raise RunAbortedError(msg) from e
                if self.on_retry is not None:
                    self.on_retry(request, attempts, self.max_retries, e)
            else:
                if attempts > 1:
                    logger.info("%s succeeded on attempt %d", request, attempts)
                return result
