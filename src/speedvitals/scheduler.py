# Copyright (c) Syntropy Systems
"""Bounded-concurrency scheduler for analysis requests."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from speedvitals.progress import NullProgressReporter, ProgressReporter

if TYPE_CHECKING:
    from speedvitals.errors import RequestError
    from speedvitals.models.analysis import AnalysisResult, TestRequest

logger = logging.getLogger(__name__)

# Runs one request to completion; RetryPolicy.run has this shape.
RequestRunner = Callable[["TestRequest", threading.Event], "AnalysisResult"]


class Scheduler:
    """Runs requests with at most ``concurrency`` of them in flight.

    The pool size is the concurrency ceiling, so no more than ``concurrency``
    requests can be creating or polling tests at once. The first request to
    fail aborts the run: queued requests are cancelled, in-flight ones are
    told to stop polling, and their results are dropped.
    """

    def __init__(
        self,
        concurrency: int = 3,
        reporter: ProgressReporter | None = None,
    ) -> None:
        if concurrency < 1:
            msg = f"concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)
        self.concurrency = concurrency
        self.reporter: ProgressReporter = (
            reporter if reporter is not None else NullProgressReporter()
        )
        self._completed = 0
        self._lock = threading.Lock()

    @property
    def completed(self) -> int:
        """Number of requests that have succeeded so far in the current run."""
        with self._lock:
            return self._completed

    def _notify(self, event: str, *args: object) -> None:
        """Forward an event to the reporter; reporter failures never fail the run."""
        try:
            getattr(self.reporter, event)(*args)
        except Exception:
            logger.warning("Progress reporter failed on %s", event, exc_info=True)

    def on_retry(
        self,
        request: TestRequest,
        retry: int,
        max_retries: int,
        error: RequestError,
    ) -> None:
        """Retry callback for RetryPolicy: report the retry with running totals."""
        logger.info("Retrying %s (%d/%d): %s", request, retry, max_retries, error)
        self._notify(
            "update",
            self.completed,
            f"retrying for {request.url} {retry}/{max_retries}",
        )

    def run(
        self,
        requests: Sequence[TestRequest],
        run_request: RequestRunner,
    ) -> list[AnalysisResult]:
        """Run every request and return their results in input order.

        Args:
            requests: Requests to run; duplicates are run independently
            run_request: Runs one request, normally RetryPolicy.run

        Raises:
            ExhaustedRetriesError: A request failed every attempt

        """
        total = len(requests)
        with self._lock:
            self._completed = 0
        self._notify("start", total)
        self._notify("update", 0)

        results: list[AnalysisResult | None] = [None] * total
        stop = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="speedvitals",
        )
        try:
            pending: dict[Future[AnalysisResult], int] = {
                executor.submit(run_request, request, stop): index
                for index, request in enumerate(requests)
            }

            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    index = pending.pop(future)
                    results[index] = future.result()
                    with self._lock:
                        self._completed += 1
                        completed = self._completed
                    self._notify("update", completed)
        except BaseException:
            stop.set()
            logger.info(
                "Aborting run: %d of %d request(s) had completed",
                self.completed,
                total,
            )
            self._notify("stop")
            raise
        finally:
            # An aborted run does not wait for in-flight work.
            aborted = stop.is_set()
            executor.shutdown(wait=not aborted, cancel_futures=aborted)

        self._notify("complete")
        return [result for result in results if result is not None]
