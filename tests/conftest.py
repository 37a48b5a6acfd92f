# Copyright (c) Syntropy Systems
"""Pytest fixtures for speedvitals tests."""

from __future__ import annotations

import pytest
from helpers import FakeClock, FakeService, RecordingReporter

from speedvitals.models.analysis import TestRequest


@pytest.fixture
def service() -> FakeService:
    """Fake API where every test succeeds on its first poll."""
    return FakeService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def request_a() -> TestRequest:
    return TestRequest(url="https://example.com", device="mobile", location="us")
