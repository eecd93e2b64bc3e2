"""Shared pytest fixtures for conformance tests."""
from __future__ import annotations

import pytest

from reactive_tck.conformance.provider import RangePublisherProvider
from reactive_tck.environment import TestEnvironment


@pytest.fixture
def environment() -> TestEnvironment:
    """Environment honouring the REACTIVE_TCK_* timeout variables."""
    return TestEnvironment.from_env()


@pytest.fixture
def range_provider() -> RangePublisherProvider:
    """Provider for the bundled reference Publisher."""
    return RangePublisherProvider()
