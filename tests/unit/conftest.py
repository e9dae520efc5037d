"""
Shared fixtures for unit tests.

Connections are built with a zero retry delay so send-retry tests run
instantly.
"""

import pytest

from pinrelay.transport.connection import AsyncConnection, Connection
from pinrelay.transport.retry_policy import RetryPolicy
from tests.helpers.fakes import AsyncFakeStream, FakeClock, FakeStream


@pytest.fixture
def fake_stream():
    return FakeStream()


@pytest.fixture
def async_fake_stream():
    return AsyncFakeStream()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def connection(fake_stream):
    """Blocking Connection over an in-memory stream (3 attempts, no delay)."""
    return Connection(stream=fake_stream, retry_policy=RetryPolicy(max_attempts=3, delay_seconds=0))


@pytest.fixture
def async_connection(async_fake_stream):
    """AsyncConnection over an in-memory stream (3 attempts, no delay)."""
    return AsyncConnection(stream=async_fake_stream, retry_policy=RetryPolicy(max_attempts=3, delay_seconds=0))
