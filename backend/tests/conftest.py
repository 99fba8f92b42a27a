"""Shared fixtures for admission tests."""

import pytest

from tests.helpers.redis_stub import FakeAsyncRedis, FrozenClock, RecordingLogger


@pytest.fixture
def fake_redis() -> FakeAsyncRedis:
    return FakeAsyncRedis()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()
