"""Shared fixtures for mathmark tests."""

import pytest

from tests.support import RecordingListener


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
