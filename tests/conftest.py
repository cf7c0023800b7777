"""Pytest configuration and shared fixtures."""

import pytest

from yt_upload.backoff import BackoffScheduler, CancelToken
from tests.fakes import FixedJitter, RecordingWait


@pytest.fixture
def cancel_token():
    return CancelToken()


@pytest.fixture
def recording_wait():
    return RecordingWait()


@pytest.fixture
def scheduler(cancel_token, recording_wait):
    """Backoff scheduler that never actually sleeps."""
    return BackoffScheduler(cancel_token=cancel_token, wait=recording_wait, rng=FixedJitter())


@pytest.fixture(autouse=True)
def no_credentials_env(monkeypatch):
    """Keep real credentials out of tests."""
    monkeypatch.delenv("YT_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("GOOGLE_SERVICE_ACCOUNT_PATH", raising=False)
