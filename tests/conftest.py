"""Pytest configuration and shared fixtures."""

import logfire
import pytest

from threadflow.core.config import Settings


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        api_base_url="http://threadflow.test",
        api_token="test-token",
        username="bob",
        full_name="Bob Builder",
        role="Developer",
        poll_interval_seconds=10.0,
    )


@pytest.fixture(autouse=True, scope="session")
def quiet_logfire() -> None:
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)
