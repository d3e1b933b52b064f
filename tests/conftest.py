"""
Pytest configuration and shared fixtures for the test suite.
"""
import sys
from pathlib import Path

import pytest

# Make the src layout importable without an editable install
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))
# Shared fakes live in tests/fixtures
sys.path.insert(0, str(Path(__file__).parent / "fixtures"))

from rutbatch.browser.interfaces import BrowserConfig  # noqa: E402
from rutbatch.config.settings import RunConfig  # noqa: E402


@pytest.fixture
def anyio_backend():
    """Backend for anyio async tests."""
    return "asyncio"


@pytest.fixture
def test_browser_config():
    """Test browser configuration."""
    return BrowserConfig(
        headless=True,
        proxy=None,
        user_agent="Mozilla/5.0 (Test Browser)",
        viewport={"width": 1920, "height": 1080},
        extra_args=["--no-sandbox", "--disable-setuid-sandbox"]
    )


@pytest.fixture
def fast_config():
    """Run configuration with no real waiting."""
    return RunConfig(
        worker_count=2,
        max_concurrent_tasks=4,
        max_retries=3,
        retry_delay=0,
        poll_interval=0,
        max_poll_interval=0,
        max_poll_attempts=3,
        per_task_timeout=5.0,
    )


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    test_env = {
        "TWOCAPTCHA_API_KEY": "test-key",
        "RUTBATCH_HEADLESS": "true",
        "LOG_LEVEL": "INFO"
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    return test_env


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
