"""Smoke tests for configuration and the testing infrastructure."""

from app import config


def test_python_version():
    """Verify Python version meets requirements."""
    import sys

    assert sys.version_info >= (3, 11), "Python 3.11 or higher required"


def test_retry_policy_constants():
    """Three retries after the first attempt, four attempts in total."""
    assert config.MAX_RETRIES == 3
    assert config.MAX_ATTEMPTS_TOTAL == 4


def test_positive_number_override(monkeypatch):
    monkeypatch.setenv("RM_TEST_INTERVAL", "2.5")
    assert config._get_positive_number("RM_TEST_INTERVAL", 5.0) == 2.5


def test_invalid_override_falls_back(monkeypatch):
    monkeypatch.setenv("RM_TEST_INTERVAL", "-1")
    assert config._get_positive_number("RM_TEST_INTERVAL", 5.0) == 5.0
    monkeypatch.setenv("RM_TEST_INTERVAL", "soon")
    assert config._get_positive_number("RM_TEST_INTERVAL", 5.0) == 5.0


def test_zero_delay_allowed(monkeypatch):
    monkeypatch.setenv("RM_TEST_DELAY", "0")
    assert config._get_non_negative_number("RM_TEST_DELAY", 7.0) == 0.0


def test_workers_enabled_toggle(monkeypatch):
    monkeypatch.setenv("RM_WORKERS_ENABLED", "0")
    assert config.workers_enabled() is False
    monkeypatch.delenv("RM_WORKERS_ENABLED")
    assert config.workers_enabled() is True
