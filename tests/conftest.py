"""Pytest configuration and fixtures."""

import os

import pytest

from app.core.config import get_settings


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["ADAPTIVE_ENGINE_ENV"] = "test"
    os.environ["RULE_STORE_BACKEND"] = "memory"
    os.environ.pop("CLASSIFIER_ML_URL", None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeClock:
    """Millisecond clock advanced manually."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dims_strong():
    return {
        "problem": 8,
        "underserved": 7,
        "demand": 8,
        "differentiation": 7,
        "economics": 8,
        "gtm": 7,
    }
