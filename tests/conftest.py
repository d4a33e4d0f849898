"""Shared fixtures for the gcal-auth test suite."""

from __future__ import annotations

import logging

import pytest

from gcal_auth.auth.token_store import TokenStore


class FakeClock:
    """Manually advanced wall clock (seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> TokenStore:
    return TokenStore(clock=clock)


@pytest.fixture(autouse=True)
def _restore_gcal_logger():
    logger = logging.getLogger("gcal_auth")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
