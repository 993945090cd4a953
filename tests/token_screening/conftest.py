"""
Shared fixtures for the token screening tests.
"""

import pytest

from token_screening.config import CacheConfig, ScreenerConfig
from token_screening.providers import InMemoryProvider

from screening_fixtures import (
    BONK_TOKEN,
    SOL_TOKEN,
    FakeClock,
    safe_overview,
    safe_security,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    """In-memory provider with a healthy token and a honeypot."""
    p = InMemoryProvider()
    p.add_token(SOL_TOKEN, safe_security(), safe_overview())
    p.add_token(BONK_TOKEN, safe_security(is_honeypot=True), safe_overview())
    return p


@pytest.fixture
def config():
    return ScreenerConfig(
        provider_timeout_seconds=0.5,
        screen_timeout_seconds=2.0,
        cache=CacheConfig(ttl_seconds=300, max_entries=100, cleanup_interval_seconds=0),
    )
