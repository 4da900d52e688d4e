"""
Pytest configuration and shared fixtures for backend tests.
"""
import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend and tests directories to Python path
tests_dir = Path(__file__).parent
backend_dir = tests_dir.parent
sys.path.insert(0, str(backend_dir))
sys.path.insert(0, str(tests_dir))

# Keep the module level engine off the production database path
os.environ.setdefault("DATABASE_URL", "sqlite://")

from iptv_engine.core.config import Settings  # noqa: E402
from iptv_engine.db.session import init_db  # noqa: E402
from iptv_engine.services.cache_store import CacheStore  # noqa: E402
from iptv_engine.services.configuration import ConfigurationService  # noqa: E402
from fixtures.factories import FakeClock  # noqa: E402


@pytest.fixture(scope="function")
def test_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(session_factory, clock):
    return CacheStore(session_factory, clock=clock)


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite://",
        FILTER_CATEGORIES_LIST="",
        FILTER_CHANNELS_LIST="",
        PAUSE_FILTERING=False,
        PAUSE_CACHING=False,
        CACHE_EXPIRY_DAYS=30,
        VOD_SERIES_CATEGORY_TTL_DAYS=30,
        PLAYBACK_MAX_RETRIES=1,
    )


@pytest.fixture
def configuration(session_factory, test_settings):
    return ConfigurationService(session_factory, test_settings)
