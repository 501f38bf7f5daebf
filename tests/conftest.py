"""
Pytest Configuration and Fixtures
"""

import os
import sys
import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

# Set test environment
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["API_KEY"] = "test-key-12345"
os.environ.pop("TIBET_DIGEST_KEY", None)
os.environ.pop("TIBET_PERSIST", None)

from tibet_rail.core.consent import BilateralConsentManager
from tibet_rail.core.store import TokenStore
from tibet_rail.core.verifier import TokenVerifier


@pytest.fixture
def store():
    """Store whose tokens are attributed to alice by default."""
    return TokenStore(default_actor="did:jis:alice")


@pytest.fixture
def anonymous_store():
    return TokenStore()


@pytest.fixture
def verifier(store):
    return TokenVerifier(store)


@pytest.fixture
def manager():
    return BilateralConsentManager("did:jis:alice")


@pytest.fixture
def temp_db(tmp_path):
    """Database URL pointing at a fresh file."""
    return f"sqlite:///{tmp_path / 'tibet.db'}"
