"""
Pytest configuration.

This file adds the project root to the Python path so that tests can import
the domain, repositories, services and api packages, and provides the
in-memory stores most service tests start from.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.fakes import FixedClock, InMemoryLeadStore, InMemoryVendorStore  # noqa: E402


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def lead_store() -> InMemoryLeadStore:
    return InMemoryLeadStore()


@pytest.fixture
def vendor_store() -> InMemoryVendorStore:
    return InMemoryVendorStore()
