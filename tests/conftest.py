"""
Pytest configuration and fixtures.
Adds the repo root and tests/ to the Python path so tests can import
case_deploy and the shared fakes.
"""

import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).parent.parent
tests_path = Path(__file__).parent
for p in (repo_root, tests_path):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "cache.json"


@pytest.fixture
def gateway():
    from fake_gateway import FakeGateway
    return FakeGateway()
