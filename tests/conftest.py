"""Pytest configuration for workspace tests.

Ensures the project root is in sys.path so imports work correctly.
"""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from fakes.gateway import FakeGateway, make_entry  # noqa: E402
from workspace.events import EventBus  # noqa: E402


@pytest.fixture
def tree():
    """/home/user holds the mixed-case listing used by the sort tests."""
    return {
        "/": [make_entry("/", "home", is_dir=True)],
        "/home": [make_entry("/home", "user", is_dir=True)],
        "/home/user": [
            make_entry("/home/user", "b"),
            make_entry("/home/user", "A", is_dir=True),
            make_entry("/home/user", "a"),
        ],
        "/home/user/A": [make_entry("/home/user/A", "inner.txt", size=12)],
    }


@pytest.fixture
def gateway(tree):
    return FakeGateway(tree)


@pytest.fixture
def bus():
    return EventBus()
