"""Pytest configuration and fixtures."""

import logging
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.fakes import FakeClock, FakeSession  # noqa: E402


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink_options() -> Dict[str, Any]:
    """Minimal valid sink options."""
    return {
        "url": "https://api.example.com/v1/records",
        "method": "POST",
        "batch_size": 2,
        "message_format": "json",
    }


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """Keep setup_logging() calls in CLI tests from leaking handlers."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers and type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
