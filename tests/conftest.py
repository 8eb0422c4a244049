# Standard library imports
import logging
import os

# Third-party imports
import pytest

# Local/package imports
from shellrun.config import DEBUG_ENV, ENCODING_ENV, PIPEFAIL_ENV, clear_settings_cache
from shellrun.pipeline import clear_command_cache
from shellrun.trace import RecordingSink, Tracer

SETTINGS_ENV = (DEBUG_ENV, PIPEFAIL_ENV, ENCODING_ENV)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Run every test with default settings and empty caches."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    clear_command_cache()
    yield
    for name in SETTINGS_ENV:
        os.environ.pop(name, None)
    clear_settings_cache()

    logger = logging.getLogger("shellrun")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def sink():
    """In-memory trace sink."""
    return RecordingSink()


@pytest.fixture
def tracer(sink):
    """Tracer writing into the ``sink`` fixture."""
    return Tracer(sink)
