"""
Shared test fixtures and configuration for pytest
"""
import logging
import os

import pytest

from popkit.utils.console import reset_console

from .test_helpers import GREETING, FakeTransport, Pop3TestHelper


@pytest.fixture
def pop3_config():
    """Plaintext account configuration for a test server"""
    return Pop3TestHelper.create_config()


@pytest.fixture
def fake_transport():
    """Scripted transport that starts with a positive greeting"""
    return FakeTransport(GREETING)


@pytest.fixture
def temp_config_path(tmp_path):
    """Location for a config.json inside a temporary directory"""
    return tmp_path / "config.json"


@pytest.fixture(autouse=True)
def clear_env_vars():
    """Clear popkit environment variables before each test"""
    env_vars = ["POPKIT_PASSWORD"]
    original = {}
    for var in env_vars:
        original[var] = os.environ.get(var)
        if var in os.environ:
            del os.environ[var]

    yield

    for var, value in original.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]


@pytest.fixture(autouse=True)
def reset_popkit_logging():
    """Detach handlers installed by init_logging and reset the shared console"""
    yield
    root = logging.getLogger("popkit")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    reset_console()
