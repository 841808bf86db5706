"""Shared pytest fixtures."""

import logging

import pytest

from mail_forwarder.logging.context import clear_log_context
from mail_forwarder.persistence.database import close_database, init_database

GRAPH_ENV_VARS = (
    "GRAPH_TENANT_ID",
    "GRAPH_CLIENT_ID",
    "GRAPH_CLIENT_SECRET",
    "LOG_LEVEL",
    "DATABASE_URL",
    "ENVIRONMENT",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every environment variable the forwarder reads."""
    for name in GRAPH_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def mock_env_vars(clean_env):
    """Valid credential environment for live-mode configuration."""
    clean_env.setenv("GRAPH_TENANT_ID", "11111111-1111-1111-1111-111111111111")
    clean_env.setenv("GRAPH_CLIENT_ID", "22222222-2222-2222-2222-222222222222")
    clean_env.setenv("GRAPH_CLIENT_SECRET", "s3cret")
    return clean_env


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def restore_root_logging():
    """Undo configure_logging() side effects on the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def temp_database():
    """Initialize an in-memory database for one test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()
