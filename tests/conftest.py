import os
import pytest


# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "ES_HOST",
    "ES_PORT",
    "ES_SCHEME",
    "ES_USERNAME",
    "ES_PASSWORD",
    "ES_REQUEST_TIMEOUT_SECONDS",
    "ES_SCROLL_KEEP_ALIVE",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    for k in _ENV_VARS_TO_ISOLATE:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture(autouse=True)
def settings_isolation():
    """Reset cached settings and the global search client around each test."""
    from esrest.core.config import reset_settings
    from esrest.core.search import client

    reset_settings()
    backup_client = client._search_client
    client._search_client = None
    try:
        yield
    finally:
        reset_settings()
        client._search_client = backup_client


@pytest.fixture
def engine():
    """A fresh in-memory engine."""
    from esrest.core.search.memory import InMemoryEngine

    return InMemoryEngine()


@pytest.fixture
def es(engine):
    """Client wired to the in-memory engine."""
    from esrest.core.search.client import ElasticsearchClient

    return ElasticsearchClient(transport=engine)
