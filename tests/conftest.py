"""Shared test fixtures."""

import pytest

from reactive_auth import ReactiveAuth
from reactive_auth.memory import MemoryAuthClient


@pytest.fixture(autouse=True)
def configure_structlog():
    """Configure structlog for testing."""
    import structlog

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@pytest.fixture
def memory_client() -> MemoryAuthClient:
    """In-memory client that runs callbacks inline."""
    return MemoryAuthClient()


@pytest.fixture
def threaded_client():
    """In-memory client that runs callbacks on a worker thread."""
    client = MemoryAuthClient(dispatch="thread")
    yield client
    client.close()


@pytest.fixture
def auth(memory_client: MemoryAuthClient) -> ReactiveAuth:
    """Adapter over the inline in-memory client."""
    return ReactiveAuth(memory_client)
