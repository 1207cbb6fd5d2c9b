from __future__ import annotations

import pytest
import structlog


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_structlog():
    # cli.main configures structlog against the current (captured) stderr
    yield
    structlog.reset_defaults()
