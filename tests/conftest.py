"""Shared test fixtures."""

import os


# Must be set before settings are first loaded
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_REQUESTS", "false")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("AUTH_SECRET_KEY", "test-secret-key-for-threadline-tests")

from collections.abc import Iterator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.comments.service import CommentService  # noqa: E402
from src.main import create_app  # noqa: E402


@pytest.fixture
def app() -> FastAPI:
    """Fresh application without running the lifespan (no database)."""
    return create_app()


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """HTTP client for the application."""
    yield TestClient(app)


@pytest.fixture
def comment_service_mock(app: FastAPI) -> AsyncMock:
    """CommentService double installed on the application state."""
    service = AsyncMock(spec=CommentService)
    app.state.comment_service = service
    return service
