"""Shared pytest fixtures."""

import pytest

from regwatch.database import SqliteStore


@pytest.fixture
def store():
    """In-memory SQLite store."""
    db = SqliteStore(db_url="sqlite:///:memory:")
    yield db
    db.close()
