"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that prevent real external service calls:
- MongoDB connection attempts (would block for the server selection timeout)
- Environment variable isolation (prevents a developer's .env from leaking in)

And shared fixtures backed by the in-memory store in tests/helpers/fake_mongo.py:
- fake_client / database / repos / adapter
"""

import pytest
from unittest.mock import patch, MagicMock

from src.storage.adapter import StorageAdapter
from src.storage.database import DatabaseClient
from src.storage.repositories import Repositories
from tests.helpers.fake_mongo import FakeClient


@pytest.fixture(autouse=True)
def mock_mongodb():
    """
    Prevent MongoDB connection attempts in all unit tests.

    DatabaseClient.connect() builds a MongoClient unless a client is
    injected; without this mock a forgotten injection would try
    localhost:27017.
    """
    with patch("src.storage.database.MongoClient") as mock_client:
        mock_instance = MagicMock()
        mock_db = MagicMock()
        mock_collection = MagicMock()

        # Setup chain: client["db"]["collection"]
        mock_instance.__getitem__ = MagicMock(return_value=mock_db)
        mock_db.__getitem__ = MagicMock(return_value=mock_collection)
        mock_collection.find_one = MagicMock(return_value=None)
        mock_collection.find = MagicMock(return_value=[])

        mock_client.return_value = mock_instance
        yield mock_client


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real configuration.

    Tests that need a different environment use patch.dict("os.environ").
    """
    monkeypatch.setenv("MONGODB_URI", "mongodb://test")
    monkeypatch.setenv("MONGODB_DATABASE", "health_test")
    monkeypatch.setenv("MONGO_TIMEOUT", "500")
    monkeypatch.setenv("WATCH_CONFIGS", "false")
    monkeypatch.setenv("SEED_APP_VERSIONS", "false")


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def database(fake_client):
    """DatabaseClient over the in-memory store, with every index declared."""
    db = DatabaseClient("mongodb://test", "health_test", client=fake_client)
    db.connect()
    db.ensure_indexes()
    return db


@pytest.fixture
def repos(database):
    return Repositories.build(database)


@pytest.fixture
def audit():
    return MagicMock()


@pytest.fixture
def adapter(database, audit):
    return StorageAdapter(database, audit=audit)

