"""
MongoDB database utilities for the health storage engine.

Provides connection management, collection handles, sessions and the
index declarations for every persisted collection.
"""

import logging
from typing import Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database

from src.common.error_handling import translate_store_errors

from .collection import CollectionHandle, IndexSpec

logger = logging.getLogger(__name__)


class Collections:
    """Persisted collection names. The dependency checklist relies on these."""

    COUNTIES = "counties"
    TEST_TYPES = "testtypes"
    RULES = "rules"
    SYMPTOM_RULES = "symptomrules"
    ACCESS_RULES = "accessrules"
    PROVIDERS = "providers"
    LOCATIONS = "locations"
    USERS = "users"
    CTESTS = "ctests"
    EMANUAL_TESTS = "emanualtests"
    EHISTORY = "ehistory"
    ESTATUS = "estatus"
    RESOURCES = "resources"
    FAQ = "faq"
    NEWS = "news"
    UIN_OVERRIDES = "uinoverrides"
    APP_VERSIONS = "appversions"
    CONFIGS = "configs"


def _idx(name: str, field: str, direction: int = ASCENDING, unique: bool = False) -> IndexSpec:
    return IndexSpec(name=name, keys=[(field, direction)], unique=unique)


COLLECTION_INDEXES: Dict[str, List[IndexSpec]] = {
    Collections.COUNTIES: [
        # Embedded lookups: narrow to the parent before the in-memory scan
        _idx("guidelines_id", "guidelines.id"),
        _idx("county_statuses_id", "county_statuses.id"),
    ],
    Collections.TEST_TYPES: [
        _idx("results_id", "results._id"),
    ],
    Collections.RULES: [
        _idx("county_id", "county_id"),
        _idx("test_type_id", "test_type_id"),
    ],
    Collections.SYMPTOM_RULES: [
        _idx("county_id", "county_id", unique=True),
    ],
    Collections.ACCESS_RULES: [
        _idx("county_id", "county_id", unique=True),
    ],
    Collections.PROVIDERS: [],
    Collections.LOCATIONS: [
        _idx("provider_id", "provider_id"),
        _idx("county_id", "county_id"),
    ],
    Collections.USERS: [
        _idx("external_id", "external_id", unique=True),
        _idx("shibboleth_uin", "shibboleth_auth.uiucedu_uin"),
        _idx("uuid", "uuid"),
        _idx("re_post", "re_post"),
    ],
    Collections.CTESTS: [
        _idx("user_id", "user_id"),
        _idx("provider_id", "provider_id"),
        _idx("order_number", "order_number"),
    ],
    Collections.EMANUAL_TESTS: [
        _idx("user_id", "user_id"),
        _idx("location_id", "location_id"),
        _idx("county_id", "county_id"),
        _idx("status", "status"),
    ],
    Collections.EHISTORY: [
        _idx("user_id", "user_id"),
        _idx("date", "date", DESCENDING),
    ],
    Collections.ESTATUS: [
        _idx("user_id", "user_id"),
        _idx("app_version", "app_version"),
    ],
    Collections.RESOURCES: [],
    Collections.FAQ: [],
    Collections.NEWS: [
        _idx("date", "date", DESCENDING),
    ],
    Collections.UIN_OVERRIDES: [
        _idx("uin", "uin", unique=True),
        _idx("category", "category"),
    ],
    Collections.APP_VERSIONS: [
        _idx("version", "version", unique=True),
    ],
    Collections.CONFIGS: [],
}


class DatabaseClient:
    """
    MongoDB client for the storage engine.

    Manages the connection and provides typed access to collections.
    One instance is shared process-wide (see src.storage.config); the
    underlying MongoClient is safe for concurrent use.
    """

    def __init__(
        self,
        mongodb_uri: str,
        database: str,
        timeout_ms: int = 500,
        client: Optional[MongoClient] = None,
    ):
        """
        Args:
            mongodb_uri: MongoDB connection string
            database: Database name
            timeout_ms: Deadline applied to server selection and every operation
            client: Pre-built client (tests inject one); built lazily otherwise
        """
        self._mongodb_uri = mongodb_uri
        self._database_name = database
        self._timeout_ms = timeout_ms
        self._client = client
        self._db: Optional[Database] = None
        self._handles: Dict[str, CollectionHandle] = {}

    def connect(self) -> None:
        """
        Connect to MongoDB.

        Raises:
            ValueError: If no MongoDB URI is configured
        """
        if self._client is None:
            if not self._mongodb_uri:
                raise ValueError("MONGODB_URI not configured in .env")
            self._client = MongoClient(
                self._mongodb_uri,
                serverSelectionTimeoutMS=self._timeout_ms,
                timeoutMS=self._timeout_ms,
                tz_aware=True,
            )
        self._db = self._client[self._database_name]
        logger.info(f"Connected to MongoDB: {self._database_name}")

    def disconnect(self) -> None:
        """Close the MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            self._handles = {}
            logger.info("Disconnected from MongoDB")

    @property
    def db(self) -> Database:
        """Get the database instance, connecting on first use."""
        if self._db is None:
            self.connect()
        return self._db

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            self.connect()
        return self._client

    def collection(self, name: str) -> CollectionHandle:
        """
        Get the handle for a collection.

        Raises:
            KeyError: If the collection is not one the engine persists
        """
        if name not in COLLECTION_INDEXES:
            raise KeyError(f"Unknown collection: {name}")
        handle = self._handles.get(name)
        if handle is None:
            handle = CollectionHandle(self.db[name], COLLECTION_INDEXES[name])
            self._handles[name] = handle
        return handle

    def start_session(self) -> ClientSession:
        """Start a client session for a multi-document transaction."""
        with translate_store_errors("start_session"):
            return self.client.start_session()

    def ensure_indexes(self) -> int:
        """
        Create all required indexes.

        Called once during startup.

        Returns:
            Number of indexes created or confirmed
        """
        logger.info("Creating indexes...")
        total = 0
        for name in COLLECTION_INDEXES:
            total += self.collection(name).ensure_indexes()
        logger.info(f"✓ All indexes created ({total})")
        return total
