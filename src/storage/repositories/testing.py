"""
Provider, location, test-result and per-user history repositories.
"""

from typing import List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.client_session import ClientSession

from src.common.error_handling import NotFoundError

from ..database import Collections
from ..models import CTest, EHistory, EManualTest, EStatus, Location, ManualTestStatus, Provider, utcnow
from .base import MongoEntityRepository


class ProviderRepository(MongoEntityRepository[Provider]):
    collection_name = Collections.PROVIDERS
    model = Provider
    kind = "provider"


class LocationRepository(MongoEntityRepository[Location]):
    collection_name = Collections.LOCATIONS
    model = Location
    kind = "location"

    def find_by_provider_and_county(self, provider_id: str, county_id: str) -> List[Location]:
        return self.find_many({"provider_id": provider_id, "county_id": county_id})

    def find_by_county_ids(self, county_ids: List[str]) -> List[Location]:
        if not county_ids:
            return []
        return self.find_many({"county_id": {"$in": county_ids}})

    def find_ids_by_county(self, county_id: str, session: Optional[ClientSession] = None) -> List[str]:
        documents = self.collection.find(
            {"county_id": county_id}, projection={"_id": 1}, session=session
        )
        return [doc["_id"] for doc in documents]


class CTestRepository(MongoEntityRepository[CTest]):
    collection_name = Collections.CTESTS
    model = CTest
    kind = "ctest"

    def find_by_user(self, user_id: str, processed: bool) -> List[CTest]:
        """Oldest first, so callers process results in arrival order."""
        return self.find_many(
            {"user_id": user_id, "processed": processed},
            sort=[("date_created", ASCENDING)],
        )

    def delete_by_user(self, user_id: str, session: Optional[ClientSession] = None) -> int:
        return self.collection.delete_many({"user_id": user_id}, session=session).deleted_count


class ManualTestRepository(MongoEntityRepository[EManualTest]):
    collection_name = Collections.EMANUAL_TESTS
    model = EManualTest
    kind = "manual test"

    def find_image(self, manual_test_id: str) -> Tuple[str, str]:
        """
        Get the separately encrypted image of a manual test.

        Returns:
            (encrypted_image_key, encrypted_image_blob)

        Raises:
            NotFoundError: If the manual test does not exist
        """
        document = self.collection.find_one({"_id": manual_test_id})
        if document is None:
            raise NotFoundError(self.kind, manual_test_id)
        return document.get("encrypted_image_key", ""), document.get("encrypted_image_blob", "")

    def update_status(
        self,
        manual_test_id: str,
        status: ManualTestStatus,
        session: Optional[ClientSession] = None,
    ) -> None:
        result = self.collection.update_one(
            {"_id": manual_test_id},
            {"$set": {"status": ManualTestStatus(status).value, "date_updated": utcnow()}},
            session=session,
        )
        if result.matched_count == 0:
            raise NotFoundError(self.kind, manual_test_id)

    def delete_by_user(self, user_id: str, session: Optional[ClientSession] = None) -> int:
        return self.collection.delete_many({"user_id": user_id}, session=session).deleted_count


class EHistoryRepository(MongoEntityRepository[EHistory]):
    collection_name = Collections.EHISTORY
    model = EHistory
    kind = "history"

    def find_by_user(self, user_id: str) -> List[EHistory]:
        """Most recent first."""
        return self.find_many({"user_id": user_id}, sort=[("date", DESCENDING)])

    def delete_by_user(self, user_id: str, session: Optional[ClientSession] = None) -> int:
        return self.collection.delete_many({"user_id": user_id}, session=session).deleted_count


class EStatusRepository(MongoEntityRepository[EStatus]):
    collection_name = Collections.ESTATUS
    model = EStatus
    kind = "status"

    @staticmethod
    def _user_filter(user_id: str, app_version: Optional[str]) -> dict:
        # Statuses written by clients older than app versioning have no app_version
        return {"user_id": user_id, "app_version": app_version}

    def find_by_user(self, user_id: str, app_version: Optional[str] = None) -> EStatus:
        document = self.collection.find_one(self._user_filter(user_id, app_version))
        if document is None:
            raise NotFoundError(self.kind, user_id, f"no status for user {user_id} ({app_version})")
        return self._to_entity(document)

    def delete_for_user(self, user_id: str, app_version: Optional[str] = None) -> int:
        return self.collection.delete_many(self._user_filter(user_id, app_version)).deleted_count

    def delete_by_user(self, user_id: str, session: Optional[ClientSession] = None) -> int:
        """Delete every status of the user, across app versions."""
        return self.collection.delete_many({"user_id": user_id}, session=session).deleted_count

    def delete_all(self, session: Optional[ClientSession] = None) -> int:
        return self.collection.delete_many({}, session=session).deleted_count
