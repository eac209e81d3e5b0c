"""
Denormalizing Read Pipeline

Aggregation joins that produce read-optimized shapes without touching the
normalized documents:

- location + provider (one county, or a list of counties)
- lab test + owning user's external id (batch by external ids)
- order number -> owning user's external id (batch by order numbers)
- manual test + owning user

No matching rows is an empty result, never an error. Batch lookups
return mappings that omit keys with no match.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from .database import Collections, DatabaseClient
from .models import CTest, LocationDetails, ManualTestDetails, ManualTestStatus
from .repositories import LocationRepository
from .verification import parse_status

logger = logging.getLogger(__name__)

ALL_COUNTIES = "all"

LOCATION_FIELDS = (
    "name", "address_1", "address_2", "city", "state", "zip", "country",
    "latitude", "longitude", "timezone", "contact", "days_of_operation",
    "url", "notes", "wait_time_color", "available_tests", "county_id",
    "date_created", "date_updated",
)


def _lookup(from_collection: str, local_field: str, as_field: str) -> Dict[str, Any]:
    return {"$lookup": {
        "from": from_collection,
        "localField": local_field,
        "foreignField": "_id",
        "as": as_field,
    }}


def _location_provider_stages(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    projection: Dict[str, Any] = {"_id": 1}
    projection.update({name: 1 for name in LOCATION_FIELDS})
    projection.update({
        "provider_id": "$provider._id",
        "provider_name": "$provider.provider_name",
        "provider_available_mechanisms": "$provider.available_mechanisms",
    })
    return [
        {"$match": match},
        _lookup(Collections.PROVIDERS, "provider_id", "provider"),
        {"$unwind": "$provider"},
        {"$project": projection},
    ]


class DenormalizingReadPipeline:
    """Read-only joins across collections."""

    def __init__(self, database: DatabaseClient, locations: LocationRepository):
        self._database = database
        self._locations = locations

    def locations_by_county(self, county_id: str) -> List[LocationDetails]:
        """Locations of a county with their provider's name and mechanisms."""
        rows = self._database.collection(Collections.LOCATIONS).aggregate(
            _location_provider_stages({"county_id": county_id})
        )
        return [LocationDetails.from_dict(row) for row in rows]

    def locations_by_counties(self, county_ids: List[str]) -> List[LocationDetails]:
        if not county_ids:
            return []
        rows = self._database.collection(Collections.LOCATIONS).aggregate(
            _location_provider_stages({"county_id": {"$in": county_ids}})
        )
        return [LocationDetails.from_dict(row) for row in rows]

    def ctests_by_external_user_ids(self, external_user_ids: List[str]) -> Dict[str, List[CTest]]:
        """
        Lab tests that carry an order number, grouped by their owner's external id.

        Returns:
            {external_id: [CTest, ...]}; users without such tests are absent
        """
        if not external_user_ids:
            return {}
        pipeline = [
            _lookup(Collections.USERS, "user_id", "user"),
            {"$match": {"user.external_id": {"$in": external_user_ids}}},
            {"$unwind": "$user"},
            {"$project": {
                "_id": 1, "provider_id": 1, "order_number": 1, "encrypted_key": 1,
                "encrypted_blob": 1, "processed": 1, "date_created": 1, "date_updated": 1,
                "user_id": "$user._id", "user_external_id": "$user.external_id",
            }},
        ]
        rows = self._database.collection(Collections.CTESTS).aggregate(pipeline)

        grouped: Dict[str, List[CTest]] = {}
        for row in rows:
            if not row.get("order_number"):
                continue
            grouped.setdefault(row["user_external_id"], []).append(CTest.from_dict(row))
        return grouped

    def external_user_ids_by_order_numbers(self, order_numbers: List[str]) -> Dict[str, str]:
        """
        Returns:
            {order_number: external_id}; unknown order numbers are absent
        """
        if not order_numbers:
            return {}
        pipeline = [
            {"$match": {"order_number": {"$in": order_numbers}}},
            _lookup(Collections.USERS, "user_id", "user"),
            {"$unwind": "$user"},
            {"$project": {"_id": 1, "order_number": 1, "user_external_id": "$user.external_id"}},
        ]
        rows = self._database.collection(Collections.CTESTS).aggregate(pipeline)
        return {
            row["order_number"]: row["user_external_id"]
            for row in rows
            if row.get("user_external_id")
        }

    def manual_tests_with_user(
        self,
        county_id: str = ALL_COUNTIES,
        status: Optional[ManualTestStatus] = None,
    ) -> List[ManualTestDetails]:
        """
        Manual tests joined with their owner, newest first.

        Args:
            county_id: County to filter on, or "all". A test belongs to a
                county when it names the county or one of its locations.
            status: Optional status filter
        """
        stages: List[Dict[str, Any]] = []
        if county_id != ALL_COUNTIES:
            location_ids = self._locations.find_ids_by_county(county_id)
            if location_ids:
                stages.append({"$match": {"$or": [
                    {"county_id": county_id},
                    {"location_id": {"$in": location_ids}},
                ]}})
            else:
                stages.append({"$match": {"county_id": county_id}})
        if status is not None:
            stages.append({"$match": {"status": parse_status(status).value}})

        stages.extend([
            _lookup(Collections.USERS, "user_id", "user"),
            {"$unwind": "$user"},
            {"$project": {
                "_id": 1, "ehistory_id": 1, "location_id": 1, "county_id": 1,
                "encrypted_key": 1, "encrypted_blob": 1, "status": 1, "date_created": 1,
                "user": {
                    "id": "$user._id",
                    "external_id": "$user.external_id",
                    "uuid": "$user.uuid",
                    "public_key": "$user.public_key",
                    "consent": "$user.consent",
                    "exposure_notification": "$user.exposure_notification",
                    "encrypted_key": "$user.encrypted_key",
                    "encrypted_blob": "$user.encrypted_blob",
                },
            }},
            {"$sort": {"date_created": DESCENDING}},
        ])
        rows = self._database.collection(Collections.EMANUAL_TESTS).aggregate(stages)
        logger.debug(f"Manual tests for county {county_id} ({status}): {len(rows)}")
        return [ManualTestDetails.from_dict(row) for row in rows]
