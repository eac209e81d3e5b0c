"""
Testing-site, test-result and per-user history models.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from .base import Document, StoredModel


DEFAULT_TIMEZONE = "America/Chicago"


class Provider(Document):
    provider_name: str
    manual_test: bool = False
    available_mechanisms: List[str] = Field(default_factory=list)


class OperationDay(StoredModel):
    name: str
    open_time: str = ""
    close_time: str = ""


class Location(Document):
    name: str
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    timezone: str = DEFAULT_TIMEZONE
    contact: str = ""
    days_of_operation: List[OperationDay] = Field(default_factory=list)
    url: str = ""
    notes: str = ""
    wait_time_color: Optional[str] = None
    provider_id: str
    county_id: str
    available_tests: List[str] = Field(default_factory=list)


class LocationDetails(Location):
    """Location joined with the provider fields a client needs to render it."""

    provider_name: str = ""
    provider_available_mechanisms: List[str] = Field(default_factory=list)


class CTest(Document):
    """A lab-submitted test result."""

    provider_id: str
    user_id: str
    encrypted_key: str = ""
    encrypted_blob: str = ""
    order_number: Optional[str] = None
    processed: bool = False


class ManualTestStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


class EManualTest(Document):
    """A user-submitted test result waiting for human review."""

    user_id: str
    ehistory_id: str
    location_id: Optional[str] = None
    county_id: Optional[str] = None
    encrypted_key: str = ""
    encrypted_blob: str = ""
    encrypted_image_key: str = ""
    encrypted_image_blob: str = ""
    status: ManualTestStatus = ManualTestStatus.UNVERIFIED


class ManualTestUser(StoredModel):
    """The user columns projected into a manual-test join row."""

    id: str = ""
    external_id: Optional[str] = None
    uuid: str = ""
    public_key: str = ""
    consent: bool = False
    exposure_notification: bool = False
    encrypted_key: Optional[str] = None
    encrypted_blob: Optional[str] = None


class ManualTestDetails(StoredModel):
    """Manual test joined with its owner. The image payload is never included."""

    id: str = Field(alias="_id")
    ehistory_id: str
    location_id: Optional[str] = None
    county_id: Optional[str] = None
    encrypted_key: str = ""
    encrypted_blob: str = ""
    status: ManualTestStatus
    date_created: Optional[datetime] = None
    user: ManualTestUser


class HistoryType:
    """Tags used for EHistory.type by the engine itself."""

    UNVERIFIED_MANUAL_TEST = "unverified_manual_test"
    VERIFIED_MANUAL_TEST = "verified_manual_test"


class EHistory(Document):
    user_id: str
    date: datetime
    type: str
    encrypted_key: str = ""
    encrypted_blob: str = ""


class EStatus(Document):
    """Cached, derived status for a (user, app version). Purged, never recomputed here."""

    user_id: str
    app_version: Optional[str] = None
    date: Optional[datetime] = None
    encrypted_key: str = ""
    encrypted_blob: str = ""
