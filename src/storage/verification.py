"""
Manual-Test Verification State Machine

    unverified --verified--> (row removed; history retyped; user's statuses purged)
        |
        +------rejected----> rejected (row kept)

Only unverified tests can transition. Submission and every transition run
in a single transaction.
"""

import logging
from datetime import datetime
from typing import Optional

from pymongo.client_session import ClientSession

from src.common.error_handling import ValidationError

from .integrity import EntityKind, ReferentialIntegrityValidator
from .invalidation import StatusInvalidator
from .models import EHistory, EManualTest, HistoryType, ManualTestStatus
from .repositories import Repositories
from .transactions import TransactionCoordinator

logger = logging.getLogger(__name__)


def parse_status(status: str) -> ManualTestStatus:
    try:
        return ManualTestStatus(status)
    except ValueError as e:
        raise ValidationError(f"unknown manual test status: {status}") from e


class ManualTestVerifier:
    """Submission and review of user-submitted test results."""

    def __init__(
        self,
        repos: Repositories,
        coordinator: TransactionCoordinator,
        validator: ReferentialIntegrityValidator,
        invalidator: StatusInvalidator,
    ):
        self._repos = repos
        self._coordinator = coordinator
        self._validator = validator
        self._invalidator = invalidator

    def submit(
        self,
        user_id: str,
        date: datetime,
        encrypted_key: str,
        encrypted_blob: str,
        encrypted_image_key: str,
        encrypted_image_blob: str,
        county_id: Optional[str] = None,
        location_id: Optional[str] = None,
    ) -> EHistory:
        """
        Record a submitted test: an unverified history entry plus the manual
        test pointing at it, written together.

        Returns:
            The history entry created for the user

        Raises:
            ValidationError: If the user, county or location does not exist
        """
        def steps(session: ClientSession) -> EHistory:
            self._validator.ensure_exists(EntityKind.USER, user_id, session=session)
            if county_id is not None:
                self._validator.ensure_exists(EntityKind.COUNTY, county_id, session=session)
            if location_id is not None:
                self._validator.ensure_exists(EntityKind.LOCATION, location_id, session=session)

            history = self._repos.histories.create(
                EHistory(
                    user_id=user_id,
                    date=date,
                    type=HistoryType.UNVERIFIED_MANUAL_TEST,
                    encrypted_key=encrypted_key,
                    encrypted_blob=encrypted_blob,
                ),
                session=session,
            )
            self._repos.manual_tests.create(
                EManualTest(
                    user_id=user_id,
                    ehistory_id=history.id,
                    location_id=location_id,
                    county_id=county_id,
                    encrypted_key=encrypted_key,
                    encrypted_blob=encrypted_blob,
                    encrypted_image_key=encrypted_image_key,
                    encrypted_image_blob=encrypted_image_blob,
                    status=ManualTestStatus.UNVERIFIED,
                ),
                session=session,
            )
            return history

        return self._coordinator.run("submit_manual_test", steps)

    def process(
        self,
        manual_test_id: str,
        status: str,
        encrypted_key: Optional[str] = None,
        encrypted_blob: Optional[str] = None,
    ) -> None:
        """
        Apply an operator decision to a manual test.

        Args:
            manual_test_id: Manual test to process
            status: "verified", "rejected" (or "unverified", a no-op status write)
            encrypted_key: Verified payload key for the history entry (verified only)
            encrypted_blob: Verified payload for the history entry (verified only)

        Raises:
            NotFoundError: If the manual test does not exist (nothing is written)
            ValidationError: Unknown status, a test no longer unverified,
                or a verification without its payload
        """
        target = parse_status(status)

        def steps(session: ClientSession) -> None:
            manual_test = self._repos.manual_tests.find(manual_test_id, session=session)
            if manual_test.status != ManualTestStatus.UNVERIFIED.value:
                raise ValidationError(
                    f"manual test {manual_test_id} is already {manual_test.status}"
                )
            if target == ManualTestStatus.VERIFIED and (encrypted_key is None or encrypted_blob is None):
                raise ValidationError("verifying a manual test requires the verified payload")

            if target == ManualTestStatus.VERIFIED:
                self._verify(manual_test, encrypted_key, encrypted_blob, session)
            else:
                self._repos.manual_tests.update_status(manual_test_id, target, session=session)

        self._coordinator.run(f"process_manual_test:{target.value}", steps)
        logger.info(f"Manual test {manual_test_id} processed: {target.value}")

    def _verify(
        self,
        manual_test: EManualTest,
        encrypted_key: str,
        encrypted_blob: str,
        session: ClientSession,
    ) -> None:
        self._repos.manual_tests.delete(manual_test.id, session=session)

        history = self._repos.histories.find(manual_test.ehistory_id, session=session)
        history.type = HistoryType.VERIFIED_MANUAL_TEST
        history.encrypted_key = encrypted_key
        history.encrypted_blob = encrypted_blob
        self._repos.histories.save(history, session=session)

        # The verified result changes what the user's status should be
        self._invalidator.invalidate_user(manual_test.user_id, session=session)
