"""
Storage Adapter

Facade over the storage engine. Callers (the HTTP layer, background jobs)
get one method per cross-collection operation and never assemble
transactions themselves:

    adapter = StorageAdapter(database)
    adapter.delete_county(county_id)          # dependency check + delete, atomic
    adapter.create_rule(rule)                 # validate + insert + status purge, atomic
    adapter.process_manual_test(id, "verified", key, blob)

Single-collection reads and writes go straight to `adapter.repos`;
joins go to `adapter.reads`.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from pymongo.client_session import ClientSession

from src.common.error_handling import DependencyExistsError, NotFoundError
from src.common.logger import get_logger

from .audit import AuditAction, AuditLogger, BestEffortAudit, LoggingAuditLogger
from .database import Collections, DatabaseClient
from .embedded import EmbeddedCollectionManager
from .integrity import EntityKind, ReferentialIntegrityValidator
from .invalidation import StatusInvalidator
from .models import (
    AccessRule,
    CountyStatus,
    CTest,
    EHistory,
    Guideline,
    Location,
    Rule,
    SymptomRule,
    TestTypeResult,
)
from .pipelines import DenormalizingReadPipeline
from .repositories import Repositories
from .transactions import TransactionCoordinator
from .verification import ManualTestVerifier
from .watcher import ConfigsListener, ConfigWatcher

logger = logging.getLogger(__name__)


class StorageAdapter:
    """
    Wires repositories, validator, coordinator, invalidator, read pipeline
    and verification state machine around one DatabaseClient.

    Args:
        database: Connected DatabaseClient
        audit: Audit collaborator for policy mutations (default: log only)
        listener: Notified when the configs collection changes
    """

    def __init__(
        self,
        database: DatabaseClient,
        audit: Optional[AuditLogger] = None,
        listener: Optional[ConfigsListener] = None,
    ):
        self.database = database
        self.repos = Repositories.build(database)

        self.guidelines = EmbeddedCollectionManager(
            self.repos.counties, "guidelines", Guideline, EntityKind.GUIDELINE.value
        )
        self.county_statuses = EmbeddedCollectionManager(
            self.repos.counties, "county_statuses", CountyStatus, EntityKind.COUNTY_STATUS.value
        )
        self.test_type_results = EmbeddedCollectionManager(
            self.repos.test_types, "results", TestTypeResult, EntityKind.TEST_TYPE_RESULT.value,
            id_key="_id",
        )

        self.validator = ReferentialIntegrityValidator(database)
        self.coordinator = TransactionCoordinator(database)
        self.invalidator = StatusInvalidator(self.repos.statuses)
        self.reads = DenormalizingReadPipeline(database, self.repos.locations)
        self.verifier = ManualTestVerifier(
            self.repos, self.coordinator, self.validator, self.invalidator
        )
        self._audit = BestEffortAudit(audit or LoggingAuditLogger())
        self._watcher = (
            ConfigWatcher(database.collection(Collections.CONFIGS), listener)
            if listener is not None
            else None
        )

    # ===== Lifecycle =====

    def start(self, seed_app_versions: bool = True, watch_configs: bool = True) -> None:
        """Seed default app versions and start the configs watcher if configured."""
        if seed_app_versions:
            self.repos.app_versions.seed_defaults()
        if watch_configs and self._watcher is not None:
            self._watcher.start()

    def stop(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
        self.database.disconnect()

    def ensure_indexes(self) -> int:
        return self.database.ensure_indexes()

    # ===== Guarded deletes =====

    def _guarded_delete(
        self,
        kind: EntityKind,
        entity_id: str,
        delete: Callable[[str, ClientSession], None],
    ) -> None:
        op_logger = get_logger(__name__, operation=f"delete_{kind.name.lower()}")

        def steps(session: ClientSession) -> None:
            self.validator.ensure_deletable(kind, entity_id, session=session)
            delete(entity_id, session)

        self.coordinator.run(f"delete_{kind.name.lower()}", steps)
        op_logger.info(f"Deleted {kind.value} {entity_id}")
        self._audit.record(kind.value, entity_id, AuditAction.DELETE)

    def delete_county(self, county_id: str) -> None:
        """
        Raises:
            DependencyExistsError: If a location or rule still references the county
            NotFoundError: If the county does not exist
        """
        self._guarded_delete(
            EntityKind.COUNTY, county_id,
            lambda entity_id, session: self.repos.counties.delete(entity_id, session=session),
        )

    def delete_provider(self, provider_id: str) -> None:
        self._guarded_delete(
            EntityKind.PROVIDER, provider_id,
            lambda entity_id, session: self.repos.providers.delete(entity_id, session=session),
        )

    def delete_test_type(self, test_type_id: str) -> None:
        """A test type can only go once no location, rule or result of its own is left."""
        self._guarded_delete(
            EntityKind.TEST_TYPE, test_type_id,
            lambda entity_id, session: self.repos.test_types.delete(entity_id, session=session),
        )

    def delete_county_status(self, county_status_id: str) -> None:
        self._guarded_delete(
            EntityKind.COUNTY_STATUS, county_status_id,
            lambda entity_id, session: self.county_statuses.delete(entity_id, session=session),
        )

    def delete_test_type_result(self, result_id: str) -> None:
        self._guarded_delete(
            EntityKind.TEST_TYPE_RESULT, result_id,
            lambda entity_id, session: self.test_type_results.delete(entity_id, session=session),
        )

    def delete_guideline(self, guideline_id: str) -> None:
        # Nothing references guidelines, the checklist has no entry for them
        self._guarded_delete(
            EntityKind.GUIDELINE, guideline_id,
            lambda entity_id, session: self.guidelines.delete(entity_id, session=session),
        )

    # ===== Rules (invalidate cached statuses) =====

    def create_rule(self, rule: Rule) -> Rule:
        """
        Raises:
            ValidationError: Unknown county, test type, result or status
        """
        def steps(session: ClientSession) -> Rule:
            self.validator.validate_rule(rule, session=session)
            created = self.repos.rules.create(rule, session=session)
            self.invalidator.invalidate_all(session, reason=f"rule {created.id} created")
            return created

        created = self.coordinator.run("create_rule", steps)
        self._audit.record("rule", created.id, AuditAction.CREATE, created.to_dict())
        return created

    def save_rule(self, rule: Rule) -> Rule:
        def steps(session: ClientSession) -> Rule:
            self.validator.validate_rule(rule, session=session)
            saved = self.repos.rules.save(rule, session=session)
            self.invalidator.invalidate_all(session, reason=f"rule {saved.id} updated")
            return saved

        saved = self.coordinator.run("save_rule", steps)
        self._audit.record("rule", saved.id, AuditAction.UPDATE, saved.to_dict())
        return saved

    def delete_rule(self, rule_id: str) -> None:
        def steps(session: ClientSession) -> None:
            self.repos.rules.delete(rule_id, session=session)
            self.invalidator.invalidate_all(session, reason=f"rule {rule_id} deleted")

        self.coordinator.run("delete_rule", steps)
        self._audit.record("rule", rule_id, AuditAction.DELETE)

    def create_symptom_rule(self, rule: SymptomRule) -> SymptomRule:
        """
        Raises:
            ValidationError: Unknown county or county status
            DuplicateKeyError: If the county already has a symptom rule
        """
        def steps(session: ClientSession) -> SymptomRule:
            self.validator.validate_symptom_rule(rule, session=session)
            created = self.repos.symptom_rules.create(rule, session=session)
            self.invalidator.invalidate_all(session, reason=f"symptom rule {created.id} created")
            return created

        created = self.coordinator.run("create_symptom_rule", steps)
        self._audit.record("symptom rule", created.id, AuditAction.CREATE, created.to_dict())
        return created

    def save_symptom_rule(self, rule: SymptomRule) -> SymptomRule:
        def steps(session: ClientSession) -> SymptomRule:
            self.validator.validate_symptom_rule(rule, session=session)
            saved = self.repos.symptom_rules.save(rule, session=session)
            self.invalidator.invalidate_all(session, reason=f"symptom rule {saved.id} updated")
            return saved

        saved = self.coordinator.run("save_symptom_rule", steps)
        self._audit.record("symptom rule", saved.id, AuditAction.UPDATE, saved.to_dict())
        return saved

    def delete_symptom_rule(self, rule_id: str) -> None:
        def steps(session: ClientSession) -> None:
            self.repos.symptom_rules.delete(rule_id, session=session)
            self.invalidator.invalidate_all(session, reason=f"symptom rule {rule_id} deleted")

        self.coordinator.run("delete_symptom_rule", steps)
        self._audit.record("symptom rule", rule_id, AuditAction.DELETE)

    # ===== Access rules (evaluated live, no invalidation) =====

    def create_access_rule(self, rule: AccessRule) -> AccessRule:
        """
        Raises:
            ValidationError: Unknown county, county without statuses, or unknown status
            DuplicateKeyError: If the county already has an access rule
        """
        def steps(session: ClientSession) -> AccessRule:
            self.validator.validate_access_rule(rule, session=session)
            return self.repos.access_rules.create(rule, session=session)

        created = self.coordinator.run("create_access_rule", steps)
        self._audit.record("access rule", created.id, AuditAction.CREATE, created.to_dict())
        return created

    def save_access_rule(self, rule: AccessRule) -> AccessRule:
        def steps(session: ClientSession) -> AccessRule:
            self.validator.validate_access_rule(rule, session=session)
            return self.repos.access_rules.save(rule, session=session)

        saved = self.coordinator.run("save_access_rule", steps)
        self._audit.record("access rule", saved.id, AuditAction.UPDATE, saved.to_dict())
        return saved

    def delete_access_rule(self, rule_id: str) -> None:
        self.coordinator.run(
            "delete_access_rule",
            lambda session: self.repos.access_rules.delete(rule_id, session=session),
        )
        self._audit.record("access rule", rule_id, AuditAction.DELETE)

    # ===== Locations =====

    def create_location(self, location: Location) -> Location:
        """
        Raises:
            ValidationError: Unknown provider, county or available test type
        """
        def steps(session: ClientSession) -> Location:
            self.validator.validate_location(location, session=session)
            return self.repos.locations.create(location, session=session)

        return self.coordinator.run("create_location", steps)

    def save_location(self, location: Location) -> Location:
        def steps(session: ClientSession) -> Location:
            self.validator.validate_location(location, session=session)
            return self.repos.locations.save(location, session=session)

        return self.coordinator.run("save_location", steps)

    # ===== Lab tests =====

    def create_external_ctest(
        self,
        provider_id: str,
        uin: str,
        encrypted_key: str,
        encrypted_blob: str,
        processed: bool = False,
        order_number: Optional[str] = None,
    ) -> CTest:
        """
        Store a result pushed by a lab for the user with this UIN, and clear
        the user's re_post flag.

        Raises:
            NotFoundError: Unknown provider, or no user with this external id
        """
        def steps(session: ClientSession) -> CTest:
            self.repos.providers.find(provider_id, session=session)
            user = self.repos.users.find_by_external_id(uin, session=session)
            ctest = self.repos.ctests.create(
                CTest(
                    provider_id=provider_id,
                    user_id=user.id,
                    encrypted_key=encrypted_key,
                    encrypted_blob=encrypted_blob,
                    order_number=order_number,
                    processed=processed,
                ),
                session=session,
            )
            user.re_post = False
            self.repos.users.save(user, session=session)
            return ctest

        return self.coordinator.run("create_external_ctest", steps)

    def create_admin_ctest(
        self,
        provider_id: str,
        user_id: str,
        encrypted_key: str,
        encrypted_blob: str,
        processed: bool = False,
        order_number: Optional[str] = None,
    ) -> CTest:
        """
        Raises:
            NotFoundError: Unknown provider or user
        """
        def steps(session: ClientSession) -> CTest:
            self.repos.providers.find(provider_id, session=session)
            self.repos.users.find(user_id, session=session)
            return self.repos.ctests.create(
                CTest(
                    provider_id=provider_id,
                    user_id=user_id,
                    encrypted_key=encrypted_key,
                    encrypted_blob=encrypted_blob,
                    order_number=order_number,
                    processed=processed,
                ),
                session=session,
            )

        return self.coordinator.run("create_admin_ctest", steps)

    # ===== Manual tests =====

    def submit_manual_test(
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
        return self.verifier.submit(
            user_id, date, encrypted_key, encrypted_blob,
            encrypted_image_key, encrypted_image_blob,
            county_id=county_id, location_id=location_id,
        )

    def process_manual_test(
        self,
        manual_test_id: str,
        status: str,
        encrypted_key: Optional[str] = None,
        encrypted_blob: Optional[str] = None,
    ) -> None:
        self.verifier.process(manual_test_id, status, encrypted_key, encrypted_blob)
        self._audit.record("manual test", manual_test_id, AuditAction.UPDATE, {"status": status})

    # ===== Users =====

    def clear_user_data(self, user_id: str) -> None:
        """
        Erase a user and everything stored for them.

        Raises:
            NotFoundError: If the user does not exist
        """
        def steps(session: ClientSession) -> List[int]:
            user = self.repos.users.find(user_id, session=session)
            counts = []
            if user.external_id:
                counts.append(self.repos.uin_overrides.delete_by_uin(user.external_id, session=session))
            counts.append(self.repos.ctests.delete_by_user(user_id, session=session))
            counts.append(self.repos.histories.delete_by_user(user_id, session=session))
            counts.append(self.repos.statuses.delete_by_user(user_id, session=session))
            counts.append(self.repos.manual_tests.delete_by_user(user_id, session=session))
            self.repos.users.delete(user_id, session=session)
            return counts

        counts = self.coordinator.run("clear_user_data", steps)
        logger.info(f"Cleared data of user {user_id} ({sum(counts)} documents)")
        self._audit.record("user", user_id, AuditAction.DELETE)

    # ===== FAQ =====

    def delete_faq_section(self, section_id: str) -> None:
        """
        Raises:
            NotFoundError: No FAQ, or no section with this id
            DependencyExistsError: If the section still has questions
        """
        def steps(session: ClientSession) -> None:
            faq = self.repos.faq.read(session=session)
            section = next((s for s in faq.sections if s.id == section_id), None)
            if section is None:
                raise NotFoundError("faq section", section_id)
            if section.questions:
                raise DependencyExistsError("faq section", section_id, Collections.FAQ, "sections.questions")
            faq.sections = [s for s in faq.sections if s.id != section_id]
            self.repos.faq.save(faq, session=session)

        self.coordinator.run("delete_faq_section", steps)
        self._audit.record("faq section", section_id, AuditAction.DELETE)
