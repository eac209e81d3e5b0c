"""
Audit collaborator.

The adapter reports policy mutations here after they commit. Recording is
fire-and-forget: a failing audit writer is logged and never fails the
mutation it describes.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from src.common.error_handling import best_effort

logger = logging.getLogger(__name__)


class AuditAction:
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditLogger(ABC):
    @abstractmethod
    def record(
        self,
        entity: str,
        entity_id: str,
        action: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record that `action` was applied to an entity."""


class LoggingAuditLogger(AuditLogger):
    """Writes audit entries to the `audit` logger."""

    def __init__(self, name: str = "audit"):
        self._logger = logging.getLogger(name)

    def record(
        self,
        entity: str,
        entity_id: str,
        action: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._logger.info(f"{action} {entity} {entity_id} {data or {}}")


class BestEffortAudit:
    """Wraps an AuditLogger so its failures never reach the caller."""

    def __init__(self, audit: AuditLogger):
        self._audit = audit

    @best_effort("record audit entry")
    def record(
        self,
        entity: str,
        entity_id: str,
        action: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._audit.record(entity, entity_id, action, data)
