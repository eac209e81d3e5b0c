"""
Status Invalidation Protocol

EStatus documents are cached results computed from a user's history and
the current rule set. When a Rule or SymptomRule changes, every cached
status may be stale, so all of them are purged inside the transaction of
that change; clients recompute on their next read when no status exists.

AccessRule changes never invalidate: access rules are evaluated live.
"""

import logging
from typing import Optional

from pymongo.client_session import ClientSession

from .repositories import EStatusRepository

logger = logging.getLogger(__name__)


class StatusInvalidator:
    def __init__(self, statuses: EStatusRepository):
        self._statuses = statuses

    def invalidate_all(self, session: ClientSession, reason: str) -> int:
        """
        Purge every cached status. Must run in the caller's transaction.

        Returns:
            Number of statuses purged
        """
        purged = self._statuses.delete_all(session=session)
        logger.info(f"Invalidated {purged} cached statuses ({reason})")
        return purged

    def invalidate_user(self, user_id: str, session: Optional[ClientSession] = None) -> int:
        """Purge the cached statuses of one user, for every app version."""
        purged = self._statuses.delete_by_user(user_id, session=session)
        logger.debug(f"Invalidated {purged} cached statuses for user {user_id}")
        return purged
