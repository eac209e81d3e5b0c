"""
Transaction Coordinator

Runs a sequence of repository and validator calls as one atomic unit on a
pymongo ClientSession:

    begin -> run steps -> commit
                 |
                 +-- any error -> abort -> re-raise the original error

Abort failures are logged and never replace the error that caused them.
A failed commit is raised as TransactionAbortedError with the driver error
chained. Nothing is retried.

Usage:
    coordinator = TransactionCoordinator(database)

    county = coordinator.run("delete_county", lambda session: ...)

    with coordinator.transaction("delete_county") as session:
        validator.ensure_deletable(EntityKind.COUNTY, county_id, session=session)
        repos.counties.delete(county_id, session=session)
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from pymongo import errors as mongo_errors
from pymongo.client_session import ClientSession

from src.common.error_handling import TransactionAbortedError, log_on_exception, translate_store_errors
from src.common.logger import get_logger

from .database import DatabaseClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionCoordinator:
    """Wraps closures in multi-document transactions."""

    def __init__(self, database: DatabaseClient):
        self._database = database

    def run(self, operation: str, fn: Callable[[ClientSession], T]) -> T:
        """
        Run fn(session) inside a transaction.

        Args:
            operation: Operation name, used in logs and errors
            fn: Steps to run; every store call must pass the session it receives

        Returns:
            Whatever fn returns, once the transaction is committed

        Raises:
            The exception raised by fn, unchanged, after the abort
            TransactionAbortedError: If the commit fails
        """
        with self.transaction(operation) as session:
            return fn(session)

    @contextmanager
    def transaction(self, operation: str) -> Iterator[ClientSession]:
        """Context-manager form of run(); commits when the block exits cleanly."""
        op_logger = get_logger(__name__, operation=operation)
        with self._database.start_session() as session:
            with translate_store_errors(f"{operation}.start_transaction"):
                session.start_transaction()
            op_logger.debug("Transaction started")

            try:
                yield session
            except Exception as e:
                op_logger.info(f"Aborting transaction: {type(e).__name__}: {e}")
                self._abort(session, operation)
                raise

            self._commit(session, operation)
            op_logger.debug("Transaction committed")

    @staticmethod
    def _abort(session: ClientSession, operation: str) -> None:
        try:
            with log_on_exception(logger, f"{operation} abort", level=logging.ERROR, include_traceback=True):
                session.abort_transaction()
        except mongo_errors.PyMongoError:
            # Logged above; the caller gets the error that triggered the abort
            pass

    @staticmethod
    def _commit(session: ClientSession, operation: str) -> None:
        try:
            session.commit_transaction()
        except mongo_errors.PyMongoError as e:
            logger.error(f"[{operation}] Commit failed: {e}")
            raise TransactionAbortedError(operation, e) from e
