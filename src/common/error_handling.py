"""
Centralized error handling for the health storage engine.

Defines the storage error taxonomy, the translation of pymongo driver
exceptions onto it, and helpers for logging failures of best-effort
collaborators (audit, change listeners) without letting them propagate.
"""

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, Optional, TypeVar

from pymongo import errors as mongo_errors

# Type variable for generic return types
T = TypeVar("T")

# Server error code for unique index violations
DUPLICATE_KEY_CODE = 11000


class StorageError(Exception):
    """Base class for every error raised by the storage engine."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StorageError):
    """An entity or embedded sub-entity does not exist."""

    def __init__(self, kind: str, key: Any, message: Optional[str] = None):
        super().__init__(message or f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class DuplicateKeyError(StorageError):
    """A unique index rejected the write."""


class ValidationError(StorageError):
    """Malformed input, or a reference to an entity that does not exist."""


class DependencyExistsError(StorageError):
    """
    Delete blocked because another collection still references the entity.

    Attributes:
        kind: Referenced entity kind (e.g. "county")
        entity_id: Id of the entity the caller tried to delete
        collection: Collection holding the first dependent found
        field: Field path in that collection that holds the reference
    """

    def __init__(self, kind: str, entity_id: str, collection: str, field: str):
        super().__init__(
            f"cannot delete {kind} {entity_id}: referenced by {collection}.{field}"
        )
        self.kind = kind
        self.entity_id = entity_id
        self.collection = collection
        self.field = field


class ConcurrentModificationError(StorageError):
    """Reserved for optimistic locking. Saves are last-write-wins today."""


class StoreUnavailableError(StorageError):
    """The document store could not be reached."""


class StoreTimeoutError(StorageError):
    """A store operation exceeded its deadline."""


class TransactionAbortedError(StorageError):
    """A multi-step operation could not be committed. The cause is chained."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"transaction '{operation}' aborted: {cause}")
        self.operation = operation
        self.cause = cause


def _is_duplicate_key(exc: mongo_errors.PyMongoError) -> bool:
    if isinstance(exc, mongo_errors.DuplicateKeyError):
        return True
    if isinstance(exc, mongo_errors.BulkWriteError):
        write_errors = exc.details.get("writeErrors", []) if exc.details else []
        return any(err.get("code") == DUPLICATE_KEY_CODE for err in write_errors)
    return False


def translate_error(operation: str, exc: mongo_errors.PyMongoError) -> StorageError:
    """
    Map a pymongo exception onto the storage error taxonomy.

    Args:
        operation: Operation description (e.g. "users.insert_one")
        exc: The driver exception

    Returns:
        StorageError subclass instance (caller raises it from exc)
    """
    if _is_duplicate_key(exc):
        return DuplicateKeyError(f"[{operation}] duplicate key: {exc}")
    if isinstance(exc, mongo_errors.ServerSelectionTimeoutError):
        return StoreUnavailableError(f"[{operation}] store unavailable: {exc}")
    if isinstance(
        exc,
        (mongo_errors.ExecutionTimeout, mongo_errors.NetworkTimeout, mongo_errors.WTimeoutError),
    ) or getattr(exc, "timeout", False):
        return StoreTimeoutError(f"[{operation}] timed out: {exc}")
    if isinstance(exc, mongo_errors.ConnectionFailure):
        return StoreUnavailableError(f"[{operation}] connection failure: {exc}")
    return StorageError(f"[{operation}] store error: {exc}")


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """
    Context manager that re-raises pymongo exceptions as StorageError subclasses.

    Usage:
        with translate_store_errors("users.find_one"):
            collection.find_one({"_id": user_id})

    The driver exception is kept as __cause__.
    """
    try:
        yield
    except mongo_errors.PyMongoError as e:
        raise translate_error(operation, e) from e


def log_on_exception(
    logger: logging.Logger,
    operation: str,
    level: int = logging.WARNING,
    include_traceback: bool = False,
):
    """
    Context manager for logging exceptions without swallowing them silently.

    Usage:
        with log_on_exception(logger, "abort transaction", level=logging.ERROR):
            session.abort_transaction()

    Args:
        logger: Logger instance to use
        operation: Operation description for the log message
        level: Log level (default: WARNING)
        include_traceback: Whether to include stack trace in log
    """

    class ExceptionLogger:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None:
                logger.log(level, f"[{operation}] Failed: {exc_val}", exc_info=include_traceback)
            # Return False to not suppress the exception
            return False

    return ExceptionLogger()


def best_effort(
    operation_name: str,
    fallback_value: Any = None,
    log_success: bool = False,
):
    """
    Decorator for calls into collaborators whose failure must not reach the caller.

    Logs failures at WARNING and returns fallback_value instead of raising.

    Args:
        operation_name: Human-readable operation name (e.g. "audit record")
        fallback_value: Value to return on failure (default: None)
        log_success: If True, logs successful completion at DEBUG level

    Usage:
        @best_effort("notify configs listener")
        def _notify(self):
            self._listener.on_configs_changed()
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            logger = logging.getLogger(func.__module__)
            try:
                result = func(*args, **kwargs)
                if log_success:
                    logger.debug(f"[{operation_name}] ✓ Completed")
                return result
            except Exception as e:
                logger.warning(f"[{operation_name}] ✗ Failed: {e}")
                return fallback_value

        return wrapper

    return decorator
