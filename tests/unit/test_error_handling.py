"""
Tests for the storage error taxonomy and driver error translation.
"""

import logging
import pytest
from pymongo import errors as mongo_errors

from src.common.error_handling import (
    DependencyExistsError,
    DuplicateKeyError,
    NotFoundError,
    StorageError,
    StoreTimeoutError,
    StoreUnavailableError,
    TransactionAbortedError,
    best_effort,
    log_on_exception,
    translate_error,
    translate_store_errors,
)


class TestErrorTypes:
    """Tests for the error classes themselves."""

    def test_not_found_carries_kind_and_key(self):
        error = NotFoundError("county", "c1")

        assert error.kind == "county"
        assert error.key == "c1"
        assert str(error) == "county not found: c1"
        assert isinstance(error, StorageError)

    def test_not_found_custom_message(self):
        error = NotFoundError("faq", "faq", "no faq data")

        assert str(error) == "no faq data"

    def test_dependency_exists_names_blocker(self):
        error = DependencyExistsError("county", "c1", "locations", "county_id")

        assert error.collection == "locations"
        assert error.field == "county_id"
        assert "locations.county_id" in str(error)

    def test_transaction_aborted_keeps_cause(self):
        cause = mongo_errors.OperationFailure("WriteConflict")
        error = TransactionAbortedError("create_rule", cause)

        assert error.operation == "create_rule"
        assert error.cause is cause


class TestTranslateError:
    """Tests for translate_error()."""

    def test_duplicate_key(self):
        exc = mongo_errors.DuplicateKeyError("E11000 duplicate key", 11000)

        assert isinstance(translate_error("users.insert_one", exc), DuplicateKeyError)

    def test_bulk_write_duplicate(self):
        exc = mongo_errors.BulkWriteError({"writeErrors": [{"code": 11000, "errmsg": "dup"}]})

        assert isinstance(translate_error("appversions.insert_many", exc), DuplicateKeyError)

    def test_bulk_write_other_error(self):
        exc = mongo_errors.BulkWriteError({"writeErrors": [{"code": 121, "errmsg": "validation"}]})

        assert type(translate_error("appversions.insert_many", exc)) is StorageError

    def test_server_selection_is_unavailable(self):
        exc = mongo_errors.ServerSelectionTimeoutError("no servers")

        assert isinstance(translate_error("users.find_one", exc), StoreUnavailableError)

    @pytest.mark.parametrize("exc", [
        mongo_errors.ExecutionTimeout("operation exceeded time limit", 50),
        mongo_errors.NetworkTimeout("timed out"),
        mongo_errors.WTimeoutError("waiting for replication timed out", 64),
    ])
    def test_timeouts(self, exc):
        assert isinstance(translate_error("estatus.delete_many", exc), StoreTimeoutError)

    def test_connection_failure(self):
        exc = mongo_errors.ConnectionFailure("connection refused")

        assert isinstance(translate_error("users.find_one", exc), StoreUnavailableError)

    def test_other_errors_are_storage_errors(self):
        exc = mongo_errors.OperationFailure("bad query", 2)
        translated = translate_error("users.find", exc)

        assert type(translated) is StorageError
        assert "[users.find]" in str(translated)


class TestTranslateStoreErrors:
    """Tests for the translate_store_errors context manager."""

    def test_chains_driver_error(self):
        original = mongo_errors.DuplicateKeyError("E11000", 11000)

        with pytest.raises(DuplicateKeyError) as excinfo:
            with translate_store_errors("users.insert_one"):
                raise original

        assert excinfo.value.__cause__ is original

    def test_non_driver_errors_pass_through(self):
        with pytest.raises(KeyError):
            with translate_store_errors("users.find_one"):
                raise KeyError("x")


class TestBestEffort:
    """Tests for the best_effort decorator."""

    def test_returns_result(self):
        @best_effort("compute")
        def compute():
            return 42

        assert compute() == 42

    def test_swallows_and_logs(self, caplog):
        @best_effort("record audit entry", fallback_value="fallback")
        def fail():
            raise RuntimeError("audit store down")

        with caplog.at_level(logging.WARNING):
            assert fail() == "fallback"

        assert "[record audit entry] ✗ Failed: audit store down" in caplog.text


class TestLogOnException:
    """Tests for log_on_exception."""

    def test_logs_and_reraises(self, caplog):
        logger = logging.getLogger("tests.log_on_exception")

        with caplog.at_level(logging.ERROR, logger="tests.log_on_exception"):
            with pytest.raises(ValueError):
                with log_on_exception(logger, "abort", level=logging.ERROR):
                    raise ValueError("boom")

        assert "[abort] Failed: boom" in caplog.text
