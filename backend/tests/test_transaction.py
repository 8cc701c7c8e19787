"""
Tests for the TransactionCoordinator unit-of-work wrapper and OperationResult.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from shared.infrastructure.transaction import TransactionCoordinator, is_transient
from shared.utils.exceptions import (
    CATEGORY_STATUS_CODES,
    ErrorCategory,
    ErrorKind,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.result import OperationResult


def operational_error():
    return OperationalError("UPDATE tables", {}, Exception("database is locked"))


class TestCoordinator:
    """One commit per unit; failures roll everything back."""

    def test_success_commits_once(self):
        db = MagicMock()

        result = TransactionCoordinator(db).run("op", lambda: 42)

        assert result.ok
        assert result.value == 42
        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_domain_error_rolls_back_into_failure(self):
        db = MagicMock()

        def work():
            raise ValidationError("guest_count is required", field="guest_count")

        result = TransactionCoordinator(db).run("op", work)

        assert not result.ok
        assert result.kind is ErrorKind.VALIDATION_ERROR
        assert result.error.context == {"field": "guest_count"}
        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_transient_error_is_retried(self):
        db = MagicMock()
        calls = []

        def work():
            calls.append(1)
            if len(calls) == 1:
                raise operational_error()
            return "done"

        result = TransactionCoordinator(db, retry_attempts=1).run("op", work)

        assert result.ok
        assert result.value == "done"
        assert len(calls) == 2

    def test_transient_error_reported_after_retry(self):
        db = MagicMock()
        work = MagicMock(side_effect=operational_error())

        result = TransactionCoordinator(db, retry_attempts=1).run("settle", work)

        assert result.kind is ErrorKind.TRANSIENT
        assert result.error.context["operation"] == "settle"
        assert work.call_count == 2
        assert db.rollback.call_count == 2

    def test_commit_failure_is_retried(self):
        db = MagicMock()
        db.commit.side_effect = [operational_error(), None]

        result = TransactionCoordinator(db, retry_attempts=1).run("op", lambda: "ok")

        assert result.ok
        assert db.commit.call_count == 2

    def test_no_retry_when_disabled(self):
        work = MagicMock(side_effect=operational_error())

        result = TransactionCoordinator(MagicMock(), retry_attempts=0).run("op", work)

        assert result.kind is ErrorKind.TRANSIENT
        work.assert_called_once()

    def test_programming_errors_propagate(self):
        db = MagicMock()

        def work():
            raise KeyError("boom")

        with pytest.raises(KeyError):
            TransactionCoordinator(db).run("op", work)
        db.rollback.assert_called_once()

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (operational_error(), True),
            (StaleDataError("version mismatch"), True),
            (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), True),
            (ValueError("nope"), False),
        ],
    )
    def test_is_transient(self, exc, expected):
        assert is_transient(exc) is expected


class TestOperationResult:

    def test_unwrap_raises_carried_error(self):
        result = OperationResult.failure(OrderNotFoundError(7))

        with pytest.raises(OrderNotFoundError):
            result.unwrap()
        assert result.kind is ErrorKind.ORDER_NOT_FOUND

    def test_success_has_no_kind(self):
        assert OperationResult.success("x").kind is None

    def test_error_serialises_kind_and_context(self):
        error = OrderNotFoundError(7)

        body = error.to_dict()

        assert body["kind"] == "ORDER_NOT_FOUND"
        assert body["category"] == "not_found"
        assert error.category is ErrorCategory.NOT_FOUND
        assert CATEGORY_STATUS_CODES[error.category] == 404
