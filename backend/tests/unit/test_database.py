"""Transient storage error detection."""

from sqlalchemy.exc import IntegrityError, OperationalError

from spa_engine.core.exceptions import RepositoryException
from spa_engine.database import is_transient_db_error


class _PgError(Exception):
    def __init__(self, message: str, pgcode: str):
        super().__init__(message)
        self.pgcode = pgcode


def test_sqlite_lock_contention_is_transient() -> None:
    exc = OperationalError("UPDATE vouchers", {}, Exception("database is locked"))

    assert is_transient_db_error(exc)


def test_postgres_serialization_failure_is_transient() -> None:
    exc = OperationalError("UPDATE vouchers", {}, _PgError("conflict", "40001"))

    assert is_transient_db_error(exc)


def test_deadlock_is_transient() -> None:
    exc = OperationalError("UPDATE vouchers", {}, _PgError("deadlock detected", "40P01"))

    assert is_transient_db_error(exc)


def test_wrapped_repository_error_is_unwrapped() -> None:
    cause = OperationalError("SELECT", {}, Exception("database is locked"))
    try:
        raise RepositoryException("Failed locking GiftVoucher") from cause
    except RepositoryException as wrapped:
        assert is_transient_db_error(wrapped)


def test_constraint_violations_are_not_transient() -> None:
    exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: gift_vouchers.code"))

    assert not is_transient_db_error(exc)


def test_plain_exceptions_are_not_transient() -> None:
    assert not is_transient_db_error(ValueError("database is locked"))
