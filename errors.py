"""Domain errors raised by the services layer.

The HTTP layer maps each class to a status code; nothing in the services
layer logs and continues after one of these is raised.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session


class LedgerError(Exception):
    pass


class InvalidArgument(LedgerError, ValueError):
    """Caller-supplied data violates a precondition."""


class NotFound(LedgerError, LookupError):
    pass


class ConstraintViolation(LedgerError):
    """A referential or uniqueness rule would be broken."""


class DuplicateKey(ConstraintViolation):
    pass


class InvalidOperation(LedgerError):
    """The action is structurally disallowed, e.g. editing a transfer leg."""


class StorageError(LedgerError):
    pass


# SQLite-only: matches its "FOREIGN KEY/UNIQUE constraint failed" messages.
def _is_foreign_key_failure(exc: IntegrityError) -> bool:
    return "FOREIGN KEY" in str(exc.orig).upper()


def _is_unique_failure(exc: IntegrityError) -> bool:
    return "UNIQUE" in str(exc.orig).upper()


@contextmanager
def translate_storage_errors(
    session: Session,
    *,
    foreign_key_message: str = "Record is still referenced by other records",
    unique_message: str = "Record already exists",
) -> Iterator[None]:
    """Roll back and re-raise storage failures as domain errors."""
    try:
        yield
    except IntegrityError as exc:
        session.rollback()
        if _is_foreign_key_failure(exc):
            raise ConstraintViolation(foreign_key_message) from exc
        if _is_unique_failure(exc):
            raise DuplicateKey(unique_message) from exc
        raise ConstraintViolation(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(str(exc)) from exc
