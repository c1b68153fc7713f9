"""
Database error classifier.

Maps driver-level exceptions onto the three kinds the engine reasons about.
Driver specifics (SQLSTATE codes, SQLite messages) never leave this module.
"""

from enum import Enum
from typing import Optional

from sqlalchemy.exc import DBAPIError, NoResultFound
from sqlalchemy.orm.exc import StaleDataError


class DatabaseErrorKind(str, Enum):
    UNIQUE_VIOLATION = "unique_violation"
    RECORD_NOT_FOUND = "record_not_found"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"


_SQLSTATE_KINDS = {
    "23505": DatabaseErrorKind.UNIQUE_VIOLATION,
    "23503": DatabaseErrorKind.FOREIGN_KEY_VIOLATION,
}

_SQLITE_MESSAGE_KINDS = (
    ("UNIQUE constraint failed", DatabaseErrorKind.UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", DatabaseErrorKind.FOREIGN_KEY_VIOLATION),
)


def _sqlstate(error: BaseException) -> Optional[str]:
    # asyncpg exposes ``sqlstate``, psycopg2 ``pgcode``; the adapted asyncpg
    # error keeps the original exception as its cause.
    for candidate in (error, error.__cause__):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def classify_db_error(exc: BaseException) -> Optional[DatabaseErrorKind]:
    """
    Classify a storage exception.

    Returns:
        The matching DatabaseErrorKind, or None when the error is not one of
        the three known kinds and must propagate unchanged.
    """
    if isinstance(exc, (NoResultFound, StaleDataError)):
        return DatabaseErrorKind.RECORD_NOT_FOUND

    if not isinstance(exc, DBAPIError) or exc.orig is None:
        return None

    code = _sqlstate(exc.orig)
    if code is not None:
        return _SQLSTATE_KINDS.get(code)

    message = str(exc.orig)
    for fragment, kind in _SQLITE_MESSAGE_KINDS:
        if fragment in message:
            return kind
    return None


def is_unique_violation(exc: BaseException) -> bool:
    return classify_db_error(exc) is DatabaseErrorKind.UNIQUE_VIOLATION


def is_foreign_key_violation(exc: BaseException) -> bool:
    return classify_db_error(exc) is DatabaseErrorKind.FOREIGN_KEY_VIOLATION


def is_record_not_found(exc: BaseException) -> bool:
    return classify_db_error(exc) is DatabaseErrorKind.RECORD_NOT_FOUND
