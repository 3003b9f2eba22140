"""Translation of SQLAlchemy and DBAPI failures into typed storage failures."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from enum import Enum
import re

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import exc as orm_exc


class StorageErrorCode(str, Enum):
    """Vendor-neutral classification of a storage failure."""

    UNIQUE_VIOLATION = "unique-violation"
    NOT_FOUND = "not-found"
    FOREIGN_KEY_VIOLATION = "foreign-key-violation"
    INVALID_RELATION = "invalid-relation"
    NOT_NULL_VIOLATION = "not-null-violation"
    CHECK_VIOLATION = "check-violation"
    INTEGRITY_VIOLATION = "integrity-violation"
    INVALID_DATA = "invalid-data"
    CONNECTION_FAILED = "connection-failed"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class StorageFailure:
    """A storage-layer error reduced to its vendor code and offending fields."""

    code: StorageErrorCode
    message: str = ""
    target: tuple[str, ...] = field(default_factory=tuple)


_SQLSTATE_CODES = {
    "23505": StorageErrorCode.UNIQUE_VIOLATION,
    "23503": StorageErrorCode.FOREIGN_KEY_VIOLATION,
    "23502": StorageErrorCode.NOT_NULL_VIOLATION,
    "23514": StorageErrorCode.CHECK_VIOLATION,
}

_SQLITE_PREFIXES = (
    ("UNIQUE constraint failed", StorageErrorCode.UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", StorageErrorCode.FOREIGN_KEY_VIOLATION),
    ("NOT NULL constraint failed", StorageErrorCode.NOT_NULL_VIOLATION),
    ("CHECK constraint failed", StorageErrorCode.CHECK_VIOLATION),
)

_POSTGRES_KEY_DETAIL = re.compile(r"Key \((?P<columns>[^)]*)\)=")
_SQLITE_TARGET = re.compile(r"constraint failed: (?P<columns>.+)$")


def _sqlstate(orig: object) -> str | None:
    # psycopg 3 exposes ``sqlstate``; psycopg2 exposes ``pgcode``.
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _vendor_message(orig: object) -> str:
    diag = getattr(orig, "diag", None)
    primary = getattr(diag, "message_primary", None) if diag is not None else None
    if primary:
        return str(primary)
    return str(orig).strip() if orig is not None else ""


def _split_columns(raw: str) -> tuple[str, ...]:
    columns = []
    for part in raw.split(","):
        name = part.strip()
        if not name:
            continue
        # SQLite reports ``table.column``.
        columns.append(name.rsplit(".", 1)[-1])
    return tuple(columns)


def _unique_target(orig: object) -> tuple[str, ...]:
    diag = getattr(orig, "diag", None)
    if diag is not None:
        column_name = getattr(diag, "column_name", None)
        if column_name:
            return (str(column_name),)
        detail = getattr(diag, "message_detail", None) or ""
        match = _POSTGRES_KEY_DETAIL.search(detail)
        if match:
            return _split_columns(match.group("columns"))

    text = str(orig) if orig is not None else ""
    match = _POSTGRES_KEY_DETAIL.search(text)
    if match:
        return _split_columns(match.group("columns"))
    match = _SQLITE_TARGET.search(text.splitlines()[0] if text else "")
    if match:
        return _split_columns(match.group("columns"))
    return ()


def _integrity_code(orig: object) -> StorageErrorCode:
    sqlstate = _sqlstate(orig)
    if sqlstate in _SQLSTATE_CODES:
        return _SQLSTATE_CODES[sqlstate]

    text = str(orig) if orig is not None else ""
    for prefix, code in _SQLITE_PREFIXES:
        if text.startswith(prefix):
            return code
    return StorageErrorCode.INTEGRITY_VIOLATION


def translate_storage_error(exc: sa_exc.SQLAlchemyError) -> StorageFailure:
    """Reduce a SQLAlchemy exception to a ``StorageFailure``."""

    if isinstance(exc, sa_exc.IntegrityError):
        code = _integrity_code(exc.orig)
        target = _unique_target(exc.orig) if code is StorageErrorCode.UNIQUE_VIOLATION else ()
        return StorageFailure(code=code, message=_vendor_message(exc.orig), target=target)

    if isinstance(exc, sa_exc.NoResultFound):
        return StorageFailure(code=StorageErrorCode.NOT_FOUND, message=str(exc))

    if isinstance(
        exc,
        (
            orm_exc.DetachedInstanceError,
            sa_exc.NoForeignKeysError,
            sa_exc.AmbiguousForeignKeysError,
        ),
    ):
        return StorageFailure(code=StorageErrorCode.INVALID_RELATION, message=str(exc))

    if isinstance(exc, sa_exc.DataError):
        return StorageFailure(code=StorageErrorCode.INVALID_DATA, message=_vendor_message(exc.orig))

    if isinstance(
        exc,
        (
            sa_exc.OperationalError,
            sa_exc.InterfaceError,
            sa_exc.DisconnectionError,
            sa_exc.TimeoutError,
        ),
    ):
        return StorageFailure(code=StorageErrorCode.CONNECTION_FAILED, message=str(exc))

    # A statement that never reached the driver, e.g. an unbindable parameter.
    if isinstance(exc, sa_exc.StatementError) and not isinstance(exc, sa_exc.DBAPIError):
        return StorageFailure(code=StorageErrorCode.INVALID_DATA, message=str(exc))

    return StorageFailure(code=StorageErrorCode.UNRECOGNIZED, message=str(exc))
