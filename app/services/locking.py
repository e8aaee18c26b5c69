from collections.abc import Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import Select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import ConcurrentUpdate

PG_LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"
LOCK_CONFLICT_DETAIL = "Record is being updated by another request. Retry the request."

T = TypeVar("T")


def _is_postgresql_session(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def _is_pg_lock_not_available(exc: OperationalError) -> bool:
    original_error = getattr(exc, "orig", None)
    if original_error is None:
        return False

    sqlstate = getattr(original_error, "sqlstate", None)
    if sqlstate is None:
        sqlstate = getattr(original_error, "pgcode", None)

    return sqlstate == PG_LOCK_NOT_AVAILABLE_SQLSTATE


def for_update(db: Session, statement: Select[tuple[T]]) -> Select[tuple[T]]:
    statement = statement.execution_options(populate_existing=True)
    if _is_postgresql_session(db):
        statement = statement.with_for_update(nowait=settings.booking_lock_nowait)
    return statement


@contextmanager
def atomic(db: Session) -> Iterator[None]:
    try:
        yield
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConcurrentUpdate(LOCK_CONFLICT_DETAIL) from None
    except OperationalError as exc:
        db.rollback()
        if _is_pg_lock_not_available(exc):
            raise ConcurrentUpdate(LOCK_CONFLICT_DETAIL) from None
        raise
    except Exception:
        db.rollback()
        raise
