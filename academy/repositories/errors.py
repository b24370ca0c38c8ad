"""Typed errors raised by the repository layer.

Driver failures are classified by SQLAlchemy exception type so routers never
inspect error messages:

* ``IntegrityError`` (unique / foreign key violation) -> ``ConflictError``
* ``OperationalError``, ``ProgrammingError``, ``InterfaceError`` (store
  unreachable, schema not migrated) -> ``StoreUnavailableError``
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    ProgrammingError,
)
from sqlalchemy.ext.asyncio import AsyncSession


class RepositoryError(Exception):
    """Base class for persistence failures surfaced to routers."""


class RecordNotFoundError(RepositoryError):
    """Raised when a record could not be located."""


class ConflictError(RepositoryError):
    """Raised when the store rejects a write as violating a constraint."""


class StoreUnavailableError(RepositoryError):
    """Raised when the store is unreachable or its schema is missing."""


@asynccontextmanager
async def translate_store_errors(
    session: AsyncSession, conflict_message: str = "Record already exists"
) -> AsyncIterator[None]:
    """Roll back and re-raise driver errors as repository errors."""
    try:
        yield
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError(conflict_message) from exc
    except (OperationalError, ProgrammingError, InterfaceError) as exc:
        await session.rollback()
        raise StoreUnavailableError(str(exc.orig) if exc.orig else str(exc)) from exc
