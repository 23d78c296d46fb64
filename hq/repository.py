"""Repository helpers over the async SQLAlchemy session.

Every engine operation loads what it needs, computes in memory, and writes
back through one session. Versioned rows (``Player``, ``TeamControl``,
``DraftSession``) and unique constraints turn racing writers into a
``ConflictError`` instead of a silent last-writer-wins.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from hq.services.errors import ConflictError, NotFoundError

logger = logging.getLogger("hq.repository")

T = TypeVar("T")


async def get_or_raise(session: AsyncSession, model: Type[T], key: Any, code: str) -> T:
    """Load a row by primary key or raise NotFoundError(code)."""
    if key is None:
        raise NotFoundError(code)
    row = await session.get(model, key)
    if row is None:
        raise NotFoundError(code)
    return row


async def list_all(session: AsyncSession, model: Type[T], *where: Any, order_by: Optional[Any] = None) -> list[T]:
    """Read-all for a collection, optionally filtered."""
    query = select(model)
    if where:
        query = query.where(*where)
    if order_by is not None:
        query = query.order_by(order_by)
    result = await session.execute(query)
    return list(result.scalars().all())


async def find_one(session: AsyncSession, model: Type[T], *where: Any) -> Optional[T]:
    result = await session.execute(select(model).where(*where))
    return result.scalars().first()


async def flush(session: AsyncSession) -> None:
    """Flush pending writes, mapping concurrent-write failures to ConflictError."""
    try:
        await session.flush()
    except (StaleDataError, IntegrityError) as e:
        logger.warning("Concurrent update rejected: %s", e)
        raise ConflictError("concurrent_update", "Record changed while saving; reload and retry") from e


async def commit(session: AsyncSession) -> None:
    """Commit the unit of work. On a version or uniqueness clash nothing is applied."""
    try:
        await session.commit()
    except (StaleDataError, IntegrityError) as e:
        await session.rollback()
        logger.warning("Concurrent update rejected: %s", e)
        raise ConflictError("concurrent_update", "Record changed while saving; reload and retry") from e


def unique_ids(values: Sequence[Any]) -> list[int]:
    """Deduplicate ids preserving first-seen order; drops blanks and non-integers."""
    seen: list[int] = []
    for v in values:
        if v is None or isinstance(v, bool):
            continue
        if isinstance(v, str):
            v = v.strip()
            if not v:
                continue
        try:
            i = int(v)
        except (TypeError, ValueError):
            continue
        if i not in seen:
            seen.append(i)
    return seen
