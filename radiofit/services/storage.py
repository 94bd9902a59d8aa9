"""Date-keyed record storage on top of the async SQLite database."""

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from radiofit.models.database import ExerciseDay

logger = logging.getLogger(__name__)

StoredRecords = list[dict[str, Any]]
Visitor = Callable[[StoredRecords, str], Optional[Awaitable[None]]]


class RecordStorage:
    """Async key-value map from ``YYYY-MM-DD`` to the list of stored records.

    Values are always replaced whole; there are no field-level writes.
    ``lock(key)`` serializes read-modify-write cycles on the same date. A
    key's lock only exists while someone holds or waits for it.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        # key -> (lock, number of holders and waiters)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def active_locks(self) -> int:
        return len(self._locks)

    async def get(self, key: str) -> StoredRecords | None:
        async with self._session_maker() as session:
            row = await session.get(ExerciseDay, key)
            if row is None:
                return None
            return list(row.records or [])

    async def set(self, key: str, value: StoredRecords) -> StoredRecords:
        """Replace the list stored under ``key`` (upsert)."""
        now = datetime.utcnow()
        async with self._session_maker() as session:
            stmt = insert(ExerciseDay).values(date_key=key, records=value, updated_at=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=["date_key"],
                set_={"records": stmt.excluded.records, "updated_at": now},
            )
            await session.execute(stmt)
            await session.commit()
        logger.debug(f"Stored {len(value)} record(s) under {key}")
        return value

    async def iterate(self, visit: Visitor) -> None:
        """Call ``visit(value, key)`` for every stored key, in key order.

        ``visit`` may be a plain function or a coroutine function.
        """
        async with self._session_maker() as session:
            result = await session.execute(select(ExerciseDay).order_by(ExerciseDay.date_key))
            rows = result.scalars().all()

        for row in rows:
            outcome = visit(list(row.records or []), row.date_key)
            if inspect.isawaitable(outcome):
                await outcome

    async def keys(self) -> list[str]:
        async with self._session_maker() as session:
            result = await session.execute(select(ExerciseDay.date_key).order_by(ExerciseDay.date_key))
            return [row[0] for row in result.all()]
