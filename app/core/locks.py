"""
Exclusive locks for operations that must not interleave.

- Commission recalculation: keyed by period (delete + recreate of the ledger).
- Hierarchy mutation: one well-known key (edge change + closure rebuild).

Within one worker process callers are serialized with an asyncio.Lock.
On PostgreSQL a transaction-scoped advisory lock additionally serializes
workers; it is released by the enclosing commit/rollback.
"""
import asyncio
import hashlib
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


logger = logging.getLogger(__name__)

HIERARCHY_LOCK_KEY = "hierarchy"

_locks_by_loop: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def period_lock_key(period_id: str) -> str:
    return f"period:{period_id}"


def advisory_lock_id(key: str) -> int:
    """Stable signed 64-bit id for pg_advisory_xact_lock."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def _local_lock(key: str) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _locks_by_loop.setdefault(loop, {})
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


@asynccontextmanager
async def exclusive_lock(db: AsyncSession, key: str) -> AsyncIterator[None]:
    """Hold an exclusive lock on `key` for the duration of the block."""
    async with _local_lock(key):
        if db.get_bind().dialect.name == "postgresql":
            await db.execute(
                text("SELECT pg_advisory_xact_lock(:lock_id)"),
                {"lock_id": advisory_lock_id(key)},
            )
        logger.debug(f"Acquired lock {key}")
        yield
