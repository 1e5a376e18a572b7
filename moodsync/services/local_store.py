"""
Local Store Adapter — on-device key/value storage over the local_records table.

Rules:
- get() on a missing key returns None, never raises.
- Every call opens and commits its own session (no request-scoped session),
  so the same store is safe to use from background tasks.

Public API
----------
SQLLocalStore(session_factory)
    .get(key)        -> Optional[str]
    .set(key, value) -> None
local_key(owner, name) -> str
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from moodsync.models.local_record import LocalRecord

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER = "anonymous"


def local_key(owner: Optional[str], name: str) -> str:
    """Versioned, owner-scoped key, e.g. "u-42/@moodsync_entries_v1"."""
    return f"{owner or ANONYMOUS_OWNER}/@moodsync_{name}_v1"


class LocalStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...


class SQLLocalStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LocalRecord.value).where(LocalRecord.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            record = await session.get(LocalRecord, key)
            if record is None:
                session.add(LocalRecord(key=key, value=value))
            else:
                record.value = value
            await session.commit()
        logger.debug("local write %s (%d chars)", key, len(value))
