#===========================================================================
# catalog_sync/store/object_store.py
# Durable key-value store for job status records and the saved sync config.
# Documents are addressed by (container, key) and carry a version counter
# so read-modify-write callers can detect concurrent writers.
#===========================================================================
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.errors import ConcurrentUpdateError
from catalog_sync.models.custom_object import CustomObject

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class StoredObject:
    container: str
    key: str
    value: Any
    version: int


class ObjectStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def get(self, container: str, key: str) -> Optional[StoredObject]:
        async with self._sessionmaker() as session:
            row = (
                await session.execute(
                    select(CustomObject).where(CustomObject.container == container, CustomObject.key == key)
                )
            ).scalar_one_or_none()
        if row is None:
            return None
        try:
            value = json.loads(row.value) if row.value else None
        except ValueError:
            logger.warning("[STORE] %s/%s holds invalid JSON; treating as empty", container, key)
            value = None
        return StoredObject(container=container, key=key, value=value, version=row.version)

    async def put(
        self,
        container: str,
        key: str,
        value: Any,
        expected_version: Optional[int] = None,
    ) -> StoredObject:
        """
        Write `value` under (container, key).

        expected_version=None writes unconditionally. Any other number is a
        compare-and-set: 0 means "must not exist yet", N means "must still be
        at version N". A mismatch raises ConcurrentUpdateError and writes nothing.
        """
        raw = json.dumps(value, ensure_ascii=False, default=str)
        try:
            new_version = await self._write(container, key, raw, expected_version)
        except IntegrityError as e:
            # another writer inserted the same (container, key) first
            raise ConcurrentUpdateError(container, key, expected_version, None) from e
        return StoredObject(container=container, key=key, value=value, version=new_version)

    async def _write(self, container: str, key: str, raw: str, expected_version: Optional[int]) -> int:
        async with self._sessionmaker() as session:
            async with session.begin():
                row = (
                    await session.execute(
                        select(CustomObject).where(CustomObject.container == container, CustomObject.key == key)
                    )
                ).scalar_one_or_none()
                current = row.version if row is not None else 0

                if expected_version is not None and expected_version != current:
                    raise ConcurrentUpdateError(container, key, expected_version, current)

                if row is None:
                    session.add(CustomObject(container=container, key=key, value=raw, version=1))
                    new_version = 1
                else:
                    result = await session.execute(
                        update(CustomObject)
                        .where(CustomObject.id == row.id, CustomObject.version == current)
                        .values(value=raw, version=current + 1)
                    )
                    if result.rowcount != 1:
                        raise ConcurrentUpdateError(container, key, current, None)
                    new_version = current + 1
        return new_version

    async def delete(self, container: str, key: str) -> bool:
        """Remove a document. Missing documents are not an error."""
        async with self._sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    delete(CustomObject).where(CustomObject.container == container, CustomObject.key == key)
                )
        deleted = bool(result.rowcount)
        if not deleted:
            logger.debug("[STORE] delete %s/%s: nothing to delete", container, key)
        return deleted
