# catalog_sync/jobs/job_handler.py
# ===================================================
# Job status record bound to one store key
# ===================================================
# Every write is a compare-and-set against the version that was read, so two
# writers racing on the same record never silently overwrite each other: the
# loser gets ConcurrentUpdateError.
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from catalog_sync.config import STORE_KEYS, settings
from catalog_sync.models import job_status as js
from catalog_sync.models.job_status import JobState, JobStatus
from catalog_sync.store.object_store import ObjectStore

logger = logging.getLogger("uvicorn.error")


class JobHandler:
    def __init__(self, store: ObjectStore, key: str, container: str = settings.STORE_CONTAINER):
        self.store = store
        self.container = container
        self.key = key

    @classmethod
    def for_kind(cls, store: ObjectStore, kind: str, container: str = settings.STORE_CONTAINER) -> "JobHandler":
        return cls(store, STORE_KEYS[kind], container)

    async def read(self) -> Tuple[Dict[str, Any], int]:
        """Raw record + version. An absent record reads as {"status": "scheduled"} at version 0."""
        stored = await self.store.get(self.container, self.key)
        if stored is None or not isinstance(stored.value, dict):
            return {"status": JobState.SCHEDULED.value}, (stored.version if stored else 0)
        return dict(stored.value), stored.version

    async def check_status(self) -> JobStatus:
        record, _ = await self.read()
        return JobStatus.from_record(record)

    async def load(self) -> Tuple[JobStatus, int]:
        record, version = await self.read()
        return JobStatus.from_record(record), version

    async def update_status(self, patch: Dict[str, Any], expected_version: Optional[int] = None) -> JobStatus:
        """
        Merge `patch` onto the current record and write it back.

        Without `expected_version` the read done here is the reference; pass the
        version from an earlier `load()` to make a whole decide-then-write
        sequence atomic.
        """
        record, version = await self.read()
        if expected_version is None:
            expected_version = version
        merged = {**record, **patch}
        await self.store.put(self.container, self.key, merged, expected_version=expected_version)
        logger.debug("[JOB] %s -> %s", self.key, merged.get("status"))
        return JobStatus.from_record(merged)

    async def start(self, expected_version: Optional[int] = None) -> JobStatus:
        return await self.update_status(js.to_scheduled(), expected_version)

    async def cancel(self, expected_version: Optional[int] = None) -> JobStatus:
        """Immediate stop (full sync)."""
        status = await self.check_status()
        return await self.update_status(js.to_stopped(status.failed_syncs), expected_version)

    async def stop(self, expected_version: Optional[int] = None) -> JobStatus:
        """Cooperative stop request (delta sync); the loop finishes the current page."""
        return await self.update_status(js.to_to_stop(), expected_version)
