#!/usr/bin/env python3
"""
Post-deploy hook: create the job records a fresh install needs.

  full-sync   → {"status": "idle"}       (started from the admin UI)
  delta-sync  → {"status": "scheduled"}  (picked up by the delta cron)
  sync-config → {"forwardUrl": CONNECT_SERVICE_URL}

Existing records are left untouched so a redeploy keeps job state and the
saved mapping config.
"""
import asyncio
import logging
import os
import sys
from typing import Any, Dict, Optional

from catalog_sync.config import STORE_KEYS, settings
from catalog_sync.db import dispose_engine, get_sessionmaker, init_db
from catalog_sync.errors import ConcurrentUpdateError
from catalog_sync.logging_filters import configure_logging
from catalog_sync.models.job_status import JobState
from catalog_sync.store.object_store import ObjectStore

logger = logging.getLogger("uvicorn.error")


def initial_records(service_url: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    return {
        STORE_KEYS["full"]: {"status": JobState.IDLE.value},
        STORE_KEYS["delta"]: {"status": JobState.SCHEDULED.value},
        STORE_KEYS["all"]: {"forwardUrl": service_url or "", "config": None},
    }


async def run(store: ObjectStore, service_url: Optional[str] = None, container: str = settings.STORE_CONTAINER) -> int:
    try:
        for key, value in initial_records(service_url).items():
            if await store.get(container, key) is not None:
                logger.info("[DEPLOY] %s/%s already present", container, key)
                continue
            try:
                await store.put(container, key, value, expected_version=0)
                logger.info("[DEPLOY] seeded %s/%s", container, key)
            except ConcurrentUpdateError:
                logger.info("[DEPLOY] %s/%s created concurrently; keeping it", container, key)
    except Exception as e:
        logger.error("[DEPLOY] post-deploy failed: %s", e)
        return 1
    return 0


async def main() -> int:
    configure_logging()
    try:
        await init_db()
        return await run(ObjectStore(get_sessionmaker()), os.getenv("CONNECT_SERVICE_URL"))
    finally:
        await dispose_engine()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
