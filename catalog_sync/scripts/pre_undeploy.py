#!/usr/bin/env python3
"""
Pre-undeploy hook: remove the job records and the saved sync config.
Missing records are fine.
"""
import asyncio
import logging
import sys

from catalog_sync.config import STORE_KEYS, settings
from catalog_sync.db import dispose_engine, get_sessionmaker, init_db
from catalog_sync.logging_filters import configure_logging
from catalog_sync.store.object_store import ObjectStore

logger = logging.getLogger("uvicorn.error")


async def run(store: ObjectStore, container: str = settings.STORE_CONTAINER) -> int:
    try:
        for key in STORE_KEYS.values():
            if await store.delete(container, key):
                logger.info("[DEPLOY] deleted %s/%s", container, key)
    except Exception as e:
        logger.error("[DEPLOY] pre-undeploy failed: %s", e)
        return 1
    return 0


async def main() -> int:
    configure_logging()
    try:
        await init_db()
        return await run(ObjectStore(get_sessionmaker()))
    finally:
        await dispose_engine()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
