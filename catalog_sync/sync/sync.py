# catalog_sync/sync/sync.py
# ===================================================
# Batch sync loop: page through Akeneo, reconcile each product
# ===================================================
# The loop itself is policy-free: whether to fetch another page and what to
# persist after one are decided by the two callbacks the job processor builds
# (see catalog_sync/workers/job_processor.py).
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from catalog_sync.config import SyncPolicy, settings
from catalog_sync.models.job_status import FailedItem
from catalog_sync.models.mapping_config import MappingConfig
from catalog_sync.models.pim_models import SourceItem
from catalog_sync.sync.product_sync import sync_product

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class Checkpoint:
    cursor: Optional[str]
    failed_syncs: List[FailedItem]


@dataclass
class SyncProgress:
    """What the loop has durably gone past; read by the processor if a page blows up."""
    cursor: Optional[str] = None
    pages: int = 0
    processed: int = 0
    failed_syncs: List[FailedItem] = field(default_factory=list)


ShouldContinue = Callable[[], Awaitable[bool]]
SaveCheckpoint = Callable[[Checkpoint], Awaitable[None]]
ItemSyncer = Callable[[SourceItem], Awaitable[object]]


async def _sync_page(items: Sequence[SourceItem], item_syncer: ItemSyncer, concurrency: int) -> List[FailedItem]:
    """Run every item; failures are collected, never raised. Returns in item order."""
    sem = asyncio.Semaphore(max(1, concurrency))
    results: List[Optional[FailedItem]] = [None] * len(items)

    # variants of one product model write the same commercetools product: run them one after another
    groups: Dict[str, List[int]] = {}
    for idx, item in enumerate(items):
        groups.setdefault(item.parent or item.uuid, []).append(idx)

    async def run_one(item: SourceItem) -> Optional[FailedItem]:
        try:
            await item_syncer(item)
            return None
        except Exception as e:
            logger.warning("[SYNC] product %s failed: %s", item.identifier or item.uuid, e)
            return FailedItem.from_exception(item.identifier or item.uuid, e)

    async def run_group(indexes: List[int]) -> None:
        async with sem:
            for idx in indexes:
                results[idx] = await run_one(items[idx])

    await asyncio.gather(*(run_group(g) for g in groups.values()))
    return [r for r in results if r is not None]


async def start_sync_process(
    config: MappingConfig,
    pim,
    commerce,
    *,
    is_delta: bool,
    should_continue: ShouldContinue,
    save_checkpoint: SaveCheckpoint,
    last_cursor: Optional[str] = None,
    last_sync_date: Optional[datetime] = None,
    policy: Optional[SyncPolicy] = None,
    publish_flag: Optional[str] = settings.SET_PUBLISHED_TO_MODIFIED,
    item_syncer: Optional[ItemSyncer] = None,
    progress: Optional[SyncProgress] = None,
    initial_failed: Optional[Sequence[FailedItem]] = None,
) -> SyncProgress:
    """
    Walk Akeneo page by page from `last_cursor` until the source is exhausted
    or `should_continue` says stop. After each page `save_checkpoint` gets the
    next cursor (None when done) and every failure so far.

    Source listing errors propagate; item errors become FailedItem entries.
    """
    policy = policy or SyncPolicy.from_settings()
    progress = progress if progress is not None else SyncProgress()
    progress.cursor = last_cursor
    progress.failed_syncs = list(initial_failed or [])
    item_syncer = item_syncer or partial(
        sync_product, config=config, pim=pim, commerce=commerce, publish_flag=publish_flag
    )
    families = config.families()

    while await should_continue():
        page = await pim.list_products(
            families=families,
            completeness=policy.completeness,
            scope=config.scope,
            limit=policy.batch_size,
            search_after=progress.cursor,
            updated_after=last_sync_date if is_delta else None,
        )
        progress.pages += 1

        if not page.items:
            logger.info("[SYNC] no more products after %d page(s)", progress.pages)
            progress.cursor = None
            await save_checkpoint(Checkpoint(cursor=None, failed_syncs=list(progress.failed_syncs)))
            break

        progress.failed_syncs.extend(await _sync_page(page.items, item_syncer, policy.item_concurrency))
        progress.processed += len(page.items)
        progress.cursor = page.next_cursor
        logger.info(
            "[SYNC] page %d: %d product(s), %d failure(s) so far",
            progress.pages, len(page.items), len(progress.failed_syncs),
        )

        await save_checkpoint(Checkpoint(cursor=page.next_cursor, failed_syncs=list(progress.failed_syncs)))
        if not page.next_cursor:
            break

    return progress
