# ---------------------------------
# catalog_sync/workers/job_processor.py
# ---------------------------------
# Decides whether a full/delta job should run, marks it running and drives
# the batch loop with the lifecycle callbacks built here:
#   should_continue → called before each page fetch
#   save_checkpoint → called after each page
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import ValidationError

from catalog_sync.config import STORE_KEYS, SyncPolicy, settings
from catalog_sync.errors import ConcurrentUpdateError
from catalog_sync.jobs.job_handler import JobHandler
from catalog_sync.models import job_status as js
from catalog_sync.models.job_status import JobState, utcnow
from catalog_sync.models.mapping_config import MappingConfig, SyncConfigRecord
from catalog_sync.store.object_store import ObjectStore
from catalog_sync.sync.sync import Checkpoint, SaveCheckpoint, ShouldContinue, SyncProgress, start_sync_process

logger = logging.getLogger("uvicorn.error")

JOB_KINDS = ("full", "delta")


async def load_mapping_config(store: ObjectStore, container: str = settings.STORE_CONTAINER) -> Optional[MappingConfig]:
    stored = await store.get(container, STORE_KEYS["all"])
    if stored is None or not isinstance(stored.value, dict):
        return None
    try:
        return SyncConfigRecord.model_validate(stored.value).config
    except ValidationError as e:
        logger.error("[JOB] saved sync config is invalid: %s", e)
        return None


def create_should_continue(handler: JobHandler, policy: SyncPolicy) -> ShouldContinue:
    async def should_continue() -> bool:
        status, version = await handler.load()

        if status.status != JobState.RUNNING:
            if status.status == JobState.TO_STOP:
                logger.info("[JOB] %s: stop requested, stopping", handler.key)
                await handler.update_status(js.to_stopped(status.failed_syncs), version)
            return False

        if js.has_reached_failure_limit(status, policy.max_failed):
            logger.warning("[JOB] %s: %d failures, stopping", handler.key, status.failed_count)
            await handler.update_status(js.to_stopped(status.failed_syncs), version)
            return False

        if status.remaining_to_sync is not None:
            remaining = max(status.remaining_to_sync - policy.batch_size, 0)
            await handler.update_status({"remainingToSync": remaining}, version)
        return True

    return should_continue


def create_checkpoint_handler(
    handler: JobHandler,
    is_delta: bool,
    policy: SyncPolicy,
    started_at: float,
    clock: Callable[[], float] = time.monotonic,
) -> SaveCheckpoint:
    async def save_checkpoint(checkpoint: Checkpoint) -> None:
        status, version = await handler.load()

        if status.status not in (JobState.RUNNING, JobState.TO_STOP):
            # stopped or rescheduled while the page ran; that write wins
            logger.info("[JOB] %s: now %s, checkpoint not written", handler.key, status.status.value)
            return

        if checkpoint.cursor is None:
            patch = js.to_scheduled(checkpoint.failed_syncs) if is_delta else js.to_idle(checkpoint.failed_syncs)
            logger.info("[JOB] %s: finished -> %s", handler.key, patch["status"])
        elif status.status == JobState.RUNNING and js.has_reached_time_limit(
            started_at, policy.time_limit_seconds, clock()
        ):
            patch = js.to_resumable(checkpoint.cursor, checkpoint.failed_syncs)
            logger.info("[JOB] %s: time budget used, resumable from %s", handler.key, checkpoint.cursor)
        else:
            # a stop request made during the page is handled by should_continue
            patch = js.with_failures(checkpoint.failed_syncs)

        await handler.update_status(patch, version)

    return save_checkpoint


async def _record_abort(handler: JobHandler, progress: SyncProgress) -> None:
    try:
        status, version = await handler.load()
        if status.status != JobState.RUNNING:
            return
        if progress.cursor:
            patch = js.to_resumable(progress.cursor, progress.failed_syncs)
        else:
            patch = js.to_stopped(progress.failed_syncs)
        await handler.update_status(patch, version)
    except ConcurrentUpdateError as e:
        logger.error("[JOB] %s: could not record the aborted run: %s", handler.key, e)


async def process_job(
    kind: str,
    *,
    store: ObjectStore,
    pim,
    commerce,
    policy: Optional[SyncPolicy] = None,
    publish_flag: Optional[str] = settings.SET_PUBLISHED_TO_MODIFIED,
    clock: Callable[[], float] = time.monotonic,
    now: Callable[[], datetime] = utcnow,
) -> Optional[SyncProgress]:
    """
    Run one full or delta job if its record allows it. Returns the loop's
    progress, or None when nothing ran. Never raises for sync problems: they end
    up in the job record or the log.
    """
    if kind not in JOB_KINDS:
        logger.info("[JOB] nothing to process for kind=%s", kind)
        return None

    policy = policy or SyncPolicy.from_settings()
    handler = JobHandler.for_kind(store, kind)
    status, version = await handler.load()

    if status.status == JobState.IDLE:
        logger.info("[JOB] %s is idle", kind)
        return None
    if js.is_in_progress(status):
        logger.info("[JOB] %s already %s", kind, status.status.value)
        return None
    if status.status == JobState.TO_STOP:
        await handler.update_status(js.to_stopped(status.failed_syncs), version)
        return None
    if not js.is_ready(status):
        return None

    config = await load_mapping_config(store, handler.container)
    if config is None:
        logger.warning("[JOB] No config found; %s sync not started", kind)
        return None

    is_delta = kind == "delta"
    resuming = status.status == JobState.RESUMABLE
    last_sync_date = status.last_sync_date or (now() - timedelta(seconds=policy.delta_lookback_seconds))

    total = None
    if not resuming:
        try:
            total = await pim.count_products(
                families=config.families(),
                completeness=policy.completeness,
                scope=config.scope,
                updated_after=last_sync_date if is_delta else None,
            )
        except Exception as e:
            logger.warning("[JOB] %s: could not count products: %s", kind, e)

    failed = status.failed_syncs if resuming else None
    progress = SyncProgress()
    try:
        await handler.update_status(js.to_running(total, failed), version)
        logger.info(
            "[JOB] %s sync %s (cursor=%s, total=%s)",
            kind, "resumed" if resuming else "started", status.last_cursor, total,
        )
        await start_sync_process(
            config,
            pim,
            commerce,
            is_delta=is_delta,
            should_continue=create_should_continue(handler, policy),
            save_checkpoint=create_checkpoint_handler(handler, is_delta, policy, clock(), clock),
            last_cursor=status.last_cursor if resuming else None,
            last_sync_date=last_sync_date,
            policy=policy,
            publish_flag=publish_flag,
            progress=progress,
            initial_failed=failed,
        )
    except ConcurrentUpdateError as e:
        logger.error("[JOB] %s: status changed by another writer, run aborted: %s", kind, e)
    except Exception as e:
        logger.exception("[JOB] %s sync aborted: %s", kind, e)
        await _record_abort(handler, progress)

    logger.info("[JOB] %s: %d page(s), %d product(s), %d failure(s)",
                kind, progress.pages, progress.processed, len(progress.failed_syncs))
    return progress
