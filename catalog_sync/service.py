#===========================================================================
# catalog_sync/service.py
# The four operations the admin surface calls: check status, start, stop,
# save config. Also owns the background task of each running job.
#===========================================================================
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, Union

from catalog_sync.config import STORE_KEYS, SyncPolicy, settings
from catalog_sync.errors import ConcurrentUpdateError, ConfigurationError
from catalog_sync.jobs.job_handler import JobHandler
from catalog_sync.models.job_status import JobState, JobStatus
from catalog_sync.models.mapping_config import MappingConfig
from catalog_sync.store.object_store import ObjectStore
from catalog_sync.sync.sync import SyncProgress
from catalog_sync.workers.job_processor import JOB_KINDS, process_job

logger = logging.getLogger("uvicorn.error")

# status writes that lose a version race are re-decided on fresh state this many times
TRANSITION_ATTEMPTS = 3

_STARTABLE = (JobState.IDLE, JobState.STOPPED, JobState.SCHEDULED)
_STOPPABLE = (JobState.RUNNING, JobState.RESUMABLE)

# decide(status, version) -> (response status, launch?)
Decision = Callable[[JobStatus, int], Awaitable[Tuple[str, bool]]]


def _require_job_kind(kind: str) -> None:
    if kind not in JOB_KINDS:
        raise ValueError(f"syncType must be one of {', '.join(JOB_KINDS)} for this action, got {kind!r}")


class SyncService:
    def __init__(
        self,
        store: ObjectStore,
        pim,
        commerce,
        policy: Optional[SyncPolicy] = None,
        publish_flag: Optional[str] = settings.SET_PUBLISHED_TO_MODIFIED,
        container: str = settings.STORE_CONTAINER,
    ):
        self.store = store
        self.pim = pim
        self.commerce = commerce
        self.policy = policy or SyncPolicy.from_settings()
        self.publish_flag = publish_flag
        self.container = container
        self._tasks: Dict[str, asyncio.Task] = {}
        # kinds rescheduled while their previous run was still winding down
        self._relaunch: Set[str] = set()
        self._closing = False

    def handler(self, kind: str) -> JobHandler:
        return JobHandler(self.store, STORE_KEYS[kind], self.container)

    # --- check --------------------------------------------------------------

    async def check_status(self, kind: str) -> Dict[str, Any]:
        """Current record for the kind; the "all" kind returns the saved config document."""
        if kind == "all":
            stored = await self.store.get(self.container, STORE_KEYS["all"])
            return dict(stored.value) if stored and isinstance(stored.value, dict) else {}
        return (await self.handler(kind).check_status()).to_record()

    # --- start --------------------------------------------------------------

    async def launch_if_ready(self, kind: str) -> Dict[str, Any]:
        _require_job_kind(kind)
        handler = self.handler(kind)

        async def decide(status: JobStatus, version: int) -> Tuple[str, bool]:
            if status.status in _STARTABLE:
                await handler.start(version)
                return JobState.SCHEDULED.value, True
            if status.status == JobState.RESUMABLE:
                return JobState.RUNNING.value, True
            # running or to-stop: leave it alone
            return status.status.value, False

        result, launch = await self._transition(handler, decide)
        if launch:
            self._launch(kind)
        return {"status": result}

    # --- stop ---------------------------------------------------------------

    async def request_stop(self, kind: str) -> Dict[str, Any]:
        """Full sync stops immediately; delta sync stops at the next page boundary."""
        _require_job_kind(kind)
        handler = self.handler(kind)

        async def decide(status: JobStatus, version: int) -> Tuple[str, bool]:
            if status.status not in _STOPPABLE:
                return status.status.value, False
            if kind == "full":
                await handler.cancel(version)
                return JobState.STOPPED.value, False
            await handler.stop(version)
            return JobState.TO_STOP.value, False

        result, _ = await self._transition(handler, decide)
        logger.info("[SERVICE] stop %s -> %s", kind, result)
        return {"status": result}

    async def _transition(self, handler: JobHandler, decide: Decision) -> Tuple[str, bool]:
        for attempt in range(1, TRANSITION_ATTEMPTS + 1):
            status, version = await handler.load()
            try:
                return await decide(status, version)
            except ConcurrentUpdateError as e:
                logger.warning("[SERVICE] %s changed while updating (attempt %d): %s", handler.key, attempt, e)
        status = await handler.check_status()
        return status.status.value, False

    # --- save config --------------------------------------------------------

    async def save_config(
        self,
        config: Union[MappingConfig, Dict[str, Any], str],
        forward_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        if isinstance(config, str):
            try:
                config = json.loads(config)
            except ValueError as e:
                raise ConfigurationError(f"config is not valid JSON: {e}") from e
        if not isinstance(config, MappingConfig):
            config = MappingConfig.model_validate(config)

        key = STORE_KEYS["all"]
        stored = await self.store.get(self.container, key)
        current = dict(stored.value) if stored and isinstance(stored.value, dict) else {}
        current["config"] = config.to_record()
        if forward_url is not None:
            current["forwardUrl"] = forward_url
        await self.store.put(self.container, key, current, expected_version=stored.version if stored else 0)
        logger.info("[SERVICE] sync config saved (%d families)", len(config.family_mapping))
        return {"status": "success"}

    # --- job runs -----------------------------------------------------------

    async def run_job(self, kind: str) -> Optional[SyncProgress]:
        return await process_job(
            kind,
            store=self.store,
            pim=self.pim,
            commerce=self.commerce,
            policy=self.policy,
            publish_flag=self.publish_flag,
        )

    def _launch(self, kind: str) -> Optional[asyncio.Task]:
        task = self._tasks.get(kind)
        if task is not None and not task.done():
            # the old run sees the new record at its next page and returns; run again after it
            if kind not in self._relaunch:
                self._relaunch.add(kind)
                task.add_done_callback(lambda t, k=kind: self._relaunch_after(k, t))
                logger.info("[SERVICE] %s job still winding down, relaunch queued", kind)
            return task
        task = asyncio.create_task(self.run_job(kind), name=f"catalog-sync-{kind}")
        self._tasks[kind] = task
        task.add_done_callback(lambda t, k=kind: self._tasks.pop(k, None) if self._tasks.get(k) is t else None)
        return task

    def _relaunch_after(self, kind: str, finished: asyncio.Task) -> None:
        self._relaunch.discard(kind)
        if self._closing or finished.cancelled():
            return
        self._launch(kind)

    def task_for(self, kind: str) -> Optional[asyncio.Task]:
        return self._tasks.get(kind)

    async def shutdown(self) -> None:
        self._closing = True
        tasks = [t for t in self._tasks.values() if not t.done()]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
