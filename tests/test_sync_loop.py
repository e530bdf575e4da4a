import asyncio
import math
import time
from datetime import datetime, timedelta, timezone

import pytest

from catalog_sync.config import SyncPolicy
from catalog_sync.errors import PimApiError
from catalog_sync.jobs.job_handler import JobHandler
from catalog_sync.models.pim_models import ProductPage
from catalog_sync.service import SyncService
from catalog_sync.sync.sync import start_sync_process
from catalog_sync.workers.job_processor import create_checkpoint_handler, create_should_continue, process_job

from conftest import CONTAINER, FakeCommerce, FakePim, MemoryStore, config_dict, make_item

POLICY = SyncPolicy(batch_size=5, max_failed=100, time_limit_seconds=3600)


def good(n):
    return make_item(uuid=f"uuid-{n}", identifier=f"p{n}")


def bad(n):
    # unmapped family → MappingError inside the pipeline
    return make_item(uuid=f"bad-{n}", identifier=f"b{n}", family="shoes")


def seed(store, key, status, **extra):
    store.seed("sync-config", {"config": config_dict()})
    store.seed(key, {"status": status, **extra})


@pytest.mark.asyncio
@pytest.mark.parametrize("kind,final", [("full", "idle"), ("delta", "scheduled")])
async def test_checkpoint_once_per_page_with_null_cursor_last(store, config, kind, final):
    key = f"{kind}-sync"
    seed(store, key, "running")
    handler = JobHandler(store, key, CONTAINER)
    pim = FakePim([
        ProductPage([good(1), bad(1)], "c1"),
        ProductPage([good(2)], "c2"),
        ProductPage([bad(2), good(3)], None),
    ])
    commerce = FakeCommerce()
    calls = []
    save = create_checkpoint_handler(handler, kind == "delta", POLICY, time.monotonic())

    async def recording(checkpoint):
        calls.append(checkpoint)
        await save(checkpoint)

    progress = await start_sync_process(
        config, pim, commerce,
        is_delta=kind == "delta",
        should_continue=create_should_continue(handler, POLICY),
        save_checkpoint=recording,
        last_sync_date=datetime(2024, 5, 1, tzinfo=timezone.utc),
        policy=POLICY,
    )

    assert [c.cursor for c in calls] == ["c1", "c2", None]
    assert [c["search_after"] for c in pim.list_calls] == [None, "c1", "c2"]
    record = store.value(key)
    assert record["status"] == final
    assert [f["identifier"] for f in record["failedSyncs"]] == ["b1", "b2"]
    assert progress.processed == 5
    assert len(commerce.created) == 3
    if kind == "delta":
        assert pim.list_calls[0]["updated_after"] == datetime(2024, 5, 1, tzinfo=timezone.utc)
    else:
        assert pim.list_calls[0]["updated_after"] is None


@pytest.mark.asyncio
async def test_empty_page_completes_the_run(store, config):
    seed(store, "full-sync", "scheduled")
    pim = FakePim([])

    await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY)

    assert store.value("full-sync")["status"] == "idle"
    assert len(pim.list_calls) == 1


@pytest.mark.asyncio
async def test_failure_cap_halts_the_run(store):
    policy = SyncPolicy(batch_size=5, max_failed=12, time_limit_seconds=3600)
    seed(store, "full-sync", "scheduled")
    pages = [ProductPage([bad(p * 5 + i) for i in range(5)], f"c{p}") for p in range(10)]
    pim = FakePim(pages)

    await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=policy)

    record = store.value("full-sync")
    assert record["status"] == "stopped"
    assert len(pim.list_calls) == math.ceil(policy.max_failed / policy.batch_size)
    assert len(record["failedSyncs"]) == 15


@pytest.mark.asyncio
async def test_cooperative_stop_between_pages(store, config):
    seed(store, "delta-sync", "running")
    handler = JobHandler(store, "delta-sync", CONTAINER)
    pim = FakePim([ProductPage([good(1), bad(1)], "c1"), ProductPage([good(2)], "c2")])
    commerce = FakeCommerce()
    service = SyncService(store, pim, commerce, policy=POLICY, container=CONTAINER)
    save = create_checkpoint_handler(handler, True, POLICY, time.monotonic())

    async def save_then_stop(checkpoint):
        await save(checkpoint)
        await service.request_stop("delta")

    await start_sync_process(
        config, pim, commerce,
        is_delta=True,
        should_continue=create_should_continue(handler, POLICY),
        save_checkpoint=save_then_stop,
        policy=POLICY,
    )

    assert len(pim.list_calls) == 1
    record = store.value("delta-sync")
    assert record["status"] == "stopped"
    assert [f["identifier"] for f in record["failedSyncs"]] == ["b1"]


@pytest.mark.asyncio
async def test_full_stop_during_last_page_stays_stopped(store):
    seed(store, "full-sync", "scheduled")
    pim = FakePim([ProductPage([good(1), bad(1)], None)])

    async def stop_mid_page(call_index):
        if call_index == 1:
            await JobHandler(store, "full-sync", CONTAINER).cancel()

    pim.on_list = stop_mid_page

    progress = await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY)

    assert progress.processed == 2
    assert store.value("full-sync")["status"] == "stopped"


@pytest.mark.asyncio
async def test_zero_time_budget_makes_run_resumable_then_resumes(store):
    seed(store, "full-sync", "scheduled")
    pim = FakePim([
        ProductPage([good(1), bad(1)], "cursor-A"),
        ProductPage([good(2)], None),
    ])
    commerce = FakeCommerce()
    no_time = SyncPolicy(batch_size=5, max_failed=100, time_limit_seconds=0)

    await process_job("full", store=store, pim=pim, commerce=commerce, policy=no_time)

    record = store.value("full-sync")
    assert record["status"] == "resumable"
    assert record["lastCursor"] == "cursor-A"
    assert len(pim.list_calls) == 1

    await process_job("full", store=store, pim=pim, commerce=commerce, policy=POLICY)

    assert pim.list_calls[1]["search_after"] == "cursor-A"
    record = store.value("full-sync")
    assert record["status"] == "idle"
    assert record["lastCursor"] is None
    # failures from before the pause are carried over
    assert [f["identifier"] for f in record["failedSyncs"]] == ["b1"]


@pytest.mark.asyncio
async def test_page_error_keeps_last_cursor_as_resume_point(store):
    seed(store, "full-sync", "scheduled")

    class FailingPim(FakePim):
        async def list_products(self, **kwargs):
            if len(self.list_calls) == 1:
                self.list_calls.append(kwargs)
                raise PimApiError("GET /products failed: 500", 500)
            return await super().list_products(**kwargs)

    pim = FailingPim([ProductPage([good(1)], "c1")])

    progress = await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY)

    assert progress.pages == 1
    record = store.value("full-sync")
    assert record["status"] == "resumable"
    assert record["lastCursor"] == "c1"


@pytest.mark.asyncio
async def test_items_in_a_page_can_run_concurrently(store, config):
    seed(store, "full-sync", "scheduled")
    pim = FakePim([ProductPage([good(1), bad(1), good(2), bad(2), good(3)], None)])
    commerce = FakeCommerce()
    policy = SyncPolicy(batch_size=5, max_failed=100, time_limit_seconds=3600, item_concurrency=3)

    progress = await process_job("full", store=store, pim=pim, commerce=commerce, policy=policy)

    assert len(commerce.created) == 3
    assert sorted(f.identifier for f in progress.failed_syncs) == ["b1", "b2"]


@pytest.mark.asyncio
async def test_variants_of_one_model_never_run_at_the_same_time(config):
    items = [
        make_item(uuid="v1", identifier="m1-s", parent="m1"),
        make_item(uuid="v2", identifier="m1-m", parent="m1"),
        make_item(uuid="s1", identifier="solo-1"),
        make_item(uuid="v3", identifier="m1-l", parent="m1"),
        make_item(uuid="w1", identifier="m2-s", parent="m2"),
        make_item(uuid="s2", identifier="solo-2"),
        make_item(uuid="w2", identifier="m2-m", parent="m2"),
    ]
    pim = FakePim([ProductPage(items, None)])
    active, order, overlaps = [], [], []
    peak = 0

    async def tracking_syncer(item):
        nonlocal peak
        key = item.parent or item.uuid
        if key in active:
            overlaps.append(item.identifier)
        active.append(key)
        peak = max(peak, len(active))
        order.append(item.identifier)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        active.remove(key)

    fetched = []

    async def once():
        fetched.append(True)
        return len(fetched) == 1

    async def no_checkpoint(checkpoint):
        pass

    policy = SyncPolicy(batch_size=10, max_failed=100, time_limit_seconds=3600, item_concurrency=3)
    progress = await start_sync_process(
        config, pim, FakeCommerce(),
        is_delta=False,
        should_continue=once,
        save_checkpoint=no_checkpoint,
        policy=policy,
        item_syncer=tracking_syncer,
    )

    assert progress.processed == 7
    assert overlaps == []
    assert 1 < peak <= 3
    assert [i for i in order if i.startswith("m1")] == ["m1-s", "m1-m", "m1-l"]
    assert [i for i in order if i.startswith("m2")] == ["m2-s", "m2-m"]


@pytest.mark.asyncio
async def test_remaining_count_goes_down_by_page_size(store):
    seed(store, "full-sync", "scheduled")
    pim = FakePim([ProductPage([good(i) for i in range(5)], "c1"), ProductPage([good(9)], None)])
    pim.total = 7
    seen = []

    async def watch(call_index):
        seen.append(store.value("full-sync")["remainingToSync"])

    pim.on_list = watch

    await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY)

    assert seen == [2, 0]
    assert store.value("full-sync")["totalToSync"] == 7


# ---- processor gates ----------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["idle", "running", "stopped"])
async def test_processor_does_nothing_for_non_ready_records(store, status):
    seed(store, "full-sync", status)
    pim = FakePim([ProductPage([good(1)], None)])

    assert await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY) is None
    assert pim.list_calls == []
    assert store.value("full-sync")["status"] == status


@pytest.mark.asyncio
async def test_processor_turns_to_stop_into_stopped(store):
    seed(store, "delta-sync", "to-stop")

    await process_job("delta", store=store, pim=FakePim(), commerce=FakeCommerce(), policy=POLICY)

    assert store.value("delta-sync")["status"] == "stopped"


@pytest.mark.asyncio
async def test_processor_without_config_leaves_record_alone():
    store = MemoryStore()
    store.seed("full-sync", {"status": "scheduled"})
    pim = FakePim([ProductPage([good(1)], None)])

    assert await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY) is None
    assert store.value("full-sync") == {"status": "scheduled"}
    assert store.puts == []


@pytest.mark.asyncio
async def test_delta_defaults_to_lookback_window(store):
    seed(store, "delta-sync", "scheduled")
    pim = FakePim([])
    now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    await process_job("delta", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY, now=lambda: now)

    assert pim.list_calls[0]["updated_after"] == now - timedelta(seconds=POLICY.delta_lookback_seconds)
    assert store.value("delta-sync")["status"] == "scheduled"


@pytest.mark.asyncio
async def test_concurrent_status_write_aborts_run_without_overwriting():
    class RacyStore(MemoryStore):
        """Lets another writer slip in right before the processor's second status write."""

        async def put(self, container, key, value, expected_version=None):
            if key == "full-sync" and len(self.puts) == 1:
                await super().put(container, key, {"status": "to-stop"})
            return await super().put(container, key, value, expected_version)

    store = RacyStore()
    seed(store, "full-sync", "scheduled")
    pim = FakePim([ProductPage([good(1)], "c1"), ProductPage([good(2)], None)])

    await process_job("full", store=store, pim=pim, commerce=FakeCommerce(), policy=POLICY)

    assert store.value("full-sync") == {"status": "to-stop"}
