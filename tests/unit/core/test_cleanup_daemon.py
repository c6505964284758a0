import asyncio

import pytest

from tiercache.core.services.cleanup_daemon import CleanupDaemon
from tiercache.core.services.statistics import OPERATION_RETENTION_MS, OperationLog
from tiercache.domain.events.cache_events import CleanupCompleted, CleanupFailed
from tiercache.domain.models.cache import CacheOperation
from tiercache.infrastructure.cache.disk_tier import DiskTier
from tiercache.infrastructure.cache.key_normalizer import normalize_key


@pytest.fixture
def events():
    return []


@pytest.fixture
def operation_log():
    return OperationLog()


async def test_run_once_sweeps_disk_and_prunes_log(tmp_path, clock, make_item, operation_log, events):
    disk = DiskTier(base_path=tmp_path, clock=clock)
    key = normalize_key("stale")
    await disk.set(key, make_item(key=key, ttl=10))
    operation_log.append(CacheOperation("get", key, "l1", clock() - OPERATION_RETENTION_MS - 1, 0.0, True))
    operation_log.append(CacheOperation("get", key, "l1", clock(), 0.0, True))
    clock.advance(11)

    daemon = CleanupDaemon(disk, operation_log, interval_ms=1000, clock=clock, emit=events.append)
    assert await daemon.run_once() == 1

    assert not disk.file_path(key).exists()
    assert len(operation_log) == 1
    assert events == [CleanupCompleted(files_removed=1, operations_pruned=1, timestamp=events[0].timestamp)]


async def test_run_once_without_disk_tier_only_prunes(operation_log, clock, events):
    daemon = CleanupDaemon(None, operation_log, interval_ms=1000, clock=clock, emit=events.append)
    assert await daemon.run_once() == 0
    assert isinstance(events[0], CleanupCompleted)


async def test_start_and_stop(operation_log, clock):
    daemon = CleanupDaemon(None, operation_log, interval_ms=60_000, clock=clock)
    daemon.start()
    assert daemon.running
    await daemon.stop()
    assert not daemon.running


async def test_failed_pass_is_reported_and_loop_continues(mocker, operation_log, clock, events):
    disk = mocker.MagicMock(spec=DiskTier)
    disk.sweep = mocker.AsyncMock(side_effect=OSError("disk gone"))
    daemon = CleanupDaemon(disk, operation_log, interval_ms=5, clock=clock, emit=events.append)

    daemon.start()
    for _ in range(200):
        if len(events) >= 2:
            break
        await asyncio.sleep(0.01)
    await daemon.stop()

    assert len(events) >= 2
    assert all(isinstance(e, CleanupFailed) for e in events)
    assert events[0].error_type == "OSError"
    assert events[0].error_message == "disk gone"
