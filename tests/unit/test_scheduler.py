"""Unit tests for the background sync scheduler."""

from unittest.mock import AsyncMock

import pytest

from blogroll.config import ServerConfig
from blogroll.models import RunResult
from blogroll.sync.engine import SyncEngine
from blogroll.sync.scheduler import INITIAL_JOB_ID, PERIODIC_JOB_ID, SchedulerHandle


pytestmark = pytest.mark.anyio


@pytest.fixture
def engine(store):
    engine = SyncEngine(store)
    engine.run_full_sync = AsyncMock(return_value=RunResult(success=True))
    return engine


async def test_start_and_stop(engine):
    handle = SchedulerHandle.from_config(engine, ServerConfig(sync_interval=30, initial_sync_delay=60))

    handle.start()
    try:
        assert handle.running
        assert sorted(handle.get_job_ids()) == sorted([INITIAL_JOB_ID, PERIODIC_JOB_ID])
        handle.start()
        assert len(handle.get_job_ids()) == 2
    finally:
        handle.stop()

    assert not handle.running
    assert handle.get_job_ids() == []
    handle.stop()


async def test_job_runs_the_engine(engine):
    handle = SchedulerHandle(engine)

    await handle._run()
    engine.run_full_sync.return_value = RunResult(success=False, skipped=True)
    await handle._run()

    assert engine.run_full_sync.await_count == 2
