"""
Tests for the background file-watch job
"""
import logging
from datetime import timedelta
from pathlib import Path

import pytest

from app.application import scheduler as scheduler_module
from app.application.scheduler import (
    LEDGER_WATCH_JOB_ID,
    _run_ledger_watch,
    shutdown_scheduler,
    start_scheduler,
)


class StubStore:
    """Counts watcher ticks; optionally fails every tick"""

    def __init__(self, fail: bool = False):
        self.path = Path("ledger/budget.xlsx")
        self.fail = fail
        self.ticks = 0

    def check_for_changes(self) -> bool:
        self.ticks += 1
        if self.fail:
            raise RuntimeError("fingerprint exploded")
        return False


@pytest.fixture
def running_scheduler():
    yield scheduler_module.scheduler
    shutdown_scheduler()
    scheduler_module.scheduler.remove_all_jobs()


def test_watch_job_calls_store():
    store = StubStore()

    _run_ledger_watch(store)

    assert store.ticks == 1


def test_watch_job_logs_and_swallows_errors(caplog):
    store = StubStore(fail=True)

    with caplog.at_level(logging.ERROR, logger="app.application.scheduler"):
        _run_ledger_watch(store)

    assert store.ticks == 1
    [record] = caplog.records
    assert record.getMessage() == "Ledger file watch job failed"
    assert record.exc_info[0] is RuntimeError


def test_start_registers_single_watch_job(running_scheduler):
    store = StubStore()

    start_scheduler(store, interval_seconds=0.5)
    start_scheduler(store, interval_seconds=0.5)

    assert running_scheduler.running
    [job] = running_scheduler.get_jobs()
    assert job.id == LEDGER_WATCH_JOB_ID
    assert job.args == (store,)
    assert job.trigger.interval == timedelta(seconds=0.5)
    assert job.max_instances == 1
    assert job.coalesce is True


def test_shutdown_stops_scheduler(running_scheduler):
    start_scheduler(StubStore(), interval_seconds=60)

    shutdown_scheduler()

    assert not running_scheduler.running
    shutdown_scheduler()
