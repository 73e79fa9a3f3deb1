"""
Batch scheduler: failure isolation, pacing and the execution budget.
"""
import asyncio

import pytest

from conftest import run
from marketing_hub.exceptions import MappingAbsentError
from marketing_hub.services.batch_scheduler import BatchScheduler, chunk


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def test_chunk():
    assert chunk([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk([], 3) == []
    with pytest.raises(ValueError):
        chunk([1], 0)


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        BatchScheduler(batch_size=0)


def test_one_failure_does_not_abort_the_run():
    async def worker(item):
        if item == "b":
            raise RuntimeError("provider exploded")
        if item == "c":
            raise MappingAbsentError(item)
        return item.upper()

    scheduler = BatchScheduler(batch_size=2, batch_delay_seconds=0)
    report = run(scheduler.run(["a", "b", "c", "d"], worker, name="test"))

    assert [r.status for r in report.results] == ["success", "error", "skipped", "success"]
    assert report.result_for("a").value == "A"
    assert "provider exploded" in report.result_for("b").error
    assert (report.succeeded, report.failed, report.skipped) == (2, 1, 1)


def test_batches_are_sequential_with_delay_between():
    sleep = RecordingSleep()
    in_flight = 0
    peak = 0

    async def worker(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1

    scheduler = BatchScheduler(batch_size=3, batch_delay_seconds=1.5, sleep=sleep)
    report = run(scheduler.run(list(range(7)), worker, name="test"))

    assert [b.size for b in report.batches] == [3, 3, 1]
    assert sleep.calls == [1.5, 1.5]
    assert peak == 3
    assert report.succeeded == 7


def test_item_timeout_is_recorded_as_error():
    async def worker(item):
        await asyncio.sleep(1.0 if item == "slow" else 0)

    scheduler = BatchScheduler(batch_size=2, batch_delay_seconds=0, item_timeout_seconds=0.05)
    report = run(scheduler.run(["slow", "fast"], worker, name="test"))

    assert report.result_for("slow").status == "error"
    assert "Timed out" in report.result_for("slow").error
    assert report.result_for("fast").status == "success"


def test_remaining_items_skipped_when_budget_exhausted():
    async def worker(item):
        await asyncio.sleep(0.05)

    scheduler = BatchScheduler(batch_size=2, batch_delay_seconds=0, max_execution_seconds=0.01)
    report = run(scheduler.run(["a", "b", "c", "d", "e"], worker, name="test"))

    assert report.timed_out
    assert [r.status for r in report.results] == ["success", "success", "skipped", "skipped", "skipped"]
    assert report.result_for("e").error == "time budget exhausted"
    assert len(report.batches) == 1


def test_report_serializes():
    async def worker(item):
        return None

    report = run(BatchScheduler(batch_size=5, batch_delay_seconds=0).run(["x"], worker, name="refresh"))
    data = report.to_dict()
    assert data["name"] == "refresh"
    assert data["total"] == 1
    assert data["results"][0]["status"] == "success"
    assert "error" not in data["results"][0]
