"""
Sync status state machine and health classification.
"""
from datetime import date, datetime, timedelta

import pytest

from marketing_hub.exceptions import InvalidSyncTransition
from marketing_hub.services.sync_status_tracker import (
    ERROR,
    SUCCESS,
    SYNCING,
    SyncStatusRecord,
    SyncStatusTracker,
    classify_health,
)


@pytest.fixture
def tracker(session_factory, clock):
    return SyncStatusTracker(session_factory, clock=clock)


def test_success_cycle(tracker, clock):
    record = tracker.mark_syncing("acme", "ga")
    assert record.state == SYNCING
    assert record.last_sync_at == clock()

    record = tracker.mark_success("acme", "ga")
    assert record.state == SUCCESS
    assert record.last_success_at == clock()
    assert record.consecutive_failures == 0


def test_failures_count_and_reset(tracker):
    for expected in (1, 2, 3):
        tracker.mark_syncing("acme", "gsc")
        record = tracker.mark_failure("acme", "gsc", "boom")
        assert record.state == ERROR
        assert record.consecutive_failures == expected
        assert record.last_error == "boom"

    tracker.mark_syncing("acme", "gsc")
    record = tracker.mark_success("acme", "gsc")
    assert record.consecutive_failures == 0
    assert record.last_error is None


def test_completion_without_syncing_is_rejected(tracker):
    with pytest.raises(InvalidSyncTransition):
        tracker.mark_success("acme", "ga")
    with pytest.raises(InvalidSyncTransition):
        tracker.mark_failure("acme", "ga", "never started")


def test_overlapping_syncs_last_write_wins(tracker, clock):
    # Two syncs of the same pair start before either finishes
    tracker.mark_syncing("acme", "ga")
    tracker.mark_syncing("acme", "ga")

    assert tracker.mark_success("acme", "ga").state == SUCCESS
    clock.advance(seconds=5)
    record = tracker.mark_success("acme", "ga")
    assert record.state == SUCCESS
    assert record.last_success_at == clock()

    record = tracker.mark_failure("acme", "ga", "late failure")
    assert record.state == ERROR
    assert record.consecutive_failures == 1

    record = tracker.mark_failure("acme", "ga", "later failure")
    assert record.consecutive_failures == 2
    assert record.last_error == "later failure"

    assert tracker.mark_success("acme", "ga").consecutive_failures == 0


def test_data_coverage_only_grows(tracker):
    tracker.mark_syncing("acme", "yt")
    tracker.mark_success("acme", "yt", date(2025, 1, 10), date(2025, 1, 20))
    tracker.mark_syncing("acme", "yt")
    record = tracker.mark_success("acme", "yt", date(2025, 1, 15), date(2025, 1, 25))
    assert record.data_start_date == date(2025, 1, 10)
    assert record.data_end_date == date(2025, 1, 25)

    tracker.mark_syncing("acme", "yt")
    record = tracker.mark_success("acme", "yt")
    assert record.data_end_date == date(2025, 1, 25)


def test_ensure_rows_is_idempotent(tracker):
    assert tracker.ensure_rows(["acme", "globex"]) == 8
    assert tracker.ensure_rows(["acme", "globex"]) == 0
    assert len(tracker.list_statuses(["acme"])) == 4


def test_oldest_success_requires_every_platform(tracker, clock):
    tracker.ensure_rows(["acme"], platforms=["ga", "li"])
    tracker.mark_syncing("acme", "ga")
    tracker.mark_success("acme", "ga")
    assert tracker.oldest_success("acme") is None

    clock.advance(hours=1)
    tracker.mark_syncing("acme", "li")
    tracker.mark_success("acme", "li")
    assert tracker.oldest_success("acme") == clock() - timedelta(hours=1)


# ---------------------------------------------------------------------------
# Health classification
# ---------------------------------------------------------------------------

NOW = datetime(2025, 3, 1, 12, 0, 0)


def test_classify_health_states():
    assert classify_health(None, NOW) == "never_synced"
    assert classify_health(SyncStatusRecord("acme", "ga", state="syncing"), NOW) == "syncing"
    assert classify_health(SyncStatusRecord("acme", "ga", state="error"), NOW) == "error"
    assert classify_health(SyncStatusRecord("acme", "ga", state="idle"), NOW) == "never_synced"


def test_classify_health_ok_window():
    recent = SyncStatusRecord("acme", "ga", state="success", last_success_at=NOW - timedelta(hours=48))
    old = SyncStatusRecord("acme", "ga", state="success", last_success_at=NOW - timedelta(hours=48, seconds=1))
    assert classify_health(recent, NOW) == "ok"
    assert classify_health(old, NOW) == "stale"
