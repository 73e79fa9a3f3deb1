"""
Cache resolver tier order, write-back and background refresh triggers.
"""
from datetime import date

import pytest

from conftest import FakeClient, daily_rows, run, seed_company
from marketing_hub.exceptions import NoIntegrationsConfigured, ProviderError, TotalResolutionFailure, TransientFetchError
from marketing_hub.services.cache_resolver import CacheResolver
from marketing_hub.services.company_directory import CompanyDirectory
from marketing_hub.services.metric_aggregator import MetricBundle, build_platform_section
from marketing_hub.services.normalized_storage import NormalizedStorage
from marketing_hub.services.point_cache import PointCacheStore
from marketing_hub.services.refresh_queue import RefreshQueue

START = date(2025, 1, 30)
END = date(2025, 3, 1)


class Harness:
    """Resolver wired to an in-memory database with a recording refresh queue"""

    def __init__(self, session_factory, clock, clients, fetch_timeout_seconds=5.0):
        self.clients = clients
        self.storage = NormalizedStorage(session_factory)
        self.cache = PointCacheStore(session_factory, clock=clock)
        self.refreshed = []
        self.queue = RefreshQueue(self._record_refresh)
        self.resolver = CacheResolver(
            self.storage,
            self.cache,
            CompanyDirectory(session_factory),
            clients,
            self.queue,
            fetch_timeout_seconds=fetch_timeout_seconds,
            clock=clock,
        )

    async def _record_refresh(self, company_id, start, end):
        self.refreshed.append((company_id, start, end))

    def resolve(self, company_id, start=START, end=END):
        async def _scenario():
            try:
                return await self.resolver.resolve(company_id, start, end)
            finally:
                await self.queue.join()
                await self.queue.stop()
        return run(_scenario())

    def cache_ga(self, company_id, users=100, kind="snapshot"):
        section = build_platform_section("ga", daily_rows("ga", START, END, total_users=users))
        bundle = MetricBundle(company_id=company_id, range_start=START, range_end=END, platforms={"ga": section})
        return self.cache.put_bundle(bundle, kind=kind)


@pytest.fixture
def harness(session_factory, clock, fake_clients):
    return Harness(session_factory, clock, fake_clients)


# ---------------------------------------------------------------------------
# Tier order
# ---------------------------------------------------------------------------

def test_normalized_storage_short_circuits(harness, session_factory):
    seed_company(session_factory, "acme", ["ga"])
    harness.storage.upsert_daily_rows("acme", "ga", daily_rows("ga", START, END))

    bundle = harness.resolve("acme")

    assert bundle.sources["ga"] == "normalized"
    assert bundle.platforms["ga"]["metrics"]["total_users"] == 100 * 31
    assert harness.clients["ga"].metrics_calls == 0
    assert harness.refreshed == []


def test_fresh_cache_entry_served_without_refresh(harness, session_factory):
    seed_company(session_factory, "acme", ["ga"])
    harness.cache_ga("acme", users=7)

    bundle = harness.resolve("acme")

    assert bundle.sources["ga"] == "point_cache"
    assert bundle.platforms["ga"]["metrics"]["total_users"] == 7 * 31
    assert harness.clients["ga"].metrics_calls == 0
    assert harness.refreshed == []


def test_stale_cache_entry_served_and_refresh_queued(harness, session_factory, clock):
    seed_company(session_factory, "acme", ["ga"])
    harness.cache_ga("acme")
    clock.advance(hours=13)

    bundle = harness.resolve("acme")

    assert bundle.sources["ga"] == "point_cache"
    assert harness.clients["ga"].metrics_calls == 0
    assert harness.refreshed == [("acme", START, END)]


def test_expired_entry_served_from_legacy_tier(harness, session_factory, clock):
    seed_company(session_factory, "acme", ["ga"])
    harness.cache_ga("acme")
    clock.advance(days=3)

    bundle = harness.resolve("acme")

    assert bundle.sources["ga"] == "stale_cache"
    assert harness.clients["ga"].metrics_calls == 0
    assert harness.refreshed == [("acme", START, END)]


def test_live_fetch_writes_back_point_entry(harness, session_factory):
    seed_company(session_factory, "acme", ["ga"])

    first = harness.resolve("acme")
    assert first.sources["ga"] == "live"
    assert harness.clients["ga"].metrics_calls == 1
    assert harness.cache.get("acme", START, END, kind="point") is not None

    second = harness.resolve("acme")
    assert second.sources["ga"] == "point_cache"
    assert harness.clients["ga"].metrics_calls == 1


def test_live_write_back_keeps_cached_sections(harness, session_factory, clock):
    """A platform fetched live later joins the entry instead of replacing it."""
    seed_company(session_factory, "acme", ["ga", "gsc"])
    harness.clients["gsc"].error = TransientFetchError("gsc", "HTTP 503", 503)

    first = harness.resolve("acme")
    assert first.sources == {"ga": "live"}
    written_at = harness.cache.get("acme", START, END, kind="point").entry.written_at

    harness.clients["gsc"].error = None
    clock.advance(minutes=10)
    second = harness.resolve("acme")
    assert second.sources == {"ga": "point_cache", "gsc": "live"}

    third = harness.resolve("acme")
    assert third.sources == {"ga": "point_cache", "gsc": "point_cache"}
    assert third.errors == {}
    assert harness.clients["ga"].metrics_calls == 1
    assert harness.clients["gsc"].metrics_calls == 2

    entry = harness.cache.get("acme", START, END, kind="point").entry
    assert entry.payload["platforms"]["ga"] is not None
    assert entry.payload["platforms"]["gsc"] is not None
    assert "gsc" not in entry.payload["errors"]
    assert entry.written_at == written_at
    assert harness.refreshed == []


# ---------------------------------------------------------------------------
# Partial data
# ---------------------------------------------------------------------------

def test_unmapped_platforms_are_absent_not_errors(harness, session_factory):
    seed_company(session_factory, "acme", ["ga"])

    bundle = harness.resolve("acme")

    assert bundle.platforms["ga"] is not None
    assert bundle.platforms["gsc"] is None
    assert bundle.platforms["yt"] is None
    assert bundle.platforms["li"] is None
    assert bundle.errors == {}
    for platform in ("gsc", "yt", "li"):
        assert harness.clients[platform].metrics_calls == 0
    assert harness.refreshed == []


def test_one_platform_failing_keeps_the_others(session_factory, clock, fake_clients):
    fake_clients["li"] = FakeClient("li", error=ProviderError("li", "forbidden", 403))
    harness = Harness(session_factory, clock, fake_clients)
    seed_company(session_factory, "acme", ["ga", "li"])

    bundle = harness.resolve("acme")

    assert bundle.platforms["ga"] is not None
    assert bundle.platforms["li"] is None
    assert "forbidden" in bundle.errors["li"]

    entry = harness.cache.get("acme", START, END, kind="point").entry
    assert entry.payload["platforms"]["li"] is None
    assert "li" in entry.payload["errors"]


def test_cached_errors_reported_for_missing_platforms(harness, session_factory):
    seed_company(session_factory, "acme", ["ga", "li"])
    section = build_platform_section("ga", daily_rows("ga", START, END))
    harness.cache.put_bundle(MetricBundle(
        company_id="acme", range_start=START, range_end=END,
        platforms={"ga": section}, errors={"li": "li: HTTP 403"},
    ), kind="snapshot")
    harness.clients["li"].error = ProviderError("li", "still forbidden", 403)

    bundle = harness.resolve("acme")

    assert bundle.sources["ga"] == "point_cache"
    assert harness.clients["li"].metrics_calls == 1
    assert "still forbidden" in bundle.errors["li"]


def test_cached_data_outlives_mapping(harness, session_factory):
    seed_company(session_factory, "acme", [])
    harness.cache_ga("acme")

    bundle = harness.resolve("acme")

    assert bundle.sources["ga"] == "point_cache"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_no_integrations(harness, session_factory):
    seed_company(session_factory, "acme", [])
    with pytest.raises(NoIntegrationsConfigured):
        harness.resolve("acme")


def test_total_failure_carries_platform_errors(session_factory, clock, fake_clients):
    fake_clients["ga"] = FakeClient("ga", error=TransientFetchError("ga", "HTTP 503", 503))
    harness = Harness(session_factory, clock, fake_clients)
    seed_company(session_factory, "acme", ["ga"])

    with pytest.raises(TotalResolutionFailure) as exc_info:
        harness.resolve("acme")
    assert "HTTP 503" in exc_info.value.errors["ga"]
    assert harness.cache.get("acme", START, END, kind="point") is None


def test_live_fetch_timeout(session_factory, clock, fake_clients):
    fake_clients["ga"] = FakeClient("ga", delay=1.0)
    harness = Harness(session_factory, clock, fake_clients, fetch_timeout_seconds=0.05)
    seed_company(session_factory, "acme", ["ga"])

    with pytest.raises(TotalResolutionFailure) as exc_info:
        harness.resolve("acme")
    assert "timed out" in exc_info.value.errors["ga"]


def test_inverted_range_rejected(harness, session_factory):
    seed_company(session_factory, "acme", ["ga"])
    with pytest.raises(ValueError):
        harness.resolve("acme", start=END, end=START)
