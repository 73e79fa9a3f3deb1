"""
Sync Orchestrator

Keeps the point cache and normalized storage warm:

- refresh_cache():   per company, fetch every mapped platform live and
                     write one `snapshot` cache entry for the range.
- refresh_company(): the single-company path, also used by the refresh
                     queue for background refreshes.
- sync_analytics():  incremental daily-row sync into normalized storage,
                     most-stale companies first, plus period snapshots and
                     retention cleanup.

Batching, pacing and the time budget come from BatchScheduler. Provider
calls carry a hard timeout and are never retried inline; the next run
retries, and consecutive failures are counted by the status tracker.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from marketing_hub.config import get_settings
from marketing_hub.connectors.base import ProviderAccount, ProviderClient
from marketing_hub.exceptions import MappingAbsentError, PartialPlatformFailure, classify_fetch_error
from marketing_hub.services.batch_scheduler import BatchScheduler, RunReport
from marketing_hub.services.company_directory import CompanyDirectory
from marketing_hub.services.metric_aggregator import MetricBundle, PLATFORMS
from marketing_hub.services.normalized_storage import NormalizedStorage
from marketing_hub.services.point_cache import PointCacheStore
from marketing_hub.services.sync_status_tracker import SyncStatusRecord, SyncStatusTracker
from marketing_hub.utils.dates import default_range, previous_period, standard_ranges
from marketing_hub.utils.logger import log


@dataclass
class PlatformOutcome:
    platform: str
    section: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    rows_written: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CompanySyncResult:
    """Value attached to a successful batch item"""
    company_id: str
    platforms: Dict[str, PlatformOutcome] = field(default_factory=dict)

    @property
    def errors(self) -> Dict[str, str]:
        return {p: o.error for p, o in self.platforms.items() if o.error}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_id": self.company_id,
            "succeeded": sorted(p for p, o in self.platforms.items() if o.ok),
            "errors": self.errors,
            "rows_written": {p: o.rows_written for p, o in self.platforms.items() if o.rows_written},
        }


def sync_start_date(
    record: Optional[SyncStatusRecord],
    yesterday: date,
    backfill_days: int = 90,
    resync_days: int = 3,
) -> date:
    """
    First day to fetch for an incremental sync.

    Day after the last synced day; when already current, re-sync the last
    few days to pick up provider-side corrections; first sync backfills.
    """
    if record is not None and record.data_end_date is not None:
        next_day = record.data_end_date + timedelta(days=1)
        if next_day > yesterday:
            return yesterday - timedelta(days=resync_days)
        return next_day
    return yesterday - timedelta(days=backfill_days)


def staleness_order(company_ids: Iterable[str], records: Iterable[SyncStatusRecord]) -> List[str]:
    """Companies ordered most stale first; never-synced companies lead"""
    oldest: Dict[str, Optional[datetime]] = {}
    for record in records:
        if record.last_success_at is None:
            continue
        current = oldest.get(record.company_id)
        if current is None or record.last_success_at < current:
            oldest[record.company_id] = record.last_success_at

    indexed = list(enumerate(company_ids))
    indexed.sort(key=lambda pair: (
        oldest.get(pair[1]) is not None,
        oldest.get(pair[1]) or datetime.min,
        pair[0],
    ))
    return [company_id for _, company_id in indexed]


class SyncOrchestrator:

    def __init__(
        self,
        clients: Dict[str, ProviderClient],
        point_cache: PointCacheStore,
        tracker: SyncStatusTracker,
        storage: NormalizedStorage,
        directory: CompanyDirectory,
        scheduler: Optional[BatchScheduler] = None,
        fetch_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        settings = get_settings()
        self.settings = settings
        self.clients = clients
        self.point_cache = point_cache
        self.tracker = tracker
        self.storage = storage
        self.directory = directory
        self.scheduler = scheduler or BatchScheduler()
        self.fetch_timeout_seconds = (
            fetch_timeout_seconds if fetch_timeout_seconds is not None else settings.fetch_timeout_seconds
        )
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    def _mappings(self, company_id: str) -> Dict[str, ProviderAccount]:
        mappings = {p: a for p, a in self.directory.get_mappings(company_id).items() if p in self.clients}
        if not mappings:
            raise MappingAbsentError(company_id)
        return mappings

    async def _bounded(self, coro):
        """Await a provider call under the hard timeout"""
        return await asyncio.wait_for(coro, timeout=self.fetch_timeout_seconds)

    # ------------------------------------------------------------------
    # Point cache refresh
    # ------------------------------------------------------------------

    async def _fetch_platform_section(
        self, account: ProviderAccount, start: date, end: date, prev_start: date, prev_end: date
    ) -> PlatformOutcome:
        platform = account.platform
        outcome = PlatformOutcome(platform=platform)
        try:
            self.tracker.mark_syncing(account.company_id, platform)
            outcome.section = await self._bounded(
                self.clients[platform].fetch_metrics(account, start, end, prev_start, prev_end)
            )
        except Exception as e:
            outcome.error = str(classify_fetch_error(platform, e))
            log.warning(f"[Sync] {account.company_id}/{platform} fetch failed: {outcome.error}")
        return outcome

    async def refresh_company(
        self,
        company_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> CompanySyncResult:
        """
        Fetch all mapped platforms for one company and write the bundle.

        Raises MappingAbsentError when nothing is mapped, and
        PartialPlatformFailure when every platform failed (nothing written).
        """
        if start is None or end is None:
            start, end = default_range(self._today(), self.settings.default_range_days)
        prev_start, prev_end = previous_period(start, end)
        mappings = self._mappings(company_id)

        outcomes = await asyncio.gather(*(
            self._fetch_platform_section(account, start, end, prev_start, prev_end)
            for account in mappings.values()
        ))
        result = CompanySyncResult(company_id=company_id, platforms={o.platform: o for o in outcomes})

        succeeded = [o for o in outcomes if o.ok]
        if succeeded:
            bundle = MetricBundle(
                company_id=company_id,
                range_start=start,
                range_end=end,
                platforms={p: None for p in PLATFORMS},
                errors=result.errors,
            )
            for outcome in succeeded:
                bundle.platforms[outcome.platform] = outcome.section
            # Only after every platform finished
            self.point_cache.put_bundle(bundle, kind="snapshot")

        for outcome in outcomes:
            if outcome.ok:
                self.tracker.mark_success(company_id, outcome.platform)
            else:
                self.tracker.mark_failure(company_id, outcome.platform, outcome.error)

        if not succeeded:
            raise PartialPlatformFailure(result.errors)

        if result.errors:
            log.warning(f"[Sync] {company_id} refreshed with errors: {result.errors}")
        else:
            log.info(f"[Sync] {company_id} refreshed ({', '.join(sorted(mappings))}) for {start}..{end}")
        return result

    async def refresh_cache(
        self,
        company_ids: Optional[List[str]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> RunReport:
        """Refresh the point cache for many companies in batches"""
        if start is None or end is None:
            start, end = default_range(self._today(), self.settings.default_range_days)
        ids = list(company_ids) if company_ids else self.directory.list_company_ids()
        log.info(f"[Sync] Refreshing cache for {len(ids)} companies, {start}..{end}")

        async def _worker(company_id: str):
            return await self.refresh_company(company_id, start, end)

        return await self.scheduler.run(ids, _worker, item_id=str, name="refresh-cache")

    # ------------------------------------------------------------------
    # Normalized storage sync
    # ------------------------------------------------------------------

    async def _sync_platform(
        self, account: ProviderAccount, record: Optional[SyncStatusRecord], yesterday: date
    ) -> PlatformOutcome:
        company_id, platform = account.company_id, account.platform
        client = self.clients[platform]
        outcome = PlatformOutcome(platform=platform)
        start = sync_start_date(
            record, yesterday, self.settings.sync_backfill_days, self.settings.sync_resync_days
        )

        try:
            self.tracker.mark_syncing(company_id, platform)

            rows = await self._bounded(client.fetch_daily_rows(account, start, yesterday))
            outcome.rows_written = self.storage.upsert_daily_rows(company_id, platform, rows)

            if platform == "ga":
                channels = await self._bounded(client.fetch_channel_rows(account, start, yesterday))
                self.storage.upsert_channel_rows(company_id, channels)

            for range_start, range_end in standard_ranges(yesterday):
                snapshot = await self._bounded(client.fetch_snapshot(account, range_start, range_end))
                if snapshot is not None:
                    self.storage.upsert_snapshot(
                        company_id, platform, range_start, range_end, snapshot, snapshot_date=self._today()
                    )
        except Exception as e:
            outcome.error = str(classify_fetch_error(platform, e))
            self.tracker.mark_failure(company_id, platform, outcome.error)
            log.error(f"[Sync] {company_id}/{platform} sync failed: {outcome.error}")
            return outcome

        self.tracker.mark_success(company_id, platform, start, yesterday)
        log.info(f"[Sync] {company_id}/{platform}: {outcome.rows_written} days ({start}..{yesterday})")
        return outcome

    async def sync_company(self, company_id: str, yesterday: Optional[date] = None) -> CompanySyncResult:
        yesterday = yesterday or (self._today() - timedelta(days=1))
        mappings = self._mappings(company_id)
        records = {r.platform: r for r in self.tracker.list_statuses([company_id])}

        outcomes = await asyncio.gather(*(
            self._sync_platform(account, records.get(platform), yesterday)
            for platform, account in mappings.items()
        ))
        result = CompanySyncResult(company_id=company_id, platforms={o.platform: o for o in outcomes})
        if not any(o.ok for o in outcomes):
            raise PartialPlatformFailure(result.errors)
        return result

    async def sync_analytics(self, company_ids: Optional[List[str]] = None) -> RunReport:
        """Incremental normalized sync for all (or the given) companies"""
        ids = list(company_ids) if company_ids else self.directory.list_company_ids()
        self.tracker.ensure_rows(ids)
        ordered = staleness_order(ids, self.tracker.list_statuses(ids))
        yesterday = self._today() - timedelta(days=1)

        log.info(f"[Sync] Starting analytics sync for {len(ordered)} companies through {yesterday}")

        async def _worker(company_id: str):
            return await self.sync_company(company_id, yesterday)

        report = await self.scheduler.run(ordered, _worker, item_id=str, name="sync-analytics")
        self.cleanup()
        return report

    def cleanup(self) -> Dict[str, int]:
        today = self._today()
        return self.storage.cleanup(
            daily_cutoff=today - timedelta(days=self.settings.daily_retention_days),
            snapshot_cutoff=today - timedelta(days=self.settings.snapshot_retention_days),
        )

    def sweep_cache(self) -> int:
        """Retention sweep of point cache entries"""
        return self.point_cache.sweep(self.clock() - timedelta(days=self.settings.cache_retention_days))
