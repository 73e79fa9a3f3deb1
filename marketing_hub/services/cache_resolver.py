"""
Cache Resolver

Resolves one company's analytics for a date range by walking a cost ladder,
per platform, stopping as soon as every wanted platform has data:

    1. normalized storage (daily rows + snapshot)
    2. point cache, unexpired entries (fresh or stale)
    3. point cache, legacy tier (up to the grace period past expiry)
    4. live fetch from the provider clients, in parallel, time-bounded

Wanted platforms are the company's mapped platforms, or all four when
nothing is mapped (cached data may outlive a mapping). Platforms nobody
could supply stay None. If any platform was served from a cache entry past
the freshness threshold, a background refresh is queued. Live sections are
merged into the `point` entry for the range, next to sections already there.
"""
import asyncio
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from marketing_hub.config import get_settings
from marketing_hub.connectors.base import ProviderAccount, ProviderClient
from marketing_hub.exceptions import NoIntegrationsConfigured, TotalResolutionFailure, classify_fetch_error
from marketing_hub.services.company_directory import CompanyDirectory
from marketing_hub.services.metric_aggregator import MetricBundle, PLATFORMS, build_platform_section
from marketing_hub.services.normalized_storage import NormalizedStorage
from marketing_hub.services.point_cache import CACHE_KINDS, CacheLookup, PointCacheStore
from marketing_hub.services.refresh_queue import RefreshQueue
from marketing_hub.utils.dates import previous_period
from marketing_hub.utils.logger import log

SOURCE_NORMALIZED = "normalized"
SOURCE_POINT_CACHE = "point_cache"
SOURCE_STALE_CACHE = "stale_cache"
SOURCE_LIVE = "live"


class CacheResolver:

    def __init__(
        self,
        storage: NormalizedStorage,
        point_cache: PointCacheStore,
        directory: CompanyDirectory,
        clients: Dict[str, ProviderClient],
        refresh_queue: Optional[RefreshQueue] = None,
        fetch_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.storage = storage
        self.point_cache = point_cache
        self.directory = directory
        self.clients = clients
        self.refresh_queue = refresh_queue
        self.fetch_timeout_seconds = (
            fetch_timeout_seconds if fetch_timeout_seconds is not None else get_settings().fetch_timeout_seconds
        )
        self.clock = clock

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _from_normalized(self, bundle: MetricBundle, wanted: List[str]) -> None:
        prev_start, prev_end = previous_period(bundle.range_start, bundle.range_end)
        for platform in wanted:
            rows = self.storage.query_daily_rows(bundle.company_id, platform, bundle.range_start, bundle.range_end)
            if not rows:
                continue
            previous = self.storage.query_daily_rows(bundle.company_id, platform, prev_start, prev_end)
            snapshot = self.storage.query_snapshot(bundle.company_id, platform, bundle.range_start, bundle.range_end)
            channels = (
                self.storage.query_channel_rows(bundle.company_id, bundle.range_start, bundle.range_end)
                if platform == "ga" else None
            )
            bundle.platforms[platform] = build_platform_section(platform, rows, previous, snapshot, channels)
            bundle.sources[platform] = SOURCE_NORMALIZED

    def _fill_from_lookups(
        self,
        bundle: MetricBundle,
        wanted: List[str],
        lookups: List[CacheLookup],
        source: str,
        cached_errors: Dict[str, str],
    ) -> bool:
        """Copy missing sections out of cache entries; True if any came from a non-fresh entry"""
        served_stale = False
        for lookup in lookups:
            payload = lookup.entry.payload or {}
            sections = payload.get("platforms") or {}
            for platform in bundle.missing_platforms(wanted):
                section = sections.get(platform)
                if section is None:
                    error = (payload.get("errors") or {}).get(platform)
                    if error:
                        cached_errors.setdefault(platform, error)
                    continue
                bundle.platforms[platform] = section
                bundle.sources[platform] = source
                if not lookup.is_fresh:
                    served_stale = True
        return served_stale

    async def _live_platform(self, account: ProviderAccount, start: date, end: date):
        prev_start, prev_end = previous_period(start, end)
        client = self.clients[account.platform]
        return await asyncio.wait_for(
            client.fetch_metrics(account, start, end, prev_start, prev_end),
            timeout=self.fetch_timeout_seconds,
        )

    async def _from_live(self, bundle: MetricBundle, accounts: List[ProviderAccount]) -> List[str]:
        """Fetch missing mapped platforms concurrently; returns platforms that produced data"""
        results = await asyncio.gather(
            *(self._live_platform(a, bundle.range_start, bundle.range_end) for a in accounts),
            return_exceptions=True,
        )
        fetched = []
        for account, result in zip(accounts, results):
            platform = account.platform
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                error = classify_fetch_error(platform, result)
                bundle.errors[platform] = str(error)
                log.warning(f"[Resolver] Live fetch failed for {bundle.company_id}/{platform}: {error}")
                continue
            if result is None:
                continue
            bundle.platforms[platform] = result
            bundle.sources[platform] = SOURCE_LIVE
            bundle.errors.pop(platform, None)
            fetched.append(platform)
        return fetched

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def resolve(self, company_id: str, start: date, end: date) -> MetricBundle:
        """
        Assemble the company's bundle for [start, end].

        Raises NoIntegrationsConfigured when the company has no mappings and
        nothing is stored for it, TotalResolutionFailure when no tier
        produced data for any platform.
        """
        if start > end:
            raise ValueError(f"start {start} is after end {end}")

        now = self.clock()
        mappings = {p: a for p, a in self.directory.get_mappings(company_id).items() if p in PLATFORMS}
        wanted = [p for p in PLATFORMS if p in mappings] if mappings else list(PLATFORMS)
        bundle = MetricBundle(company_id=company_id, range_start=start, range_end=end,
                              platforms={p: None for p in PLATFORMS})
        cached_errors: Dict[str, str] = {}
        needs_refresh = False

        # 1. normalized storage
        self._from_normalized(bundle, wanted)

        # 2. unexpired point cache entries, newest first
        if bundle.missing_platforms(wanted):
            lookups = [self.point_cache.get(company_id, start, end, kind=kind, now=now) for kind in CACHE_KINDS]
            lookups = sorted(
                (lookup for lookup in lookups if lookup is not None),
                key=lambda lookup: lookup.entry.written_at,
                reverse=True,
            )
            needs_refresh |= self._fill_from_lookups(bundle, wanted, lookups, SOURCE_POINT_CACHE, cached_errors)

        # 3. legacy tier
        if bundle.missing_platforms(wanted):
            lookups = self.point_cache.get_stale(company_id, start, end, now=now)
            needs_refresh |= self._fill_from_lookups(bundle, wanted, lookups, SOURCE_STALE_CACHE, cached_errors)

        # 4. live fetch
        live_accounts = [mappings[p] for p in bundle.missing_platforms(wanted) if p in mappings and p in self.clients]
        if live_accounts:
            log.info(f"[Resolver] Live fetch for {company_id}: {', '.join(a.platform for a in live_accounts)}")
            fetched = await self._from_live(bundle, live_accounts)
            if fetched:
                live_only = MetricBundle(
                    company_id=company_id,
                    range_start=start,
                    range_end=end,
                    platforms={p: (bundle.platforms[p] if p in fetched else None) for p in PLATFORMS},
                    errors={p: e for p, e in bundle.errors.items() if p not in fetched},
                )
                self.point_cache.merge_bundle(live_only, kind="point", now=now)

        for platform, error in cached_errors.items():
            if bundle.platforms.get(platform) is None:
                bundle.errors.setdefault(platform, error)

        if not bundle.has_data:
            if not mappings:
                raise NoIntegrationsConfigured(company_id)
            raise TotalResolutionFailure(company_id, bundle.errors)

        if needs_refresh and self.refresh_queue is not None:
            self.refresh_queue.submit(company_id, start, end)

        log.info(f"[Resolver] {company_id} {start}..{end}: "
                 + ", ".join(f"{p}={bundle.sources.get(p, 'none')}" for p in wanted))
        return bundle
