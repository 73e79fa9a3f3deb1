"""
Point Cache Store

Assembled metric bundles keyed by (company, exact date range, kind), each
with an explicit expiry. Entries are replaced, never updated in place.

Freshness, relative to now:
- fresh:   age < cache_fresh_hours
- stale:   fresh threshold <= age, and now <= expires_at
- expired: past expires_at; never returned by get(). get_stale() still
           serves these for cache_stale_grace_days as the legacy tier.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from marketing_hub.config import get_settings
from marketing_hub.models.analytics_cache import AnalyticsCache
from marketing_hub.models.base import SessionLocal, session_scope
from marketing_hub.services.metric_aggregator import MetricBundle
from marketing_hub.utils.logger import log

FRESH = "fresh"
STALE = "stale"
EXPIRED = "expired"

CACHE_KINDS = ("point", "snapshot")


@dataclass
class CacheEntry:
    company_id: str
    range_start: date
    range_end: date
    kind: str
    payload: Dict[str, Any]
    written_at: datetime
    expires_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.written_at

    def bundle(self) -> MetricBundle:
        return MetricBundle.from_dict(self.payload)


@dataclass
class CacheLookup:
    """An entry plus its freshness class at lookup time"""
    entry: CacheEntry
    freshness: str
    age_seconds: float

    @property
    def is_fresh(self) -> bool:
        return self.freshness == FRESH


def _to_entry(row: AnalyticsCache) -> CacheEntry:
    return CacheEntry(
        company_id=row.company_id,
        range_start=row.range_start,
        range_end=row.range_end,
        kind=row.kind,
        payload=dict(row.payload or {}),
        written_at=row.written_at,
        expires_at=row.expires_at,
    )


class PointCacheStore:
    """Owns the analytics_cache table; callers go through get/put only"""

    def __init__(
        self,
        session_factory=SessionLocal,
        fresh_hours: Optional[float] = None,
        hard_expiry_hours: Optional[float] = None,
        stale_grace_days: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.fresh_after = timedelta(hours=fresh_hours if fresh_hours is not None else settings.cache_fresh_hours)
        self.hard_expiry = timedelta(
            hours=hard_expiry_hours if hard_expiry_hours is not None else settings.cache_hard_expiry_hours
        )
        self.stale_grace = timedelta(
            days=stale_grace_days if stale_grace_days is not None else settings.cache_stale_grace_days
        )
        self.clock = clock

    def classify_freshness(self, entry: CacheEntry, now: Optional[datetime] = None) -> str:
        now = now or self.clock()
        if now > entry.expires_at:
            return EXPIRED
        if entry.age(now) < self.fresh_after:
            return FRESH
        return STALE

    def _lookup(self, entry: CacheEntry, now: datetime, freshness: Optional[str] = None) -> CacheLookup:
        return CacheLookup(
            entry=entry,
            freshness=freshness or self.classify_freshness(entry, now),
            age_seconds=entry.age(now).total_seconds(),
        )

    def get(
        self,
        company_id: str,
        start: date,
        end: date,
        kind: str = "point",
        now: Optional[datetime] = None,
    ) -> Optional[CacheLookup]:
        """Entry for the exact key, or None if missing or expired"""
        now = now or self.clock()
        with session_scope(self.session_factory) as db:
            row = db.query(AnalyticsCache).filter(
                AnalyticsCache.company_id == company_id,
                AnalyticsCache.range_start == start,
                AnalyticsCache.range_end == end,
                AnalyticsCache.kind == kind,
            ).order_by(AnalyticsCache.written_at.desc()).first()
            entry = _to_entry(row) if row is not None else None

        if entry is None:
            return None

        lookup = self._lookup(entry, now)
        if lookup.freshness == EXPIRED:
            return None
        return lookup

    def get_stale(
        self,
        company_id: str,
        start: date,
        end: date,
        now: Optional[datetime] = None,
    ) -> List[CacheLookup]:
        """
        Legacy tier: entries of any kind for the exact range, including ones
        up to stale_grace past expiry. Most recently written first.
        """
        now = now or self.clock()
        with session_scope(self.session_factory) as db:
            rows = db.query(AnalyticsCache).filter(
                AnalyticsCache.company_id == company_id,
                AnalyticsCache.range_start == start,
                AnalyticsCache.range_end == end,
                AnalyticsCache.expires_at >= now - self.stale_grace,
            ).order_by(AnalyticsCache.written_at.desc()).all()
            entries = [_to_entry(r) for r in rows]

        lookups = []
        for entry in entries:
            freshness = self.classify_freshness(entry, now)
            lookups.append(self._lookup(entry, now, STALE if freshness == EXPIRED else freshness))
        return lookups

    def put(self, entry: CacheEntry) -> CacheEntry:
        """Replace whatever is stored under the entry's key"""
        with session_scope(self.session_factory) as db:
            db.query(AnalyticsCache).filter(
                AnalyticsCache.company_id == entry.company_id,
                AnalyticsCache.range_start == entry.range_start,
                AnalyticsCache.range_end == entry.range_end,
                AnalyticsCache.kind == entry.kind,
            ).delete(synchronize_session=False)
            db.add(AnalyticsCache(
                company_id=entry.company_id,
                range_start=entry.range_start,
                range_end=entry.range_end,
                kind=entry.kind,
                payload=entry.payload,
                written_at=entry.written_at,
                expires_at=entry.expires_at,
            ))
        return entry

    def put_bundle(self, bundle: MetricBundle, kind: str = "point", now: Optional[datetime] = None) -> CacheEntry:
        if kind not in CACHE_KINDS:
            raise ValueError(f"Unknown cache kind: {kind}")
        now = now or self.clock()
        entry = CacheEntry(
            company_id=bundle.company_id,
            range_start=bundle.range_start,
            range_end=bundle.range_end,
            kind=kind,
            payload=bundle.to_payload(),
            written_at=now,
            expires_at=now + self.hard_expiry,
        )
        return self.put(entry)

    def merge_bundle(self, bundle: MetricBundle, kind: str = "point", now: Optional[datetime] = None) -> CacheEntry:
        """
        Write the bundle's sections over the unexpired entry under the same key.

        Sections the bundle lacks are kept from the existing entry, and so is
        its written_at: merged-in data never looks fresher than the oldest
        section in the entry. With no unexpired entry this is put_bundle().
        """
        now = now or self.clock()
        existing = self.get(bundle.company_id, bundle.range_start, bundle.range_end, kind=kind, now=now)
        if existing is None:
            return self.put_bundle(bundle, kind=kind, now=now)

        merged = existing.entry.bundle()
        for platform, section in bundle.platforms.items():
            if section is not None:
                merged.platforms[platform] = section
                merged.errors.pop(platform, None)
        for platform, error in bundle.errors.items():
            if merged.platforms.get(platform) is None:
                merged.errors[platform] = error

        written_at = existing.entry.written_at
        return self.put(CacheEntry(
            company_id=bundle.company_id,
            range_start=bundle.range_start,
            range_end=bundle.range_end,
            kind=kind,
            payload=merged.to_payload(),
            written_at=written_at,
            expires_at=written_at + self.hard_expiry,
        ))

    def sweep(self, older_than: datetime) -> int:
        """Delete entries written before older_than"""
        with session_scope(self.session_factory) as db:
            deleted = db.query(AnalyticsCache).filter(
                AnalyticsCache.written_at < older_than
            ).delete(synchronize_session=False)
        log.info(f"[Cache] Swept {deleted} cache entries written before {older_than.isoformat()}")
        return deleted

    def invalidate(self, company_id: Optional[str] = None) -> int:
        """Drop every entry for a company, or the whole cache"""
        with session_scope(self.session_factory) as db:
            query = db.query(AnalyticsCache)
            if company_id is not None:
                query = query.filter(AnalyticsCache.company_id == company_id)
            deleted = query.delete(synchronize_session=False)
        log.info(f"[Cache] Invalidated {deleted} cache entries"
                 f"{' for ' + company_id if company_id else ''}")
        return deleted
