"""
Portfolio Aggregator

A user's portfolio is every company they can see, each resolved through the
cache resolver concurrently, plus headline totals. The default range is
cached per (user, day) and rebuilt nightly.
"""
import asyncio
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from marketing_hub.config import get_settings
from marketing_hub.exceptions import NoIntegrationsConfigured, TotalResolutionFailure
from marketing_hub.models.analytics_cache import PortfolioCache
from marketing_hub.models.base import SessionLocal, session_scope
from marketing_hub.services.batch_scheduler import BatchScheduler, RunReport
from marketing_hub.services.cache_resolver import CacheResolver
from marketing_hub.services.company_directory import CompanyDirectory
from marketing_hub.services.metric_aggregator import MetricBundle, aggregate_portfolio_metrics
from marketing_hub.utils.dates import default_range, iso
from marketing_hub.utils.logger import log


class PortfolioService:

    def __init__(
        self,
        resolver: CacheResolver,
        directory: CompanyDirectory,
        session_factory=SessionLocal,
        scheduler: Optional[BatchScheduler] = None,
        company_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        settings = get_settings()
        self.resolver = resolver
        self.directory = directory
        self.session_factory = session_factory
        self.scheduler = scheduler or BatchScheduler()
        # Outer limit sits above the resolver's own per-fetch timeout
        self.company_timeout_seconds = (
            company_timeout_seconds if company_timeout_seconds is not None
            else resolver.fetch_timeout_seconds + settings.company_timeout_margin_seconds
        )
        self.max_age = timedelta(hours=settings.portfolio_cache_max_age_hours)
        self.default_range_days = settings.default_range_days
        self.clock = clock

    def default_range(self):
        return default_range(self.clock().date(), self.default_range_days)

    # ------------------------------------------------------------------
    # Portfolio cache table
    # ------------------------------------------------------------------

    def read_cache(self, user_id: str, cache_date: date) -> Optional[Dict[str, Any]]:
        """Cached portfolio if written within the max age, else None"""
        with session_scope(self.session_factory) as db:
            row = db.query(PortfolioCache).filter(
                PortfolioCache.user_id == user_id,
                PortfolioCache.cache_date == cache_date,
            ).first()
            if row is None:
                return None
            if self.clock() - row.updated_at > self.max_age:
                log.info(f"[Portfolio] Cache is stale for user {user_id}")
                return None
            return {
                "companies": row.companies_data,
                "aggregate_metrics": row.aggregate_metrics,
                "cached": True,
                "cache_date": iso(cache_date),
            }

    def write_cache(self, user_id: str, cache_date: date, companies: List[Dict[str, Any]],
                    aggregate_metrics: Dict[str, Any]) -> None:
        with session_scope(self.session_factory) as db:
            row = db.query(PortfolioCache).filter(
                PortfolioCache.user_id == user_id,
                PortfolioCache.cache_date == cache_date,
            ).first()
            if row is None:
                row = PortfolioCache(user_id=user_id, cache_date=cache_date)
                db.add(row)
            row.companies_data = companies
            row.aggregate_metrics = aggregate_metrics
            row.updated_at = self.clock()

    def clear_cache(self, user_id: Optional[str] = None) -> int:
        with session_scope(self.session_factory) as db:
            query = db.query(PortfolioCache)
            if user_id is not None:
                query = query.filter(PortfolioCache.user_id == user_id)
            return query.delete(synchronize_session=False)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _company_entry(self, company: Dict[str, Any], start: date, end: date):
        entry = dict(company)
        entry["analytics"] = None
        bundle = None
        try:
            bundle = await asyncio.wait_for(
                self.resolver.resolve(company["id"], start, end),
                timeout=self.company_timeout_seconds,
            )
            entry["analytics"] = bundle.to_dict()
        except NoIntegrationsConfigured as e:
            entry["error"] = str(e)
            entry["error_type"] = "no_integrations"
        except TotalResolutionFailure as e:
            entry["error"] = str(e)
            entry["error_type"] = "no_data"
        except asyncio.TimeoutError:
            log.warning(f"[Portfolio] Timeout resolving company {company['id']}")
            entry["error"] = f"Timed out after {self.company_timeout_seconds}s"
            entry["error_type"] = "timeout"
        except Exception as e:
            log.error(f"[Portfolio] Failed to resolve company {company['id']}: {e}")
            entry["error"] = str(e)
            entry["error_type"] = "error"
        return entry, bundle

    async def resolve_portfolio(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        default_start, default_end = self.default_range()
        start = start or default_start
        end = end or default_end
        is_default = (start, end) == (default_start, default_end)
        cache_date = default_end

        if is_default and not force_refresh:
            cached = self.read_cache(user_id, cache_date)
            if cached is not None:
                log.info(f"[Portfolio] Serving cached portfolio for user {user_id}")
                return cached

        companies = self.directory.list_user_companies(user_id)
        log.info(f"[Portfolio] Resolving {len(companies)} companies for user {user_id}, {start}..{end}")

        started = self.clock()
        results = await asyncio.gather(*(self._company_entry(c, start, end) for c in companies))
        entries = [entry for entry, _ in results]
        bundles: List[MetricBundle] = [bundle for _, bundle in results if bundle is not None]
        aggregate = aggregate_portfolio_metrics(bundles)
        log.info(f"[Portfolio] Resolved {len(bundles)}/{len(companies)} companies "
                 f"in {(self.clock() - started).total_seconds():.1f}s")

        if is_default and companies:
            self.write_cache(user_id, cache_date, entries, aggregate)

        return {
            "companies": entries,
            "aggregate_metrics": aggregate,
            "cached": False,
            "cache_date": iso(cache_date) if is_default else None,
        }

    async def rebuild_all(self, user_ids: Optional[List[str]] = None) -> RunReport:
        """Nightly rebuild of every user's default-range portfolio"""
        users = list(user_ids) if user_ids else self.directory.list_users_with_companies()

        async def _worker(user_id: str):
            result = await self.resolve_portfolio(user_id, force_refresh=True)
            return {"companies": len(result["companies"])}

        return await self.scheduler.run(users, _worker, item_id=str, name="portfolio-cache")
