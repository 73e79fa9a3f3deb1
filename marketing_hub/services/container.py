"""
Service wiring

One set of long-lived service objects per process, shared by the API
routers and the scheduler jobs.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from marketing_hub.connectors import build_provider_clients
from marketing_hub.connectors.base import ProviderClient
from marketing_hub.models.base import SessionLocal
from marketing_hub.services.cache_resolver import CacheResolver
from marketing_hub.services.company_directory import CompanyDirectory
from marketing_hub.services.normalized_storage import NormalizedStorage
from marketing_hub.services.point_cache import PointCacheStore
from marketing_hub.services.portfolio_service import PortfolioService
from marketing_hub.services.rate_limiter import AdminRateLimiter
from marketing_hub.services.refresh_queue import RefreshQueue
from marketing_hub.services.sync_orchestrator import SyncOrchestrator
from marketing_hub.services.sync_status_tracker import SyncStatusTracker
from marketing_hub.services.token_store import TokenStore


@dataclass
class Services:
    directory: CompanyDirectory
    storage: NormalizedStorage
    point_cache: PointCacheStore
    tracker: SyncStatusTracker
    orchestrator: SyncOrchestrator
    refresh_queue: RefreshQueue
    resolver: CacheResolver
    portfolio: PortfolioService
    rate_limiter: AdminRateLimiter


def build_services(session_factory=SessionLocal, clients: Optional[Dict[str, ProviderClient]] = None) -> Services:
    directory = CompanyDirectory(session_factory)
    storage = NormalizedStorage(session_factory)
    point_cache = PointCacheStore(session_factory)
    tracker = SyncStatusTracker(session_factory)
    clients = clients if clients is not None else build_provider_clients(TokenStore(session_factory))

    orchestrator = SyncOrchestrator(clients, point_cache, tracker, storage, directory)
    refresh_queue = RefreshQueue(orchestrator.refresh_company)
    resolver = CacheResolver(storage, point_cache, directory, clients, refresh_queue)
    portfolio = PortfolioService(resolver, directory, session_factory)

    return Services(
        directory=directory,
        storage=storage,
        point_cache=point_cache,
        tracker=tracker,
        orchestrator=orchestrator,
        refresh_queue=refresh_queue,
        resolver=resolver,
        portfolio=portfolio,
        rate_limiter=AdminRateLimiter(session_factory),
    )


@lru_cache()
def get_services() -> Services:
    """Process-wide services bound to the configured database"""
    return build_services()
