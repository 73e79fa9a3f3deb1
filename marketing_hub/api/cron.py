"""
Cron trigger endpoints

For external schedulers (e.g. a platform cron hitting the service). Each
runs synchronously and returns the run report. All require the cron secret.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketing_hub.api.deps import parse_ids, services, verify_cron_secret
from marketing_hub.services.container import Services

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.get("/refresh-cache")
async def cron_refresh_cache(
    company_ids: Optional[str] = Query(None, description="Comma separated company ids"),
    svc: Services = Depends(services),
):
    report = await svc.orchestrator.refresh_cache(parse_ids(company_ids))
    return report.to_dict()


@router.get("/sync-analytics")
async def cron_sync_analytics(
    company_ids: Optional[str] = Query(None, description="Comma separated company ids"),
    svc: Services = Depends(services),
):
    report = await svc.orchestrator.sync_analytics(parse_ids(company_ids))
    return report.to_dict()


@router.get("/portfolio-cache")
async def cron_portfolio_cache(
    user_ids: Optional[str] = Query(None, description="Comma separated user ids"),
    svc: Services = Depends(services),
):
    report = await svc.portfolio.rebuild_all(parse_ids(user_ids))
    return report.to_dict()


@router.get("/sweep-cache")
async def cron_sweep_cache(svc: Services = Depends(services)):
    """Retention sweep of the point cache and normalized tables"""
    return {
        "cache_entries_removed": svc.orchestrator.sweep_cache(),
        "normalized_rows_removed": svc.orchestrator.cleanup(),
    }
