"""
Admin endpoints: sync status, manual refresh, cache invalidation
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from marketing_hub.api.deps import current_user, parse_ids, services
from marketing_hub.exceptions import RateLimitExceeded
from marketing_hub.services.container import Services
from marketing_hub.utils.logger import log

router = APIRouter(prefix="/admin", tags=["admin"])


async def _run_refresh(svc: Services, company_ids: Optional[List[str]]):
    """Background task: refresh the point cache and drop stale portfolios."""
    try:
        report = await svc.orchestrator.refresh_cache(company_ids)
        svc.portfolio.clear_cache()
        log.info(f"Manual refresh completed: {report.succeeded} ok, {report.failed} failed, {report.skipped} skipped")
    except Exception as e:
        log.error(f"Manual refresh error: {str(e)}")


@router.get("/sync-status")
async def get_sync_status(
    company_ids: Optional[str] = Query(None, description="Comma separated company ids"),
    user_id: str = Depends(current_user),
    svc: Services = Depends(services),
):
    """Per (company, platform) sync state with a health label"""
    now = datetime.utcnow()
    records = svc.tracker.list_statuses(parse_ids(company_ids))
    statuses = []
    for record in records:
        data = record.to_dict()
        data["health"] = svc.tracker.classify(record, now)
        statuses.append(data)

    summary = {}
    for status in statuses:
        summary[status["health"]] = summary.get(status["health"], 0) + 1

    return {
        "statuses": statuses,
        "summary": summary,
        "timestamp": now.isoformat(),
    }


@router.post("/trigger-sync")
async def trigger_sync(
    background_tasks: BackgroundTasks,
    company_ids: Optional[str] = Query(None, description="Comma separated company ids, default all"),
    user_id: str = Depends(current_user),
    svc: Services = Depends(services),
):
    """
    Refresh the point cache now (runs in background).
    Limited per admin to a few calls per hour.
    """
    ids = parse_ids(company_ids)
    try:
        remaining = svc.rate_limiter.check_and_record(user_id, "trigger_sync", {"company_ids": ids})
    except RateLimitExceeded as e:
        raise HTTPException(
            status_code=429,
            detail=str(e),
            headers={"Retry-After": str(e.retry_after_seconds)},
        )

    background_tasks.add_task(_run_refresh, svc, ids)
    return {
        "message": "Cache refresh started in background",
        "company_ids": ids,
        "remaining_this_hour": remaining,
    }


@router.post("/clear-cache")
async def clear_cache(
    company_id: Optional[str] = Query(None, description="Only this company, default all"),
    user_id: str = Depends(current_user),
    svc: Services = Depends(services),
):
    """Invalidate point cache entries and cached portfolios"""
    try:
        svc.rate_limiter.check_and_record(user_id, "clear_cache", {"company_id": company_id})
    except RateLimitExceeded as e:
        raise HTTPException(
            status_code=429,
            detail=str(e),
            headers={"Retry-After": str(e.retry_after_seconds)},
        )

    entries = svc.point_cache.invalidate(company_id)
    portfolios = svc.portfolio.clear_cache()
    log.info(f"[Admin] {user_id} cleared cache (company={company_id or 'all'}): "
             f"{entries} entries, {portfolios} portfolios")
    return {"entries_removed": entries, "portfolios_removed": portfolios}
