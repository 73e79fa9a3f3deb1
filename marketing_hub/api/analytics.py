"""
Analytics read endpoints

Company analytics go through the cache resolver; the portfolio view fans
out over every company the caller can see.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from marketing_hub.api.deps import current_user, services
from marketing_hub.exceptions import NoIntegrationsConfigured, TotalResolutionFailure
from marketing_hub.services.container import Services
from marketing_hub.utils.dates import to_date
from marketing_hub.utils.logger import log

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _parse_range(start_date: Optional[str], end_date: Optional[str]):
    try:
        start = to_date(start_date) if start_date else None
        end = to_date(end_date) if end_date else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid date: {e}")
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")
    return start, end


@router.get("/portfolio")
async def get_portfolio(
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to 30 days back through today"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    refresh: bool = Query(False, description="Bypass the daily portfolio cache"),
    user_id: str = Depends(current_user),
    svc: Services = Depends(services),
):
    """All companies visible to the caller with headline totals"""
    start, end = _parse_range(start_date, end_date)
    if (start is None) != (end is None):
        default_start, default_end = svc.portfolio.default_range()
        start = start or default_start
        end = end or default_end
        if start > end:
            raise HTTPException(status_code=400, detail="start_date must not be after end_date")
    return await svc.portfolio.resolve_portfolio(user_id, start, end, force_refresh=refresh)


@router.get("/{company_id}")
async def get_company_analytics(
    company_id: str,
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to 30 days back through today"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    user_id: str = Depends(current_user),
    svc: Services = Depends(services),
):
    """One company's analytics bundle for a date range"""
    if svc.directory.get_company(company_id) is None:
        raise HTTPException(status_code=404, detail=f"Company {company_id} not found")
    if not svc.directory.user_can_access(user_id, company_id):
        raise HTTPException(status_code=403, detail="No access to this company")

    start, end = _parse_range(start_date, end_date)
    default_start, default_end = svc.portfolio.default_range()
    start: date = start or default_start
    end: date = end or default_end

    try:
        bundle = await svc.resolver.resolve(company_id, start, end)
    except NoIntegrationsConfigured as e:
        raise HTTPException(status_code=404, detail={"error": str(e), "error_type": "no_integrations"})
    except TotalResolutionFailure as e:
        log.warning(f"[Analytics] No data for {company_id}: {e.errors}")
        raise HTTPException(status_code=404, detail={"error": str(e), "error_type": "no_data", "errors": e.errors})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return bundle.to_dict()
