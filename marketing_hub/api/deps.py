"""
Shared request dependencies
"""
import hmac
from typing import List, Optional

from fastapi import Header, HTTPException, Query, Request

from marketing_hub.config import get_settings
from marketing_hub.services.container import Services, get_services
from marketing_hub.utils.logger import log


def services() -> Services:
    return get_services()


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, set by the upstream auth proxy"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


def verify_cron_secret(request: Request, secret: Optional[str] = Query(None)) -> None:
    """
    Cron endpoints accept the shared secret as ?secret= or as a Bearer token.
    An empty configured secret rejects every call.
    """
    expected = get_settings().cron_secret
    provided = secret
    if not provided:
        auth = request.headers.get("authorization", "")
        if auth.lower().startswith("bearer "):
            provided = auth[7:].strip()

    if not expected or not provided or not hmac.compare_digest(provided, expected):
        log.warning(f"[Cron] Rejected unauthorized call to {request.url.path}")
        raise HTTPException(status_code=401, detail="Unauthorized")


def parse_ids(company_ids: Optional[str]) -> Optional[List[str]]:
    """Comma separated ids; None when empty"""
    if not company_ids:
        return None
    ids = [c.strip() for c in company_ids.split(",") if c.strip()]
    return ids or None
