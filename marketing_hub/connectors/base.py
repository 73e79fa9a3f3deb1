"""
Base provider client for all analytics platforms
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from marketing_hub.services.metric_aggregator import build_platform_section
from marketing_hub.services.token_store import TokenStore, PLATFORM_PROVIDERS
from marketing_hub.utils.logger import log


@dataclass
class ProviderAccount:
    """One company's mapping onto a provider account"""
    company_id: str
    platform: str
    account_ref: str
    owner_user_id: Optional[str] = None


class ProviderClient(ABC):
    """
    Fetches one platform's data for a mapped account.

    Implementations must be safe to call concurrently and return empty
    results for missing data; they raise only on genuine fetch failures
    (httpx errors propagate for the caller to classify).
    """

    platform: str = ""
    request_timeout: float = 30.0

    def __init__(self, token_store: Optional[TokenStore] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token_store = token_store or TokenStore()
        self.transport = transport

    @property
    def provider(self) -> str:
        return PLATFORM_PROVIDERS[self.platform]

    def _headers(self, account: ProviderAccount) -> Dict[str, str]:
        token = self.token_store.get_access_token(account.owner_user_id, self.provider)
        return {"Authorization": f"Bearer {token}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.request_timeout, transport=self.transport)

    async def _get_json(self, account: ProviderAccount, url: str, params: Optional[Dict[str, Any]] = None,
                        headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        request_headers = self._headers(account)
        request_headers.update(headers or {})
        async with self._client() as client:
            response = await client.get(url, params=params, headers=request_headers)
            if response.status_code != 200:
                log.error(f"[{self.platform}] GET {url} failed: {response.status_code} - {response.text[:300]}")
            response.raise_for_status()
            return response.json()

    async def _post_json(self, account: ProviderAccount, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        request_headers = self._headers(account)
        request_headers["Content-Type"] = "application/json"
        async with self._client() as client:
            response = await client.post(url, json=body, headers=request_headers)
            if response.status_code != 200:
                log.error(f"[{self.platform}] POST {url} failed: {response.status_code} - {response.text[:300]}")
            response.raise_for_status()
            return response.json()

    @abstractmethod
    async def fetch_daily_rows(self, account: ProviderAccount, start: date, end: date) -> List[Dict[str, Any]]:
        """Per-day rows in the normalized table shape ('date' as ISO string)"""
        pass

    async def fetch_channel_rows(self, account: ProviderAccount, start: date, end: date) -> List[Dict[str, Any]]:
        return []

    async def fetch_snapshot(self, account: ProviderAccount, start: date, end: date) -> Optional[Dict[str, Any]]:
        return None

    async def fetch_metrics(
        self,
        account: ProviderAccount,
        start: date,
        end: date,
        prev_start: date,
        prev_end: date,
    ) -> Optional[Dict[str, Any]]:
        """Complete platform section for [start, end] with previous-period comparison"""
        current, previous, snapshot, channels = await asyncio.gather(
            self.fetch_daily_rows(account, start, end),
            self.fetch_daily_rows(account, prev_start, prev_end),
            self.fetch_snapshot(account, start, end),
            self.fetch_channel_rows(account, start, end),
        )
        log.info(f"[{self.platform}] {account.company_id}: {len(current)} days "
                 f"({len(previous)} previous) for {start}..{end}")
        return build_platform_section(self.platform, current, previous, snapshot, channels)
