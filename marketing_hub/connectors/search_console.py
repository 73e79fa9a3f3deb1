"""
Google Search Console client (Search Analytics API)
"""
import asyncio
from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from marketing_hub.connectors.base import ProviderClient, ProviderAccount
from marketing_hub.utils.dates import iso

GSC_API_BASE = "https://searchconsole.googleapis.com/webmasters/v3"


class SearchConsoleClient(ProviderClient):
    """account_ref is the verified site url (https://example.com/ or sc-domain:example.com)"""

    platform = "gsc"

    async def _query(self, account: ProviderAccount, start: date, end: date,
                     dimensions: List[str], row_limit: int = 1000) -> List[Dict[str, Any]]:
        url = f"{GSC_API_BASE}/sites/{quote(account.account_ref, safe='')}/searchAnalytics/query"
        body = {
            "startDate": iso(start),
            "endDate": iso(end),
            "dimensions": dimensions,
            "rowLimit": row_limit,
        }
        data = await self._post_json(account, url, body)
        return data.get("rows") or []

    async def fetch_daily_rows(self, account: ProviderAccount, start: date, end: date) -> List[Dict[str, Any]]:
        rows = []
        for row in await self._query(account, start, end, ["date"]):
            keys = row.get("keys") or []
            if not keys:
                continue
            rows.append({
                "date": keys[0],
                "impressions": int(row.get("impressions") or 0),
                "clicks": int(row.get("clicks") or 0),
                "ctr": float(row.get("ctr") or 0.0),
                "avg_position": float(row.get("position") or 0.0),
            })
        rows.sort(key=lambda r: r["date"])
        return rows

    async def fetch_snapshot(self, account: ProviderAccount, start: date, end: date) -> Optional[Dict[str, Any]]:
        queries, pages, countries, devices = await asyncio.gather(
            self._query(account, start, end, ["query"], row_limit=1000),
            self._query(account, start, end, ["page"], row_limit=1000),
            self._query(account, start, end, ["country"], row_limit=20),
            self._query(account, start, end, ["device"], row_limit=10),
        )

        def _top(rows, key_name, limit):
            ordered = sorted(rows, key=lambda r: r.get("clicks") or 0, reverse=True)[:limit]
            return [
                {
                    key_name: (r.get("keys") or [""])[0],
                    "clicks": int(r.get("clicks") or 0),
                    "impressions": int(r.get("impressions") or 0),
                    "ctr": float(r.get("ctr") or 0.0),
                    "position": float(r.get("position") or 0.0),
                }
                for r in ordered
            ]

        return {
            "keywords": _top(queries, "keyword", 20),
            "landing_pages": _top(pages, "page", 20),
            "countries": _top(countries, "country", 20),
            "devices": _top(devices, "device", 10),
            "total_keywords": len(queries),
            "total_indexed_pages": len(pages),
        }
