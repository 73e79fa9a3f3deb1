"""
Google Analytics 4 client (Analytics Data API v1beta)
"""
import asyncio
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from marketing_hub.connectors.base import ProviderClient, ProviderAccount
from marketing_hub.utils.dates import iso

GA4_API_BASE = "https://analyticsdata.googleapis.com/v1beta"

DAILY_METRICS = [
    ("totalUsers", "total_users", int),
    ("newUsers", "new_users", int),
    ("sessions", "sessions", int),
    ("screenPageViews", "page_views", int),
    ("engagedSessions", "engaged_sessions", int),
    ("averageSessionDuration", "avg_session_duration", float),
    ("bounceRate", "bounce_rate", float),
    ("keyEvents", "key_events", int),
    ("userKeyEventRate", "user_key_event_rate", float),
]

# sessionDefaultChannelGroup -> dashboard key
CHANNEL_GROUPS = {
    "Direct": "direct",
    "Paid Search": "paidSearch",
    "Organic Search": "organicSearch",
    "Paid Other": "paidOther",
    "Referral": "referral",
    "Cross-network": "crossNetwork",
    "Unassigned": "unassigned",
    "Organic Social": "organicSocial",
}


def _ga_date(value: str) -> str:
    """20250131 -> 2025-01-31"""
    return datetime.strptime(value, "%Y%m%d").date().isoformat()


def _cast(value: Optional[str], kind):
    if value in (None, ""):
        return kind(0)
    try:
        return kind(float(value))
    except (TypeError, ValueError):
        return kind(0)


def _rows(report: Dict[str, Any]) -> List[Dict[str, List[str]]]:
    """Flatten runReport rows into {'dims': [...], 'values': [...]}"""
    flattened = []
    for row in report.get("rows") or []:
        flattened.append({
            "dims": [d.get("value") for d in row.get("dimensionValues") or []],
            "values": [m.get("value") for m in row.get("metricValues") or []],
        })
    return flattened


class GA4Client(ProviderClient):
    """GA4 property reports; account_ref is the numeric property id"""

    platform = "ga"

    async def _run_report(self, account: ProviderAccount, start: date, end: date,
                          dimensions: List[str], metrics: List[str], limit: Optional[int] = None,
                          order_by_metric: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "dateRanges": [{"startDate": iso(start), "endDate": iso(end)}],
            "dimensions": [{"name": d} for d in dimensions],
            "metrics": [{"name": m} for m in metrics],
        }
        if limit:
            body["limit"] = limit
        if order_by_metric:
            body["orderBys"] = [{"metric": {"metricName": order_by_metric}, "desc": True}]
        url = f"{GA4_API_BASE}/properties/{account.account_ref}:runReport"
        return await self._post_json(account, url, body)

    async def fetch_daily_rows(self, account: ProviderAccount, start: date, end: date) -> List[Dict[str, Any]]:
        report = await self._run_report(account, start, end, ["date"], [m[0] for m in DAILY_METRICS])
        rows = []
        for row in _rows(report):
            daily = {"date": _ga_date(row["dims"][0])}
            for (_, field, kind), value in zip(DAILY_METRICS, row["values"]):
                daily[field] = _cast(value, kind)
            rows.append(daily)
        rows.sort(key=lambda r: r["date"])
        return rows

    async def fetch_channel_rows(self, account: ProviderAccount, start: date, end: date) -> List[Dict[str, Any]]:
        report = await self._run_report(
            account, start, end, ["date", "sessionDefaultChannelGroup"], ["sessions", "totalUsers"]
        )
        rows = []
        for row in _rows(report):
            channel = CHANNEL_GROUPS.get(row["dims"][1])
            if channel is None:
                continue
            rows.append({
                "date": _ga_date(row["dims"][0]),
                "channel": channel,
                "sessions": _cast(row["values"][0], int),
                "users": _cast(row["values"][1], int),
            })
        return rows

    async def fetch_snapshot(self, account: ProviderAccount, start: date, end: date) -> Optional[Dict[str, Any]]:
        (traffic, sources, landing, regions, devices, gender, age) = await asyncio.gather(
            self._run_report(account, start, end, ["sessionDefaultChannelGroup"], ["totalUsers"]),
            self._run_report(
                account, start, end, ["sessionSourceMedium"],
                ["totalUsers", "sessions", "screenPageViews", "keyEvents"], limit=10, order_by_metric="sessions",
            ),
            self._run_report(
                account, start, end, ["landingPagePlusQueryString"],
                ["totalUsers", "sessions", "bounceRate"], limit=10, order_by_metric="sessions",
            ),
            self._run_report(account, start, end, ["country"], ["totalUsers"], limit=10, order_by_metric="totalUsers"),
            self._run_report(account, start, end, ["deviceCategory"], ["totalUsers"]),
            self._run_report(account, start, end, ["userGender"], ["totalUsers"]),
            self._run_report(account, start, end, ["userAgeBracket"], ["totalUsers"]),
        )

        traffic_rows = _rows(traffic)
        total_users = sum(_cast(r["values"][0], int) for r in traffic_rows)

        def _share(rows):
            return [
                {
                    "name": r["dims"][0],
                    "users": _cast(r["values"][0], int),
                    "share": (_cast(r["values"][0], int) / total_users) if total_users else 0.0,
                }
                for r in rows
            ]

        return {
            "traffic_share": _share(traffic_rows),
            "source_performance": [
                {
                    "source": r["dims"][0],
                    "users": _cast(r["values"][0], int),
                    "sessions": _cast(r["values"][1], int),
                    "views": _cast(r["values"][2], int),
                    "key_events": _cast(r["values"][3], int),
                }
                for r in _rows(sources)
            ],
            "landing_pages": [
                {
                    "page": r["dims"][0],
                    "users": _cast(r["values"][0], int),
                    "sessions": _cast(r["values"][1], int),
                    "bounce_rate": _cast(r["values"][2], float),
                }
                for r in _rows(landing)
            ],
            "regions": [{"name": r["dims"][0], "users": _cast(r["values"][0], int)} for r in _rows(regions)],
            "devices": _share(_rows(devices)),
            "gender": _share(_rows(gender)),
            "age": _share(_rows(age)),
        }
