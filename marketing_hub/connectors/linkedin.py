"""
LinkedIn organization page client (LinkedIn Marketing REST API)

Page statistics, follower gains and share statistics are three separate
time-bound endpoints; daily rows are their per-day merge.
"""
import asyncio
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from marketing_hub.config import get_settings
from marketing_hub.connectors.base import ProviderClient, ProviderAccount

LINKEDIN_API_BASE = "https://api.linkedin.com/rest"

DEMOGRAPHIC_FACETS = {
    "industry_demographics": ("followerCountsByIndustry", "industry"),
    "seniority_demographics": ("followerCountsBySeniority", "seniority"),
    "job_function_demographics": ("followerCountsByFunction", "function"),
    "company_size_demographics": ("followerCountsByStaffCountRange", "staffCountRange"),
}


def _epoch_ms(day: date) -> int:
    return int(datetime.combine(day, time.min, tzinfo=timezone.utc).timestamp() * 1000)


def _day_from_ms(value: Optional[int]) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date().isoformat()


def _time_intervals(start: date, end: date) -> str:
    # LinkedIn's end bound is exclusive
    return (f"(timeGranularityType:DAY,timeRange:(start:{_epoch_ms(start)},"
            f"end:{_epoch_ms(end + timedelta(days=1))}))")


def _follower_count(counts: Dict[str, Any]) -> int:
    counts = counts or {}
    return int((counts.get("organicFollowerCount") or 0) + (counts.get("paidFollowerCount") or 0))


class LinkedInClient(ProviderClient):
    """account_ref is the numeric organization id"""

    platform = "li"

    def _org_urn(self, account: ProviderAccount) -> str:
        return f"urn:li:organization:{account.account_ref}"

    async def _rest(self, account: ProviderAccount, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "X-Restli-Protocol-Version": "2.0.0",
            "LinkedIn-Version": get_settings().linkedin_api_version,
        }
        return await self._get_json(account, f"{LINKEDIN_API_BASE}{endpoint}", params=params, headers=headers)

    async def fetch_daily_rows(self, account: ProviderAccount, start: date, end: date) -> List[Dict[str, Any]]:
        urn = self._org_urn(account)
        intervals = _time_intervals(start, end)

        pages, followers, shares = await asyncio.gather(
            self._rest(account, "/organizationPageStatistics", {
                "q": "organization", "organization": urn, "timeIntervals": intervals,
            }),
            self._rest(account, "/organizationalEntityFollowerStatistics", {
                "q": "organizationalEntity", "organizationalEntity": urn, "timeIntervals": intervals,
            }),
            self._rest(account, "/organizationalEntityShareStatistics", {
                "q": "organizationalEntity", "organizationalEntity": urn, "timeIntervals": intervals,
            }),
        )

        days: Dict[str, Dict[str, Any]] = {}

        def _day(element) -> Optional[Dict[str, Any]]:
            key = _day_from_ms((element.get("timeRange") or {}).get("start"))
            if key is None:
                return None
            return days.setdefault(key, {"date": key})

        for element in pages.get("elements") or []:
            row = _day(element)
            if row is None:
                continue
            views = ((element.get("totalPageStatistics") or {}).get("views") or {})
            row["desktop_visitors"] = int((views.get("allDesktopPageViews") or {}).get("pageViews") or 0)
            row["mobile_visitors"] = int((views.get("allMobilePageViews") or {}).get("pageViews") or 0)

        for element in followers.get("elements") or []:
            row = _day(element)
            if row is None:
                continue
            gains = element.get("followerGains") or {}
            row["organic_follower_gain"] = int(gains.get("organicFollowerGain") or 0)
            row["paid_follower_gain"] = int(gains.get("paidFollowerGain") or 0)

        for element in shares.get("elements") or []:
            row = _day(element)
            if row is None:
                continue
            stats = element.get("totalShareStatistics") or {}
            row["impressions"] = int(stats.get("impressionCount") or 0)
            row["clicks"] = int(stats.get("clickCount") or 0)
            row["reactions"] = int(stats.get("likeCount") or 0)
            row["comments"] = int(stats.get("commentCount") or 0)
            row["shares"] = int(stats.get("shareCount") or 0)

        return [days[key] for key in sorted(days)]

    async def fetch_snapshot(self, account: ProviderAccount, start: date, end: date) -> Optional[Dict[str, Any]]:
        urn = self._org_urn(account)
        network, lifetime = await asyncio.gather(
            self._rest(account, f"/networkSizes/{urn}", {"edgeType": "COMPANY_FOLLOWED_BY_MEMBER"}),
            self._rest(account, "/organizationalEntityFollowerStatistics", {
                "q": "organizationalEntity", "organizationalEntity": urn,
            }),
        )

        element = (lifetime.get("elements") or [{}])[0]
        snapshot: Dict[str, Any] = {
            "follower_metrics": {"total_followers": int(network.get("firstDegreeSize") or 0)},
            "data_source": "api",
        }
        for key, (facet, label) in DEMOGRAPHIC_FACETS.items():
            segments = [
                {"segment": item.get(label), "followers": _follower_count(item.get("followerCounts"))}
                for item in element.get(facet) or []
            ]
            segments.sort(key=lambda s: s["followers"], reverse=True)
            snapshot[key] = segments[:10]
        return snapshot
