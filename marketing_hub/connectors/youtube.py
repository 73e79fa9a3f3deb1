"""
YouTube client (YouTube Analytics API v2 + Data API v3 for titles)
"""
from datetime import date
from typing import Any, Dict, List, Optional

from marketing_hub.connectors.base import ProviderClient, ProviderAccount
from marketing_hub.utils.dates import iso

YT_ANALYTICS_URL = "https://youtubeanalytics.googleapis.com/v2/reports"
YT_DATA_API_BASE = "https://www.googleapis.com/youtube/v3"

DAILY_METRICS = (
    "views,estimatedMinutesWatched,shares,likes,dislikes,comments,"
    "subscribersGained,subscribersLost,averageViewDuration"
)


def _table(report: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Zip columnHeaders with each row"""
    headers = [h.get("name") for h in report.get("columnHeaders") or []]
    return [dict(zip(headers, row)) for row in report.get("rows") or []]


class YouTubeClient(ProviderClient):
    """account_ref is the channel id"""

    platform = "yt"

    async def _report(self, account: ProviderAccount, start: date, end: date, **params) -> Dict[str, Any]:
        query = {"ids": f"channel=={account.account_ref}", "startDate": iso(start), "endDate": iso(end)}
        query.update(params)
        return await self._get_json(account, YT_ANALYTICS_URL, params=query)

    async def fetch_daily_rows(self, account: ProviderAccount, start: date, end: date) -> List[Dict[str, Any]]:
        report = await self._report(account, start, end, metrics=DAILY_METRICS, dimensions="day", sort="day")
        rows = []
        for row in _table(report):
            rows.append({
                "date": row.get("day"),
                "views": int(row.get("views") or 0),
                "watch_time_seconds": int((row.get("estimatedMinutesWatched") or 0) * 60),
                "shares": int(row.get("shares") or 0),
                "likes": int(row.get("likes") or 0),
                "dislikes": int(row.get("dislikes") or 0),
                "comments": int(row.get("comments") or 0),
                "subscribers_gained": int(row.get("subscribersGained") or 0),
                "subscribers_lost": int(row.get("subscribersLost") or 0),
                "avg_view_duration": float(row.get("averageViewDuration") or 0.0),
            })
        return [r for r in rows if r["date"]]

    async def fetch_snapshot(self, account: ProviderAccount, start: date, end: date) -> Optional[Dict[str, Any]]:
        report = await self._report(
            account, start, end,
            metrics="views,estimatedMinutesWatched,averageViewDuration,likes",
            dimensions="video",
            sort="-views",
            maxResults=10,
        )
        videos = _table(report)
        titles: Dict[str, Dict[str, Any]] = {}
        if videos:
            data = await self._get_json(account, f"{YT_DATA_API_BASE}/videos", params={
                "part": "snippet",
                "id": ",".join(v.get("video") for v in videos if v.get("video")),
            })
            for item in data.get("items") or []:
                titles[item.get("id")] = item.get("snippet") or {}

        return {
            "top_videos": [
                {
                    "id": v.get("video"),
                    "title": titles.get(v.get("video"), {}).get("title"),
                    "thumbnail_url": ((titles.get(v.get("video"), {}).get("thumbnails") or {}).get("medium") or {}).get("url"),
                    "views": int(v.get("views") or 0),
                    "watch_time_seconds": int((v.get("estimatedMinutesWatched") or 0) * 60),
                    "avg_view_duration": float(v.get("averageViewDuration") or 0.0),
                    "likes": int(v.get("likes") or 0),
                }
                for v in videos
            ],
            "is_public_data_only": False,
        }
