"""
Metric Aggregator

Pure functions that reduce raw per-day provider rows into period totals,
weekly buckets and dashboard series, with previous-period comparison.

Conventions:
- Counters are summed, rate fields are averaged (arithmetic mean).
- Compound ratios (CTR, engagement rate) are re-derived from summed
  numerator/denominator whenever both are available.
- Missing or malformed numeric values count as zero; nothing here raises
  on bad rows.
- A platform with no rows and no snapshot has no section at all (None),
  which is not the same thing as a section full of zeros.
"""
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from marketing_hub.utils.dates import to_date, iso

PLATFORMS = ("ga", "gsc", "yt", "li")

CHANNEL_KEYS = (
    "direct",
    "paidSearch",
    "organicSearch",
    "paidOther",
    "referral",
    "crossNetwork",
    "unassigned",
    "organicSocial",
)

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def _num(value: Any):
    """Numeric value of a row field; anything unusable (or negative) is 0"""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0
        if number.is_integer():
            number = int(number)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return 0
    return number if number > 0 else 0


def _row_date(row: Dict[str, Any]) -> Optional[date]:
    try:
        return to_date(row.get("date"))
    except (ValueError, TypeError, AttributeError):
        return None


def _sorted_rows(rows: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Rows with a parseable date, oldest first"""
    dated = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        day = _row_date(row)
        if day is not None:
            dated.append((day, row))
    dated.sort(key=lambda pair: pair[0])
    return [row for _, row in dated]


def sum_field(rows: Iterable[Dict[str, Any]], field_name: str):
    total = 0
    for row in rows or []:
        if isinstance(row, dict):
            total += _num(row.get(field_name))
    return total


def avg_field(rows: Iterable[Dict[str, Any]], field_name: str) -> float:
    """Arithmetic mean over all rows; rows missing the field count as 0"""
    rows = [row for row in rows or [] if isinstance(row, dict)]
    if not rows:
        return 0.0
    return sum_field(rows, field_name) / len(rows)


def _has_field(rows: Iterable[Dict[str, Any]], field_name: str) -> bool:
    return any(isinstance(row, dict) and row.get(field_name) is not None for row in rows or [])


def derived_ratio(
    rows: Iterable[Dict[str, Any]],
    numerator: str,
    denominator: str,
    fallback_field: Optional[str] = None,
) -> float:
    """
    Ratio of summed numerator over summed denominator.

    Only when the denominator field is missing from every row does this fall
    back to the mean of the per-day `fallback_field`.
    """
    rows = list(rows or [])
    if _has_field(rows, denominator):
        den = sum_field(rows, denominator)
        if den <= 0:
            return 0.0
        return sum_field(rows, numerator) / den
    if fallback_field:
        return avg_field(rows, fallback_field)
    return 0.0


# ---------------------------------------------------------------------------
# Period totals
# ---------------------------------------------------------------------------

def _ga_totals(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "total_users": sum_field(rows, "total_users"),
        "new_users": sum_field(rows, "new_users"),
        "sessions": sum_field(rows, "sessions"),
        "views": sum_field(rows, "page_views"),
        # Per-day rates; the daily rows carry no numerator/denominator pair for these
        "avg_session_duration": avg_field(rows, "avg_session_duration"),
        "bounce_rate": avg_field(rows, "bounce_rate"),
        "key_events": sum_field(rows, "key_events"),
        "user_key_event_rate": avg_field(rows, "user_key_event_rate"),
    }


def _gsc_totals(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    latest = rows[-1] if rows else {}
    return {
        "impressions": sum_field(rows, "impressions"),
        "clicks": sum_field(rows, "clicks"),
        "ctr": derived_ratio(rows, "clicks", "impressions", fallback_field="ctr"),
        "avg_position": avg_field(rows, "avg_position"),
        # Gauges, not counters: report the latest observed value
        "indexed_pages": _num(latest.get("indexed_pages")),
        "ranking_keywords": _num(latest.get("ranking_keywords")),
    }


def _yt_totals(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    gained = sum_field(rows, "subscribers_gained")
    lost = sum_field(rows, "subscribers_lost")
    if _has_field(rows, "watch_time_seconds"):
        avg_view_duration = derived_ratio(rows, "watch_time_seconds", "views", fallback_field="avg_view_duration")
    else:
        avg_view_duration = avg_field(rows, "avg_view_duration")
    return {
        "views": sum_field(rows, "views"),
        "total_watch_time": sum_field(rows, "watch_time_seconds"),
        "shares": sum_field(rows, "shares"),
        "avg_view_duration": avg_view_duration,
        "likes": sum_field(rows, "likes"),
        "dislikes": sum_field(rows, "dislikes"),
        "comments": sum_field(rows, "comments"),
        "subscribers_gained": gained,
        "subscribers_lost": lost,
        # Signed delta, the only field allowed below zero
        "net_subscribers": gained - lost,
    }


_LI_ENGAGEMENT_FIELDS = ("clicks", "reactions", "comments", "shares")


def _li_totals(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    totals = {
        "desktop_visitors": sum_field(rows, "desktop_visitors"),
        "mobile_visitors": sum_field(rows, "mobile_visitors"),
        "organic_follower_gain": sum_field(rows, "organic_follower_gain"),
        "paid_follower_gain": sum_field(rows, "paid_follower_gain"),
        "impressions": sum_field(rows, "impressions"),
        "clicks": sum_field(rows, "clicks"),
        "reactions": sum_field(rows, "reactions"),
        "comments": sum_field(rows, "comments"),
        "shares": sum_field(rows, "shares"),
    }
    totals["total_visitors"] = totals["desktop_visitors"] + totals["mobile_visitors"]
    totals["new_followers"] = totals["organic_follower_gain"] + totals["paid_follower_gain"]
    engagements = sum(totals[f] for f in _LI_ENGAGEMENT_FIELDS)
    totals["engagement_rate"] = engagements / totals["impressions"] if totals["impressions"] > 0 else 0.0
    return totals


def _with_previous(totals_fn, current_rows, previous_rows) -> Dict[str, Any]:
    current_rows = [row for row in current_rows or [] if isinstance(row, dict)]
    previous_rows = [row for row in previous_rows or [] if isinstance(row, dict)]
    metrics = totals_fn(_sorted_rows(current_rows) or current_rows)
    if previous_rows:
        metrics["previous_period"] = totals_fn(_sorted_rows(previous_rows) or previous_rows)
    return metrics


def aggregate_ga_metrics(current_rows, previous_rows=None) -> Dict[str, Any]:
    return _with_previous(_ga_totals, current_rows, previous_rows)


def aggregate_gsc_metrics(current_rows, previous_rows=None) -> Dict[str, Any]:
    return _with_previous(_gsc_totals, current_rows, previous_rows)


def aggregate_yt_metrics(current_rows, previous_rows=None) -> Dict[str, Any]:
    return _with_previous(_yt_totals, current_rows, previous_rows)


def aggregate_li_metrics(current_rows, previous_rows=None) -> Dict[str, Any]:
    return _with_previous(_li_totals, current_rows, previous_rows)


AGGREGATORS = {
    "ga": aggregate_ga_metrics,
    "gsc": aggregate_gsc_metrics,
    "yt": aggregate_yt_metrics,
    "li": aggregate_li_metrics,
}


# ---------------------------------------------------------------------------
# Series builders
# ---------------------------------------------------------------------------

def format_date_label(day: date) -> str:
    return f"{_MONTHS[day.month - 1]} {day.day}"


def iso_week_number(day: date) -> int:
    return day.isocalendar()[1]


# platform -> {output key: row field}
_WEEKLY_FIELDS = {
    "ga": {"views": "page_views", "sessions": "sessions"},
    "gsc": {"impressions": "impressions", "clicks": "clicks"},
    "yt": {"views": "views", "watch_time": "watch_time_seconds"},
    "li": {"impressions": "impressions", "clicks": "clicks"},
}


def build_weekly_data(rows, platform: str) -> List[Dict[str, Any]]:
    """
    Bucket daily rows into Monday-start weeks.

    Label is "{Mon} {start day}-{last day present}", e.g. "Jan 6-12".
    """
    fields = _WEEKLY_FIELDS.get(platform, {})
    weeks: Dict[date, Dict[str, Any]] = {}

    for row in _sorted_rows(rows):
        day = _row_date(row)
        week_start = day - timedelta(days=day.weekday())
        bucket = weeks.get(week_start)
        if bucket is None:
            bucket = {"last": day}
            for key in fields:
                bucket[key] = 0
            weeks[week_start] = bucket
        bucket["last"] = day
        for key, row_field in fields.items():
            bucket[key] += _num(row.get(row_field))

    weekly = []
    for week_start in sorted(weeks):
        bucket = weeks[week_start]
        last = bucket.pop("last")
        entry = {
            "week_label": f"{format_date_label(week_start)}-{last.day}",
            "week_number": iso_week_number(week_start),
            "start_date": iso(week_start),
            "end_date": iso(last),
        }
        entry.update(bucket)
        if platform == "gsc":
            entry["ctr"] = entry["clicks"] / entry["impressions"] if entry["impressions"] > 0 else 0.0
        weekly.append(entry)
    return weekly


def build_channel_data(channel_rows) -> List[Dict[str, Any]]:
    """Sessions per channel per date, every channel key present"""
    by_date: Dict[date, Dict[str, Any]] = {}
    for row in _sorted_rows(channel_rows):
        day = _row_date(row)
        entry = by_date.get(day)
        if entry is None:
            entry = {"date": iso(day)}
            for key in CHANNEL_KEYS:
                entry[key] = 0
            by_date[day] = entry
        channel = row.get("channel")
        if channel in CHANNEL_KEYS:
            entry[channel] += _num(row.get("sessions"))
    return [by_date[day] for day in sorted(by_date)]


def build_gsc_index_data(rows) -> List[Dict[str, Any]]:
    return [
        {
            "date": iso(_row_date(row)),
            "indexed_pages": _num(row.get("indexed_pages")),
            "ranking_keywords": _num(row.get("ranking_keywords")),
        }
        for row in _sorted_rows(rows)
    ]


def build_li_daily_series(rows) -> Dict[str, List[Dict[str, Any]]]:
    rows = _sorted_rows(rows)
    return {
        "visitor_daily": [
            {
                "date": iso(_row_date(row)),
                "desktop_visitors": _num(row.get("desktop_visitors")),
                "mobile_visitors": _num(row.get("mobile_visitors")),
            }
            for row in rows
        ],
        "follower_daily": [
            {
                "date": iso(_row_date(row)),
                "sponsored": _num(row.get("paid_follower_gain")),
                "organic": _num(row.get("organic_follower_gain")),
            }
            for row in rows
        ],
        "impression_daily": [
            {"date": iso(_row_date(row)), "impressions": _num(row.get("impressions"))}
            for row in rows
        ],
    }


def build_yt_sparklines(rows) -> Dict[str, List[Any]]:
    rows = _sorted_rows(rows)
    return {
        "views": [_num(row.get("views")) for row in rows],
        "watch_time": [_num(row.get("watch_time_seconds")) for row in rows],
        "shares": [_num(row.get("shares")) for row in rows],
        "likes": [_num(row.get("likes")) for row in rows],
    }


# ---------------------------------------------------------------------------
# Platform sections
# ---------------------------------------------------------------------------

_GA_SNAPSHOT_KEYS = ("traffic_share", "source_performance", "landing_pages", "regions", "devices", "gender", "age")
_GSC_SNAPSHOT_KEYS = ("keywords", "landing_pages", "countries", "devices")
_LI_SNAPSHOT_KEYS = (
    "follower_metrics",
    "visitor_metrics",
    "content_metrics",
    "search_appearance_metrics",
    "industry_demographics",
    "seniority_demographics",
    "job_function_demographics",
    "company_size_demographics",
    "updates",
)


def _snapshot_lists(snapshot: Optional[Dict[str, Any]], keys) -> Dict[str, Any]:
    snapshot = snapshot if isinstance(snapshot, dict) else {}
    return {key: snapshot.get(key) or [] for key in keys}


def build_platform_section(
    platform: str,
    current_rows=None,
    previous_rows=None,
    snapshot: Optional[Dict[str, Any]] = None,
    channel_rows=None,
) -> Optional[Dict[str, Any]]:
    """
    Assemble one platform's dashboard section.

    Returns None when there are neither daily rows nor a snapshot. When only
    a snapshot exists, `metrics` is None rather than a zero-filled total.
    """
    rows = _sorted_rows(current_rows)
    has_snapshot = isinstance(snapshot, dict)
    if not rows and not has_snapshot:
        return None

    metrics = AGGREGATORS[platform](rows, previous_rows) if rows else None
    section: Dict[str, Any] = {"metrics": metrics}

    if platform == "ga":
        section["weekly"] = build_weekly_data(rows, "ga")
        section["channels"] = build_channel_data(channel_rows) if rows else []
        section.update(_snapshot_lists(snapshot, _GA_SNAPSHOT_KEYS))

    elif platform == "gsc":
        section["weekly"] = build_weekly_data(rows, "gsc")
        section["index_data"] = build_gsc_index_data(rows)
        section.update(_snapshot_lists(snapshot, _GSC_SNAPSHOT_KEYS))
        snap = snapshot if has_snapshot else {}
        section["total_keywords"] = _num(snap.get("total_keywords")) if "total_keywords" in snap else None
        section["total_indexed_pages"] = _num(snap.get("total_indexed_pages")) if "total_indexed_pages" in snap else None

    elif platform == "yt":
        section["sparklines"] = build_yt_sparklines(rows)
        snap = snapshot if has_snapshot else {}
        section["top_videos"] = snap.get("top_videos") or []
        section["is_public_data_only"] = bool(snap.get("is_public_data_only", False))

    elif platform == "li":
        section.update(build_li_daily_series(rows))
        snap = snapshot if has_snapshot else {}
        for key in _LI_SNAPSHOT_KEYS:
            # Absent snapshot blocks stay None instead of a zero-filled shape
            section[key] = snap.get(key)
        section["data_source"] = snap.get("data_source") or ("normalized" if rows else "snapshot")

    return section


def assemble_company_analytics(
    daily: Dict[str, list],
    previous: Optional[Dict[str, list]] = None,
    snapshots: Optional[Dict[str, Optional[dict]]] = None,
    ga_channel_rows=None,
) -> Dict[str, Optional[Dict[str, Any]]]:
    """Sections for every platform; platforms without data map to None"""
    previous = previous or {}
    snapshots = snapshots or {}
    sections = {}
    for platform in PLATFORMS:
        sections[platform] = build_platform_section(
            platform,
            daily.get(platform),
            previous.get(platform),
            snapshots.get(platform),
            ga_channel_rows if platform == "ga" else None,
        )
    return sections


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------

@dataclass
class MetricBundle:
    """Assembled analytics for one company over one date range"""
    company_id: str
    range_start: date
    range_end: date
    platforms: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)  # platform -> normalized, point_cache, stale_cache, live

    def section(self, platform: str) -> Optional[Dict[str, Any]]:
        return self.platforms.get(platform)

    def present_platforms(self) -> List[str]:
        return [p for p in PLATFORMS if self.platforms.get(p) is not None]

    def missing_platforms(self, wanted: Iterable[str] = PLATFORMS) -> List[str]:
        return [p for p in wanted if self.platforms.get(p) is None]

    @property
    def has_data(self) -> bool:
        return bool(self.present_platforms())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_id": self.company_id,
            "range_start": iso(self.range_start),
            "range_end": iso(self.range_end),
            "platforms": {p: self.platforms.get(p) for p in PLATFORMS},
            "errors": dict(self.errors),
            "sources": dict(self.sources),
        }

    def to_payload(self) -> Dict[str, Any]:
        """What gets persisted in a cache entry (no tier provenance)"""
        payload = self.to_dict()
        payload.pop("sources")
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricBundle":
        platforms = data.get("platforms") or {}
        return cls(
            company_id=data.get("company_id"),
            range_start=to_date(data["range_start"]),
            range_end=to_date(data["range_end"]),
            platforms={p: platforms.get(p) for p in PLATFORMS},
            errors=dict(data.get("errors") or {}),
            sources=dict(data.get("sources") or {}),
        )


# ---------------------------------------------------------------------------
# Portfolio totals
# ---------------------------------------------------------------------------

def _portfolio_totals(metrics_list: List[Dict[str, Any]]) -> Dict[str, Any]:
    # Conversion rate is the mean of company rates; companies report a per-day
    # averaged rate with no user/conversion pair to re-derive it from.
    rates = [_num(m.get("user_key_event_rate")) for m in metrics_list]
    rates = [rate for rate in rates if rate > 0]
    return {
        "total_traffic": sum(_num(m.get("total_users")) for m in metrics_list),
        "total_conversions": sum(_num(m.get("key_events")) for m in metrics_list),
        "avg_conversion_rate": (sum(rates) / len(rates)) if rates else 0.0,
    }


def aggregate_portfolio_metrics(bundles: Iterable[MetricBundle]) -> Dict[str, Any]:
    """
    Portfolio headline numbers from each company's GA section.

    `previous_period` is present only when at least one company had one.
    """
    current = []
    previous = []
    for bundle in bundles:
        ga = bundle.section("ga") if bundle is not None else None
        metrics = (ga or {}).get("metrics")
        if not metrics:
            continue
        current.append(metrics)
        if metrics.get("previous_period"):
            previous.append(metrics["previous_period"])

    result = _portfolio_totals(current)
    result["companies_with_data"] = len(current)
    if previous:
        result["previous_period"] = _portfolio_totals(previous)
    return result
