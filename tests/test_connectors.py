"""
Provider clients against mocked HTTP transports.
"""
import json
from datetime import date

import httpx
import pytest

from conftest import run
from marketing_hub.connectors import GA4Client, LinkedInClient, ProviderAccount, SearchConsoleClient, YouTubeClient
from marketing_hub.exceptions import MissingTokenError, ProviderError, TransientFetchError, classify_fetch_error
from marketing_hub.services.token_store import TokenStore

START = date(2025, 2, 1)
END = date(2025, 2, 2)


@pytest.fixture
def tokens(session_factory):
    store = TokenStore(session_factory)
    store.save_token("owner-1", "google", "google-token")
    store.save_token("owner-1", "linkedin", "linkedin-token")
    return store


def _account(platform, ref):
    return ProviderAccount(company_id="acme", platform=platform, account_ref=ref, owner_user_id="owner-1")


def _ga_row(dims, values):
    return {
        "dimensionValues": [{"value": d} for d in dims],
        "metricValues": [{"value": str(v)} for v in values],
    }


def test_ga4_daily_and_channel_rows(tokens):
    seen = []

    def handler(request):
        seen.append(request)
        body = json.loads(request.content)
        dims = [d["name"] for d in body["dimensions"]]
        if dims == ["date"]:
            rows = [
                _ga_row(["20250202"], [20, 5, 25, 60, 15, 90.5, 0.4, 2, 0.1]),
                _ga_row(["20250201"], [10, 4, 12, 30, 8, 80.0, 0.5, 1, 0.1]),
            ]
        else:
            rows = [
                _ga_row(["20250201", "Organic Search"], [7, 6]),
                _ga_row(["20250201", "Something New"], [3, 3]),
            ]
        return httpx.Response(200, json={"rows": rows})

    client = GA4Client(tokens, transport=httpx.MockTransport(handler))
    account = _account("ga", "123456")

    rows = run(client.fetch_daily_rows(account, START, END))
    channels = run(client.fetch_channel_rows(account, START, END))

    assert [r["date"] for r in rows] == ["2025-02-01", "2025-02-02"]
    assert rows[1]["total_users"] == 20
    assert rows[1]["page_views"] == 60
    assert rows[1]["avg_session_duration"] == pytest.approx(90.5)
    assert channels == [{"date": "2025-02-01", "channel": "organicSearch", "sessions": 7, "users": 6}]

    assert seen[0].url.path == "/v1beta/properties/123456:runReport"
    assert seen[0].headers["Authorization"] == "Bearer google-token"


def test_search_console_quotes_site_url(tokens):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"rows": [
            {"keys": ["2025-02-01"], "impressions": 100, "clicks": 4, "ctr": 0.04, "position": 7.5},
        ]})

    client = SearchConsoleClient(tokens, transport=httpx.MockTransport(handler))
    rows = run(client.fetch_daily_rows(_account("gsc", "https://example.com/"), START, END))

    assert rows == [{"date": "2025-02-01", "impressions": 100, "clicks": 4, "ctr": 0.04, "avg_position": 7.5}]
    assert "https%3A%2F%2Fexample.com%2F" in str(seen[0].url)


def test_youtube_converts_minutes_to_seconds(tokens):
    def handler(request):
        assert request.url.params["ids"] == "channel==UC123"
        return httpx.Response(200, json={
            "columnHeaders": [{"name": "day"}, {"name": "views"}, {"name": "estimatedMinutesWatched"}],
            "rows": [["2025-02-01", 50, 12]],
        })

    client = YouTubeClient(tokens, transport=httpx.MockTransport(handler))
    rows = run(client.fetch_daily_rows(_account("yt", "UC123"), START, END))

    assert rows[0]["views"] == 50
    assert rows[0]["watch_time_seconds"] == 720


def test_linkedin_merges_endpoints_per_day(tokens):
    day_ms = 1738368000000  # 2025-02-01T00:00:00Z

    def handler(request):
        assert request.headers["X-Restli-Protocol-Version"] == "2.0.0"
        assert request.headers["Authorization"] == "Bearer linkedin-token"
        path = request.url.path
        if path.endswith("/organizationPageStatistics"):
            element = {"timeRange": {"start": day_ms}, "totalPageStatistics": {"views": {
                "allDesktopPageViews": {"pageViews": 11}, "allMobilePageViews": {"pageViews": 4}}}}
        elif path.endswith("/organizationalEntityFollowerStatistics"):
            element = {"timeRange": {"start": day_ms},
                       "followerGains": {"organicFollowerGain": 3, "paidFollowerGain": 1}}
        else:
            element = {"timeRange": {"start": day_ms},
                       "totalShareStatistics": {"impressionCount": 900, "clickCount": 12, "likeCount": 7}}
        return httpx.Response(200, json={"elements": [element]})

    client = LinkedInClient(tokens, transport=httpx.MockTransport(handler))
    rows = run(client.fetch_daily_rows(_account("li", "42"), START, END))

    assert len(rows) == 1
    row = rows[0]
    assert row["date"] == "2025-02-01"
    assert (row["desktop_visitors"], row["mobile_visitors"]) == (11, 4)
    assert (row["organic_follower_gain"], row["paid_follower_gain"]) == (3, 1)
    assert (row["impressions"], row["clicks"], row["reactions"]) == (900, 12, 7)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_missing_token(session_factory):
    client = GA4Client(TokenStore(session_factory), transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(MissingTokenError):
        run(client.fetch_daily_rows(_account("ga", "1"), START, END))


@pytest.mark.parametrize("status,expected", [(503, TransientFetchError), (429, TransientFetchError), (403, ProviderError)])
def test_http_errors_are_classified(tokens, status, expected):
    client = GA4Client(tokens, transport=httpx.MockTransport(lambda r: httpx.Response(status, text="nope")))

    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        run(client.fetch_daily_rows(_account("ga", "1"), START, END))

    error = classify_fetch_error("ga", exc_info.value)
    assert isinstance(error, expected)
    assert error.status_code == status


def test_timeouts_and_unknown_errors_are_classified():
    assert isinstance(classify_fetch_error("li", TimeoutError()), TransientFetchError)
    assert isinstance(classify_fetch_error("li", httpx.ConnectError("refused")), TransientFetchError)
    assert isinstance(classify_fetch_error("li", KeyError("elements")), ProviderError)
