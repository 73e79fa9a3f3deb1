"""
HTTP surface: auth, error mapping and the cron/admin endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from conftest import seed_company
from marketing_hub.api.deps import services
from marketing_hub.exceptions import ProviderError
from marketing_hub.main import app
from marketing_hub.services.container import build_services

USER = {"X-User-Id": "user-1"}


@pytest.fixture
def svc(session_factory, fake_clients):
    return build_services(session_factory, clients=fake_clients)


@pytest.fixture
def client(svc):
    app.dependency_overrides[services] = lambda: svc
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

def test_company_analytics_requires_user(client):
    assert client.get("/analytics/acme").status_code == 401


def test_company_analytics(client, session_factory):
    seed_company(session_factory, "acme", ["ga"])

    response = client.get("/analytics/acme", headers=USER,
                          params={"start_date": "2025-02-01", "end_date": "2025-02-14"})

    assert response.status_code == 200
    data = response.json()
    assert data["range_start"] == "2025-02-01"
    assert data["platforms"]["ga"]["metrics"]["total_users"] == 100 * 14
    assert data["platforms"]["li"] is None
    assert data["sources"]["ga"] == "live"


def test_company_analytics_access_and_existence(client, session_factory):
    seed_company(session_factory, "acme", ["ga"], user_ids=["someone-else"])

    assert client.get("/analytics/acme", headers=USER).status_code == 403
    assert client.get("/analytics/missing", headers=USER).status_code == 404


def test_company_analytics_error_mapping(client, session_factory, fake_clients):
    seed_company(session_factory, "empty", [])
    seed_company(session_factory, "broken", ["gsc"])
    fake_clients["gsc"].error = ProviderError("gsc", "site not verified", 403)

    response = client.get("/analytics/empty", headers=USER)
    assert response.status_code == 404
    assert response.json()["detail"]["error_type"] == "no_integrations"

    response = client.get("/analytics/broken", headers=USER)
    assert response.status_code == 404
    assert response.json()["detail"]["error_type"] == "no_data"
    assert "gsc" in response.json()["detail"]["errors"]


def test_invalid_dates_rejected(client, session_factory):
    seed_company(session_factory, "acme", ["ga"])

    assert client.get("/analytics/acme", headers=USER, params={"start_date": "not-a-date"}).status_code == 400
    response = client.get("/analytics/acme", headers=USER,
                          params={"start_date": "2025-02-14", "end_date": "2025-02-01"})
    assert response.status_code == 400


def test_portfolio(client, session_factory):
    seed_company(session_factory, "acme", ["ga"])
    seed_company(session_factory, "globex", ["gsc"])

    response = client.get("/analytics/portfolio", headers=USER)

    assert response.status_code == 200
    data = response.json()
    assert {c["id"] for c in data["companies"]} == {"acme", "globex"}
    assert data["aggregate_metrics"]["companies_with_data"] == 1


# ---------------------------------------------------------------------------
# Cron
# ---------------------------------------------------------------------------

def test_cron_requires_secret(client):
    assert client.get("/cron/refresh-cache").status_code == 401
    assert client.get("/cron/refresh-cache", params={"secret": "wrong"}).status_code == 401


def test_cron_refresh_with_query_secret(client, session_factory):
    seed_company(session_factory, "acme", ["ga", "li"])

    response = client.get("/cron/refresh-cache", params={"secret": "test-secret"})

    assert response.status_code == 200
    report = response.json()
    assert report["name"] == "refresh-cache"
    assert report["succeeded"] == 1


def test_cron_sync_with_bearer_secret(client, session_factory, svc):
    seed_company(session_factory, "acme", ["ga"])
    seed_company(session_factory, "empty", [])

    response = client.get("/cron/sync-analytics", headers={"Authorization": "Bearer test-secret"},
                          params={"company_ids": "acme, empty"})

    assert response.status_code == 200
    report = response.json()
    assert report["succeeded"] == 1
    assert report["skipped"] == 1
    assert svc.tracker.get("acme", "ga").state == "success"


def test_cron_sweep(client):
    response = client.get("/cron/sweep-cache", headers={"Authorization": "Bearer test-secret"})
    assert response.status_code == 200
    assert response.json()["cache_entries_removed"] == 0


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

def test_trigger_sync_is_rate_limited(client, session_factory, fake_clients):
    seed_company(session_factory, "acme", ["ga"])

    for remaining in (2, 1, 0):
        response = client.post("/admin/trigger-sync", headers=USER)
        assert response.status_code == 200
        assert response.json()["remaining_this_hour"] == remaining

    response = client.post("/admin/trigger-sync", headers=USER)
    assert response.status_code == 429
    assert "Retry-After" in response.headers
    # Background refreshes ran once per accepted call
    assert fake_clients["ga"].metrics_calls == 3


def test_sync_status_reports_health(client, svc):
    svc.tracker.ensure_rows(["acme"], platforms=["ga"])
    svc.tracker.mark_syncing("acme", "ga")
    svc.tracker.mark_success("acme", "ga")

    response = client.get("/admin/sync-status", headers=USER, params={"company_ids": "acme"})

    assert response.status_code == 200
    data = response.json()
    assert data["statuses"][0]["health"] == "ok"
    assert data["summary"] == {"ok": 1}


def test_clear_cache(client, session_factory):
    seed_company(session_factory, "acme", ["ga"])
    client.get("/analytics/acme", headers=USER)

    response = client.post("/admin/clear-cache", headers=USER, params={"company_id": "acme"})

    assert response.status_code == 200
    assert response.json()["entries_removed"] == 1
