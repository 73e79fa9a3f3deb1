"""
Shared test fixtures: an in-memory database per test, fake provider
clients and a controllable clock.
"""
import asyncio
import os
from datetime import date, datetime, timedelta

# Settings are read once at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("CRON_SECRET", "test-secret")
os.environ.setdefault("SYNC_BATCH_DELAY_SECONDS", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketing_hub.connectors.base import ProviderClient
from marketing_hub.models import Company, PlatformMapping, UserCompany
from marketing_hub.models.base import init_db, session_scope
from marketing_hub.utils.dates import iter_days


def run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


DEFAULT_VALUES = {
    "ga": {"total_users": 100, "new_users": 40, "sessions": 120, "page_views": 300,
           "key_events": 5, "user_key_event_rate": 0.05},
    "gsc": {"impressions": 1000, "clicks": 50, "avg_position": 12.0},
    "yt": {"views": 200, "watch_time_seconds": 6000, "likes": 10},
    "li": {"impressions": 500, "clicks": 10, "reactions": 5, "desktop_visitors": 20, "mobile_visitors": 10},
}


def daily_rows(platform: str, start: date, end: date, **overrides):
    """One row per day in [start, end] with plausible values"""
    values = dict(DEFAULT_VALUES[platform])
    values.update(overrides)
    return [dict(values, date=day.isoformat()) for day in iter_days(start, end)]


class FakeClient(ProviderClient):
    """
    Provider client backed by in-memory rows.

    fail_for maps company_id -> exception raised for that company;
    error fails every call; delay is awaited before each fetch_metrics.
    """

    def __init__(self, platform, rows=None, snapshot=None, fail_for=None, error=None, delay=0.0):
        super().__init__()
        self.platform = platform
        self.rows = rows
        self.snapshot = snapshot
        self.fail_for = fail_for or {}
        self.error = error
        self.delay = delay
        self.metrics_calls = 0
        self.daily_calls = 0

    def _maybe_fail(self, account):
        if self.error is not None:
            raise self.error
        if account.company_id in self.fail_for:
            raise self.fail_for[account.company_id]

    async def fetch_daily_rows(self, account, start, end):
        self.daily_calls += 1
        self._maybe_fail(account)
        if self.rows is None:
            return daily_rows(self.platform, start, end)
        return [r for r in self.rows if start.isoformat() <= r["date"] <= end.isoformat()]

    async def fetch_snapshot(self, account, start, end):
        self._maybe_fail(account)
        return self.snapshot

    async def fetch_metrics(self, account, start, end, prev_start, prev_end):
        self.metrics_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        self._maybe_fail(account)
        return await super().fetch_metrics(account, start, end, prev_start, prev_end)


def seed_company(session_factory, company_id, platforms=(), user_ids=("user-1",), name=None):
    """Company with platform mappings and user access"""
    with session_scope(session_factory) as db:
        db.add(Company(id=company_id, name=name or company_id.title()))
        for user_id in user_ids:
            db.add(UserCompany(user_id=user_id, company_id=company_id, role="admin"))
        for platform in platforms:
            db.add(PlatformMapping(
                company_id=company_id,
                platform=platform,
                account_ref=f"{platform}-{company_id}",
                owner_user_id="owner-1",
            ))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 10, 0, 0))


@pytest.fixture
def fake_clients():
    return {platform: FakeClient(platform) for platform in ("ga", "gsc", "yt", "li")}
