"""
Database models
"""
from marketing_hub.models.base import Base, engine, SessionLocal, get_db, init_db, session_scope
from marketing_hub.models.company import Company, UserCompany, PlatformMapping, OAuthToken
from marketing_hub.models.daily_metrics import (
    GADailyMetric,
    GAChannelDaily,
    GSCDailyMetric,
    YTDailyMetric,
    LIDailyMetric,
    DAILY_MODELS,
)
from marketing_hub.models.snapshots import PeriodSnapshot
from marketing_hub.models.analytics_cache import AnalyticsCache, PortfolioCache
from marketing_hub.models.sync_status import SyncStatus
from marketing_hub.models.audit import AdminAuditLog

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "session_scope",
    "Company",
    "UserCompany",
    "PlatformMapping",
    "OAuthToken",
    "GADailyMetric",
    "GAChannelDaily",
    "GSCDailyMetric",
    "YTDailyMetric",
    "LIDailyMetric",
    "DAILY_MODELS",
    "PeriodSnapshot",
    "AnalyticsCache",
    "PortfolioCache",
    "SyncStatus",
    "AdminAuditLog",
]
