"""
Normalized daily metric tables

One row per (company, date) per platform, plus GA sessions by channel.
These are the cheapest tier the cache resolver reads from.
"""
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, UniqueConstraint
from datetime import datetime

from marketing_hub.models.base import Base


class GADailyMetric(Base):
    """Google Analytics 4 daily totals"""
    __tablename__ = "ga_daily_metrics"
    __table_args__ = (
        UniqueConstraint("company_id", "date", name="uq_ga_daily_company_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)

    total_users = Column(Integer, default=0)
    new_users = Column(Integer, default=0)
    sessions = Column(Integer, default=0)
    page_views = Column(Integer, default=0)
    engaged_sessions = Column(Integer, nullable=True)
    avg_session_duration = Column(Float, nullable=True)  # seconds
    bounce_rate = Column(Float, nullable=True)  # 0-1
    key_events = Column(Integer, default=0)
    user_key_event_rate = Column(Float, nullable=True)  # 0-1

    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class GAChannelDaily(Base):
    """GA4 sessions by default channel group (daily)"""
    __tablename__ = "ga_channel_daily"
    __table_args__ = (
        UniqueConstraint("company_id", "date", "channel", name="uq_ga_channel_company_date_channel"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    channel = Column(String, nullable=False)
    # direct, paidSearch, organicSearch, paidOther, referral, crossNetwork, unassigned, organicSocial

    sessions = Column(Integer, default=0)
    users = Column(Integer, default=0)

    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class GSCDailyMetric(Base):
    """Search Console daily totals"""
    __tablename__ = "gsc_daily_metrics"
    __table_args__ = (
        UniqueConstraint("company_id", "date", name="uq_gsc_daily_company_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)

    impressions = Column(Integer, default=0)
    clicks = Column(Integer, default=0)
    ctr = Column(Float, nullable=True)  # 0-1, as reported per day
    avg_position = Column(Float, nullable=True)
    ranking_keywords = Column(Integer, default=0)
    indexed_pages = Column(Integer, default=0)

    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class YTDailyMetric(Base):
    """YouTube channel daily totals"""
    __tablename__ = "yt_daily_metrics"
    __table_args__ = (
        UniqueConstraint("company_id", "date", name="uq_yt_daily_company_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)

    views = Column(Integer, default=0)
    watch_time_seconds = Column(Integer, default=0)
    shares = Column(Integer, default=0)
    likes = Column(Integer, default=0)
    dislikes = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    subscribers_gained = Column(Integer, default=0)
    subscribers_lost = Column(Integer, default=0)
    avg_view_duration = Column(Float, nullable=True)  # seconds

    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LIDailyMetric(Base):
    """LinkedIn organization page daily totals"""
    __tablename__ = "li_daily_metrics"
    __table_args__ = (
        UniqueConstraint("company_id", "date", name="uq_li_daily_company_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)

    desktop_visitors = Column(Integer, default=0)
    mobile_visitors = Column(Integer, default=0)
    organic_follower_gain = Column(Integer, default=0)
    paid_follower_gain = Column(Integer, default=0)
    impressions = Column(Integer, default=0)
    clicks = Column(Integer, default=0)
    reactions = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    shares = Column(Integer, default=0)

    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# platform -> daily model
DAILY_MODELS = {
    "ga": GADailyMetric,
    "gsc": GSCDailyMetric,
    "yt": YTDailyMetric,
    "li": LIDailyMetric,
}
