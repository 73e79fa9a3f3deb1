"""
Period snapshot model

Precomputed non-time-series breakdowns (top pages, keywords, demographics)
for a period. Refreshed less often than daily rows.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, JSON, UniqueConstraint
from datetime import datetime

from marketing_hub.models.base import Base


class PeriodSnapshot(Base):
    """Breakdowns for one (company, platform, period)"""
    __tablename__ = "period_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "platform", "period_start", "period_end",
            name="uq_snapshot_company_platform_period"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    platform = Column(String, index=True, nullable=False)  # ga, gsc, yt, li

    snapshot_date = Column(Date, index=True, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)

    payload = Column(JSON, nullable=False)
    # ga:  traffic_share, source_performance, landing_pages, regions, devices, gender, age
    # gsc: keywords, landing_pages, countries, devices, total_keywords, total_indexed_pages
    # yt:  top_videos, is_public_data_only
    # li:  follower_metrics, visitor_metrics, *_demographics, updates

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PeriodSnapshot {self.company_id}/{self.platform} {self.period_start}..{self.period_end}>"
