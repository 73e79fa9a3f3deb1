"""
Point cache and portfolio cache models
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, JSON, UniqueConstraint
from datetime import datetime

from marketing_hub.models.base import Base


class AnalyticsCache(Base):
    """
    Assembled metric bundle for one company over an exact date range.

    kind: point (on-demand fetch) or snapshot (written by the batch refresh)
    Rows are replaced, never updated in place.
    """
    __tablename__ = "analytics_cache"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "range_start", "range_end", "kind",
            name="uq_analytics_cache_key"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    range_start = Column(Date, nullable=False)
    range_end = Column(Date, nullable=False)
    kind = Column(String, nullable=False, default="point")

    payload = Column(JSON, nullable=False)

    written_at = Column(DateTime, index=True, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, index=True, nullable=False)

    def __repr__(self):
        return f"<AnalyticsCache {self.company_id} {self.range_start}..{self.range_end} ({self.kind})>"


class PortfolioCache(Base):
    """One user's assembled portfolio for a calendar day"""
    __tablename__ = "portfolio_cache"
    __table_args__ = (
        UniqueConstraint("user_id", "cache_date", name="uq_portfolio_cache_user_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    cache_date = Column(Date, index=True, nullable=False)

    companies_data = Column(JSON, nullable=False)
    aggregate_metrics = Column(JSON, nullable=False)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
