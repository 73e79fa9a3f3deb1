"""
Sync status model

One row per (company, platform). Answers: "When did this integration last
sync, and is it healthy?"
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, Text, UniqueConstraint
from datetime import datetime

from marketing_hub.models.base import Base


class SyncStatus(Base):
    """
    Track sync state for each (company, platform)

    Created lazily on first touch, mutated in place afterwards.
    """
    __tablename__ = "sync_status"
    __table_args__ = (
        UniqueConstraint("company_id", "platform", name="uq_sync_status_company_platform"),
    )

    id = Column(Integer, primary_key=True, index=True)

    company_id = Column(String, index=True, nullable=False)
    platform = Column(String, index=True, nullable=False)  # ga, gsc, yt, li

    # idle, syncing, success, error
    state = Column(String, index=True, nullable=False, default="idle")

    last_sync_at = Column(DateTime, nullable=True)
    last_success_at = Column(DateTime, index=True, nullable=True)

    # Error tracking
    last_error = Column(Text, nullable=True)
    last_error_at = Column(DateTime, nullable=True)
    consecutive_failures = Column(Integer, default=0)

    # Coverage of synced daily rows
    data_start_date = Column(Date, nullable=True)
    data_end_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SyncStatus {self.company_id}/{self.platform} {self.state}>"
