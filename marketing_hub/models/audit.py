"""
Admin audit log model
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime

from marketing_hub.models.base import Base


class AdminAuditLog(Base):
    """Admin actions, also the window source for the admin rate limiter"""
    __tablename__ = "admin_audit_log"

    id = Column(Integer, primary_key=True, index=True)
    actor = Column(String, index=True, nullable=False)  # user id or email
    action = Column(String, index=True, nullable=False)  # trigger_sync, clear_cache
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, index=True, nullable=False, default=datetime.utcnow)
