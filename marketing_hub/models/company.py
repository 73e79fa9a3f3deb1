"""
Company, access and provider mapping models

Companies are the unit of cache and sync scoping. Each company maps to at
most one provider account per platform.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint
from datetime import datetime

from marketing_hub.models.base import Base


class Company(Base):
    """A tenant whose analytics are tracked"""
    __tablename__ = "companies"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    industry = Column(String, nullable=True)
    color = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Company {self.name}>"


class UserCompany(Base):
    """Which users can see which companies"""
    __tablename__ = "user_companies"
    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_user_company"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    company_id = Column(String, index=True, nullable=False)
    role = Column(String, default="viewer")  # owner, admin, viewer

    created_at = Column(DateTime, default=datetime.utcnow)


class PlatformMapping(Base):
    """
    Company -> provider account mapping

    platform: ga, gsc, yt, li
    account_ref: GA4 property id, GSC site url, YouTube channel id, LinkedIn organization id
    owner_user_id: user whose OAuth grant is used to read the account
    """
    __tablename__ = "platform_mappings"
    __table_args__ = (
        UniqueConstraint("company_id", "platform", name="uq_company_platform_mapping"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, index=True, nullable=False)
    platform = Column(String, index=True, nullable=False)
    account_ref = Column(String, nullable=False)
    owner_user_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PlatformMapping {self.company_id}/{self.platform} -> {self.account_ref}>"


class OAuthToken(Base):
    """Stored provider access tokens (refresh is handled elsewhere)"""
    __tablename__ = "oauth_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_oauth_user_provider"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    provider = Column(String, nullable=False)  # google, linkedin
    access_token = Column(Text, nullable=False)
    scope = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
