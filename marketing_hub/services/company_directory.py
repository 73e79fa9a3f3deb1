"""
Company Directory

Companies, who can see them, and which provider accounts they map to.
"""
from typing import Any, Dict, List, Optional

from marketing_hub.connectors.base import ProviderAccount
from marketing_hub.models.base import SessionLocal, session_scope
from marketing_hub.models.company import Company, UserCompany, PlatformMapping


def _company_dict(company: Company) -> Dict[str, Any]:
    return {
        "id": company.id,
        "name": company.name,
        "industry": company.industry,
        "color": company.color,
        "logo_url": company.logo_url,
    }


class CompanyDirectory:

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def list_companies(self) -> List[Dict[str, Any]]:
        with session_scope(self.session_factory) as db:
            return [_company_dict(c) for c in db.query(Company).order_by(Company.name.asc()).all()]

    def list_company_ids(self) -> List[str]:
        return [c["id"] for c in self.list_companies()]

    def get_company(self, company_id: str) -> Optional[Dict[str, Any]]:
        with session_scope(self.session_factory) as db:
            company = db.query(Company).filter(Company.id == company_id).first()
            return _company_dict(company) if company else None

    def get_mappings(self, company_id: str) -> Dict[str, ProviderAccount]:
        """platform -> mapped account (only mapped platforms appear)"""
        with session_scope(self.session_factory) as db:
            rows = db.query(PlatformMapping).filter(PlatformMapping.company_id == company_id).all()
            return {
                row.platform: ProviderAccount(
                    company_id=row.company_id,
                    platform=row.platform,
                    account_ref=row.account_ref,
                    owner_user_id=row.owner_user_id,
                )
                for row in rows
                if row.account_ref
            }

    def list_user_companies(self, user_id: str) -> List[Dict[str, Any]]:
        """Companies visible to a user, with the user's role"""
        with session_scope(self.session_factory) as db:
            rows = db.query(UserCompany, Company).join(
                Company, Company.id == UserCompany.company_id
            ).filter(UserCompany.user_id == user_id).order_by(Company.name.asc()).all()
            companies = []
            for access, company in rows:
                data = _company_dict(company)
                data["role"] = access.role
                companies.append(data)
            return companies

    def list_users_with_companies(self) -> List[str]:
        with session_scope(self.session_factory) as db:
            rows = db.query(UserCompany.user_id).distinct().order_by(UserCompany.user_id.asc()).all()
            return [r[0] for r in rows]

    def user_can_access(self, user_id: str, company_id: str) -> bool:
        with session_scope(self.session_factory) as db:
            return db.query(UserCompany).filter(
                UserCompany.user_id == user_id,
                UserCompany.company_id == company_id,
            ).first() is not None
