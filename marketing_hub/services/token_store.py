"""
Stored OAuth access tokens

Reads bearer tokens saved by the (external) OAuth flow. Refreshing expired
tokens is not handled here.
"""
from datetime import datetime
from typing import Optional

from marketing_hub.exceptions import MissingTokenError
from marketing_hub.models.base import SessionLocal, session_scope
from marketing_hub.models.company import OAuthToken

# platform -> OAuth provider holding the grant
PLATFORM_PROVIDERS = {
    "ga": "google",
    "gsc": "google",
    "yt": "google",
    "li": "linkedin",
}


class TokenStore:

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get_access_token(self, user_id: Optional[str], provider: str) -> str:
        if not user_id:
            raise MissingTokenError(user_id, provider)

        with session_scope(self.session_factory) as db:
            token = db.query(OAuthToken).filter(
                OAuthToken.user_id == user_id,
                OAuthToken.provider == provider,
            ).first()
            if token is None or not token.access_token:
                raise MissingTokenError(user_id, provider)
            if token.expires_at is not None and token.expires_at <= datetime.utcnow():
                raise MissingTokenError(user_id, f"{provider} (expired)")
            return token.access_token

    def save_token(self, user_id: str, provider: str, access_token: str,
                   expires_at: Optional[datetime] = None, scope: Optional[str] = None) -> None:
        with session_scope(self.session_factory) as db:
            token = db.query(OAuthToken).filter(
                OAuthToken.user_id == user_id,
                OAuthToken.provider == provider,
            ).first()
            if token is None:
                token = OAuthToken(user_id=user_id, provider=provider)
                db.add(token)
            token.access_token = access_token
            token.expires_at = expires_at
            token.scope = scope
            token.updated_at = datetime.utcnow()
