"""
Exceptions raised by the cache and sync engine

The API layer maps these to HTTP responses; batch and background code
records them instead of raising.
"""
import asyncio
from typing import Dict, Optional, Tuple

import httpx


class MarketingHubError(Exception):
    """Base class for all marketing hub errors"""


class TransientFetchError(MarketingHubError):
    """Provider call failed in a way that may succeed later (timeout, 429, 5xx, network)"""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.platform = platform
        self.status_code = status_code
        super().__init__(f"{platform}: {message}")


class ProviderError(MarketingHubError):
    """Provider call failed permanently (bad request, revoked grant, unknown account)"""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.platform = platform
        self.status_code = status_code
        super().__init__(f"{platform}: {message}")


class MappingAbsentError(MarketingHubError):
    """Company has no provider mappings at all"""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"No platform mappings for company {company_id}")


class MissingTokenError(MarketingHubError):
    """No stored access token for the mapping owner"""

    def __init__(self, user_id: Optional[str], provider: str):
        self.user_id = user_id
        self.provider = provider
        super().__init__(f"No {provider} token for user {user_id}")


class PartialPlatformFailure(MarketingHubError):
    """Some platforms failed while others succeeded"""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__(", ".join(f"{p}: {e}" for p, e in sorted(self.errors.items())))


class TotalResolutionFailure(MarketingHubError):
    """No tier produced data for any platform"""

    def __init__(self, company_id: str, errors: Optional[Dict[str, str]] = None):
        self.company_id = company_id
        self.errors = dict(errors or {})
        super().__init__(f"No analytics data available for company {company_id}")


class NoIntegrationsConfigured(MarketingHubError):
    """Company has no mappings and nothing cached in any tier"""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"No integrations configured for company {company_id}")


class RateLimitExceeded(MarketingHubError):
    """Actor exceeded the admin action window"""

    def __init__(self, actor: str, action: str, limit: int, retry_after_seconds: int = 3600):
        self.actor = actor
        self.action = action
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limit exceeded for {action}: max {limit} per hour")


class InvalidSyncTransition(MarketingHubError):
    """Sync status state machine rejected a transition"""

    def __init__(self, company_id: str, platform: str, from_state: str, to_state: str):
        self.company_id = company_id
        self.platform = platform
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid sync transition for {company_id}/{platform}: {from_state} -> {to_state}")


TRANSIENT_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)


def classify_fetch_error(platform: str, error: Exception) -> MarketingHubError:
    """
    Map a raw provider exception onto the error taxonomy.

    Timeouts, connection failures, 429 and 5xx responses become
    TransientFetchError. Errors that are already classified pass through.
    Everything else is a ProviderError.
    """
    if isinstance(error, MarketingHubError):
        return error

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return TransientFetchError(platform, "request timed out")

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in TRANSIENT_STATUS_CODES:
            return TransientFetchError(platform, f"HTTP {status}", status_code=status)
        return ProviderError(platform, f"HTTP {status}: {error.response.text[:200]}", status_code=status)

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return TransientFetchError(platform, f"connection failed: {error}")

    error_str = str(error).lower()
    if "rate limit" in error_str or "too many requests" in error_str:
        return TransientFetchError(platform, str(error))
    if "timeout" in error_str or "timed out" in error_str:
        return TransientFetchError(platform, str(error))

    return ProviderError(platform, f"{type(error).__name__}: {error}")
