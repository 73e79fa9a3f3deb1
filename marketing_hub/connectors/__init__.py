"""Provider clients for the four analytics platforms"""

from marketing_hub.connectors.base import ProviderClient, ProviderAccount
from marketing_hub.connectors.ga4 import GA4Client
from marketing_hub.connectors.search_console import SearchConsoleClient
from marketing_hub.connectors.youtube import YouTubeClient
from marketing_hub.connectors.linkedin import LinkedInClient


def build_provider_clients(token_store=None, transport=None):
    """platform -> client"""
    return {
        "ga": GA4Client(token_store, transport),
        "gsc": SearchConsoleClient(token_store, transport),
        "yt": YouTubeClient(token_store, transport),
        "li": LinkedInClient(token_store, transport),
    }


__all__ = [
    "ProviderClient",
    "ProviderAccount",
    "GA4Client",
    "SearchConsoleClient",
    "YouTubeClient",
    "LinkedInClient",
    "build_provider_clients",
]
