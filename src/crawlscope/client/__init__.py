"""Remote collaborators backed by the collect API."""

from crawlscope.client.api import CollectApiClient, CollectApiError

__all__ = ["CollectApiClient", "CollectApiError"]
