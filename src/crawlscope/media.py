"""Helpers for screenshot URLs served by the collect API storage."""

from typing import Optional
from urllib.parse import urljoin, urlparse

DEFAULT_PLACEHOLDER = "/placeholder-site.svg"

# Images on this host were retired and no longer resolve
RETIRED_CDN_HOSTS = frozenset({"cdn.collect.design"})


def resolve_storage_public_url(public_url: str, api_url: str) -> str:
    """Make a storage path absolute against the API base URL.

    Args:
        public_url: URL as stored on the screenshot record.
        api_url: Base URL of the collect API.

    Returns:
        Absolute URL for ``/storage`` paths; anything else unchanged.
    """
    if public_url.startswith(("http://", "https://")):
        return public_url
    if public_url.startswith("/storage"):
        return urljoin(api_url.rstrip("/") + "/", public_url.lstrip("/"))
    return public_url


def display_image_src(
    public_url: Optional[str],
    api_url: str,
    placeholder: str = DEFAULT_PLACEHOLDER,
) -> str:
    """Return the image source to show for a screenshot.

    Missing images and images on retired hosts are replaced by
    ``placeholder``.
    """
    if not public_url:
        return placeholder

    resolved = resolve_storage_public_url(public_url, api_url)
    if resolved.startswith(("http://", "https://")):
        host = urlparse(resolved).hostname
        if host in RETIRED_CDN_HOSTS:
            return placeholder

    return resolved
