"""Core models and interfaces for crawlscope."""

from crawlscope.core.models import (
    ClientConfig,
    CrawlRun,
    CrawlStatus,
    Domain,
    ReviewStatus,
    Url,
    UrlCrawl,
    UrlType,
)
from crawlscope.core.interfaces import (
    DomainQueryBackend,
    PublicationBackend,
    QueryResult,
    Snapshot,
    SnapshotEntry,
    SnapshotRequest,
    SnapshotResolver,
)

__all__ = [
    "ClientConfig",
    "CrawlRun",
    "CrawlStatus",
    "Domain",
    "ReviewStatus",
    "Url",
    "UrlCrawl",
    "UrlType",
    "DomainQueryBackend",
    "PublicationBackend",
    "QueryResult",
    "Snapshot",
    "SnapshotEntry",
    "SnapshotRequest",
    "SnapshotResolver",
]
