"""
crawlscope - Crawl timeline explorer and publication diffing for the collect API.

Rebuilds the crawl-run timeline of a domain, resolves the crawl shown for
every URL at any point of it, and submits minimal publication diffs.

Usage:
    crawlscope timeline dom_123
    crawlscope snapshot dom_123 --index 0
    crawlscope publish dom_123 --run run_9 --crawl crawl_1 --dry-run
"""

__version__ = "0.1.0"

from crawlscope.core.interfaces import (
    DomainQueryBackend,
    PublicationBackend,
    QueryResult,
    Snapshot,
    SnapshotEntry,
    SnapshotRequest,
    SnapshotResolver,
)
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

__all__ = [
    "__version__",
    # Models
    "ClientConfig",
    "CrawlRun",
    "CrawlStatus",
    "Domain",
    "ReviewStatus",
    "Url",
    "UrlCrawl",
    "UrlType",
    # Interfaces
    "DomainQueryBackend",
    "PublicationBackend",
    "QueryResult",
    "Snapshot",
    "SnapshotEntry",
    "SnapshotRequest",
    "SnapshotResolver",
]
