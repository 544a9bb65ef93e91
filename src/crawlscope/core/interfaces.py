"""Abstract interfaces for crawlscope."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from crawlscope.core.models import CrawlRun, Domain, Url, UrlCrawl, UrlType

T = TypeVar("T")


@dataclass
class QueryResult(Generic[T]):
    """Result envelope of a remote query.

    ``errors`` holds structured error messages returned next to (possibly
    partial) ``data``. They never block rendering what did arrive.
    """

    data: Optional[T] = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class SnapshotEntry:
    """One URL of a snapshot and the crawl resolved for it."""

    url: Url
    crawl: Optional[UrlCrawl] = None

    @property
    def is_crawled(self) -> bool:
        return self.crawl is not None


@dataclass
class Snapshot:
    """Per-URL crawl results for one run or one point in time."""

    run_id: Optional[str] = None
    cutoff: Optional[float] = None
    entries: list[SnapshotEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def homepage(self) -> Optional[SnapshotEntry]:
        return next((e for e in self.entries if e.url.type == UrlType.HOMEPAGE), None)

    @property
    def crawls(self) -> list[UrlCrawl]:
        return [e.crawl for e in self.entries if e.crawl is not None]

    @property
    def crawled_count(self) -> int:
        return len(self.crawls)

    def crawl_for(self, url_id: str) -> Optional[UrlCrawl]:
        for entry in self.entries:
            if entry.url.id == url_id:
                return entry.crawl
        return None

    @property
    def main_screenshot_url(self) -> Optional[str]:
        """Screenshot used to illustrate the whole snapshot.

        The homepage crawl's first screenshot, else the first URL's.
        """
        entry = self.homepage or (self.entries[0] if self.entries else None)
        if entry is None or entry.crawl is None or not entry.crawl.screenshots:
            return None
        return entry.crawl.screenshots[0].public_url


@dataclass
class SnapshotRequest:
    """What a resolver needs to build a snapshot.

    ``cutoff`` (epoch milliseconds) is only read by time-based resolvers;
    when it is missing they fall back to the run's own timeline position.
    """

    domain_id: str
    urls: list[Url]
    run: Optional[CrawlRun] = None
    cutoff: Optional[float] = None


class DomainQueryBackend(ABC):
    """Read side of the collect API."""

    @property
    def supports_run_scope(self) -> bool:
        """Whether the backend can return crawls scoped to a run."""
        return True

    @abstractmethod
    async def fetch_domain_meta(
        self, domain_id: str, urls_limit: int, runs_limit: int
    ) -> QueryResult[Domain]:
        """Fetch a domain with its crawl runs and URLs.

        Args:
            domain_id: Domain to load.
            urls_limit: Maximum number of URLs.
            runs_limit: Maximum number of crawl runs.

        Returns:
            Envelope holding the domain (``None`` when not found).
        """
        ...

    @abstractmethod
    async def fetch_run_snapshot(
        self, domain_id: str, run_id: str, urls_limit: int
    ) -> QueryResult[list[Url]]:
        """Fetch every URL of a domain with its crawl in one run.

        Args:
            domain_id: Domain to load.
            run_id: Crawl run the crawls must belong to.
            urls_limit: Maximum number of URLs.

        Returns:
            Envelope holding URLs with ``crawl_in_run`` populated.
        """
        ...

    @abstractmethod
    async def fetch_crawl_history(
        self, domain_id: str, urls_limit: int, crawls_limit: int
    ) -> QueryResult[list[Url]]:
        """Fetch every URL of a domain with its crawl history.

        Args:
            domain_id: Domain to load.
            urls_limit: Maximum number of URLs.
            crawls_limit: Maximum number of crawls per URL.

        Returns:
            Envelope holding URLs with ``crawls`` populated.
        """
        ...


class PublicationBackend(ABC):
    """Write side of the collect API for publication changes."""

    @abstractmethod
    async def apply_publication(self, run_id: str, payload: dict[str, Any]) -> None:
        """Apply a publication diff for one crawl run atomically.

        Args:
            run_id: Crawl run the diff is keyed by.
            payload: Serialized diff; absent keys mean "no change".

        Raises:
            CollectApiError: If the change was not applied.
        """
        ...


class SnapshotResolver(ABC):
    """Abstract base class for snapshot resolution strategies."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this resolution strategy."""
        ...

    @property
    def is_run_scoped(self) -> bool:
        """Whether snapshots hold exactly the crawls of the requested run."""
        return False

    @abstractmethod
    async def resolve(self, request: SnapshotRequest) -> Snapshot:
        """Resolve the crawl shown for every URL of the request.

        Args:
            request: Domain URLs and the point in time to resolve.

        Returns:
            Snapshot with exactly one entry per requested URL.
        """
        ...
