"""Timeline construction for crawl runs and URL crawl histories."""

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar, Union

from crawlscope.core.models import CrawlRun, Url, UrlCrawl
from crawlscope.core.timeutil import (
    ascending_key,
    crawl_epoch,
    descending_key,
    is_valid_epoch,
    record_epoch,
)

R = TypeVar("R", bound=Union[CrawlRun, UrlCrawl])


@dataclass
class Timeline(Generic[R]):
    """Ordered views over a domain's crawl runs.

    ``scrub`` holds completed runs oldest first (index 0 is the earliest).
    ``listing`` holds every run newest first, undated runs last.
    """

    scrub: list[R] = field(default_factory=list)
    listing: list[R] = field(default_factory=list)
    active: list[R] = field(default_factory=list)

    @property
    def last_index(self) -> int:
        return max(0, len(self.scrub) - 1)

    def clamp(self, index: int) -> int:
        return min(max(index, 0), self.last_index)

    def at(self, index: int) -> Optional[R]:
        if not self.scrub:
            return None
        return self.scrub[self.clamp(index)]

    def find(self, record_id: Optional[str]) -> Optional[R]:
        if not record_id:
            return None
        return next((r for r in self.listing if r.id == record_id), None)

    def index_of(self, record_id: str) -> Optional[int]:
        for i, record in enumerate(self.scrub):
            if record.id == record_id:
                return i
        return None


def build_timeline(runs: list[CrawlRun]) -> Timeline[CrawlRun]:
    """Build scrub, listing and active views from a domain's crawl runs."""
    completed = [
        run
        for run in runs
        if run.status.is_completed and is_valid_epoch(record_epoch(run))
    ]
    completed.sort(key=ascending_key)

    listing = sorted(runs, key=descending_key)
    active = [run for run in listing if run.status.is_active]

    return Timeline(scrub=completed, listing=listing, active=active)


def build_crawl_timeline(crawls: list[UrlCrawl]) -> Timeline[UrlCrawl]:
    """Same views for the crawl history of a single URL."""
    completed = [
        crawl
        for crawl in crawls
        if crawl.status.is_completed and is_valid_epoch(crawl_epoch(crawl))
    ]
    completed.sort(key=ascending_key)

    listing = sorted(crawls, key=descending_key)
    active = [crawl for crawl in listing if crawl.status.is_active]

    return Timeline(scrub=completed, listing=listing, active=active)


def cutoff_checkpoints(urls: list[Url]) -> list[float]:
    """Distinct crawl epochs across all URL histories, ascending.

    These are the positions a time-based scrubber can stop at.
    """
    epochs = {
        crawl_epoch(crawl)
        for url in urls
        for crawl in url.crawls
    }
    return sorted(ms for ms in epochs if is_valid_epoch(ms))


class TimelineCursor:
    """Scrub position and explicit run selection for one domain.

    The scrub index defaults to the most recent completed run the first time
    a non-empty timeline is seen for a domain. Switching domains starts over.
    """

    def __init__(self, domain_id: Optional[str] = None) -> None:
        self.domain_id = domain_id
        self.index = 0
        self.selected_run_id: Optional[str] = None
        self.initialized = False
        self._timeline: Timeline[CrawlRun] = Timeline()

    @property
    def timeline(self) -> Timeline[CrawlRun]:
        return self._timeline

    def switch_domain(self, domain_id: str) -> bool:
        """Point the cursor at another domain.

        Returns:
            True if the domain changed and the cursor was reset.
        """
        if domain_id == self.domain_id:
            return False
        self.domain_id = domain_id
        self.index = 0
        self.selected_run_id = None
        self.initialized = False
        self._timeline = Timeline()
        return True

    def load(self, timeline: Timeline[CrawlRun]) -> None:
        """Attach a freshly built timeline for the current domain."""
        self._timeline = timeline
        if not self.initialized and timeline.scrub:
            self.index = timeline.last_index
            self.initialized = True

    def scrub(self, index: int) -> None:
        """Move the scrub position; any explicit selection is dropped."""
        self.index = self._timeline.clamp(index)
        self.selected_run_id = None

    def select_run(self, run_id: str) -> bool:
        """Select any listed run directly, including active ones."""
        if self._timeline.find(run_id) is None:
            return False
        self.selected_run_id = run_id
        return True

    def follow_timeline(self) -> None:
        self.selected_run_id = None

    @property
    def scrub_run(self) -> Optional[CrawlRun]:
        return self._timeline.at(self.index)

    @property
    def selected_run(self) -> Optional[CrawlRun]:
        return self._timeline.find(self.selected_run_id)

    @property
    def effective_run(self) -> Optional[CrawlRun]:
        return self.selected_run or self.scrub_run
