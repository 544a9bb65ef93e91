"""Snapshot resolution by picking the latest crawl before a cutoff."""

import logging
from typing import Optional

from crawlscope.core.interfaces import (
    DomainQueryBackend,
    Snapshot,
    SnapshotEntry,
    SnapshotRequest,
    SnapshotResolver,
)
from crawlscope.core.models import Url, UrlCrawl
from crawlscope.core.timeutil import crawl_epoch, is_valid_epoch, run_epoch

logger = logging.getLogger(__name__)


def latest_at_or_before(crawls: list[UrlCrawl], cutoff: float) -> Optional[UrlCrawl]:
    """Return the crawl with the largest position that is ``<= cutoff``.

    Crawls without a valid timestamp never qualify. Ties on the position go
    to the larger id so the choice does not depend on input order.
    """
    best: Optional[UrlCrawl] = None
    best_key: Optional[tuple[float, str]] = None

    for crawl in crawls:
        epoch = crawl_epoch(crawl)
        if not is_valid_epoch(epoch) or epoch > cutoff:
            continue
        key = (epoch, crawl.id)
        if best_key is None or key > best_key:
            best, best_key = crawl, key

    return best


def resolve_at_cutoff(
    urls: list[Url],
    cutoff: float,
    history: Optional[dict[str, list[UrlCrawl]]] = None,
) -> Snapshot:
    """Build a snapshot from each URL's crawl history.

    Args:
        urls: The domain's URLs, in display order.
        cutoff: Epoch milliseconds; inclusive upper bound.
        history: Crawls per URL id. Defaults to each URL's own ``crawls``.

    Returns:
        Snapshot with one entry per URL.
    """
    entries = [
        SnapshotEntry(
            url=url,
            crawl=latest_at_or_before(
                history.get(url.id, []) if history is not None else url.crawls, cutoff
            ),
        )
        for url in urls
    ]
    return Snapshot(cutoff=cutoff, entries=entries)


class TimeCutoffResolver(SnapshotResolver):
    """Resolve URLs against their crawl histories at a point in time.

    Used when the data source has no run association for crawls.
    """

    def __init__(
        self,
        backend: DomainQueryBackend,
        urls_limit: int = 50,
        crawls_limit: int = 50,
    ) -> None:
        self._backend = backend
        self._urls_limit = urls_limit
        self._crawls_limit = crawls_limit

    @property
    def name(self) -> str:
        return "time-cutoff"

    def _cutoff_for(self, request: SnapshotRequest) -> Optional[float]:
        if request.cutoff is not None:
            return request.cutoff
        if request.run is not None:
            epoch = run_epoch(request.run)
            if is_valid_epoch(epoch):
                return epoch
        return None

    async def resolve(self, request: SnapshotRequest) -> Snapshot:
        """Resolve the snapshot at ``request.cutoff`` (or the run's position).

        Raises:
            CollectApiError: On transport failure.
        """
        cutoff = self._cutoff_for(request)
        if cutoff is None:
            return Snapshot()

        logger.debug("Fetching crawl history domain=%s cutoff=%s", request.domain_id, cutoff)
        result = await self._backend.fetch_crawl_history(
            request.domain_id, self._urls_limit, self._crawls_limit
        )

        history = {url.id: url.crawls for url in result.data or []}
        snapshot = resolve_at_cutoff(request.urls, cutoff, history)
        snapshot.run_id = request.run.id if request.run else None
        snapshot.errors = list(result.errors)
        return snapshot
