"""Snapshot resolution from crawls the server associates with a run."""

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

logger = logging.getLogger(__name__)


def build_run_snapshot(
    urls: list[Url], scoped_urls: list[Url], run_id: Optional[str] = None
) -> Snapshot:
    """Pair every domain URL with its crawl in the run.

    Args:
        urls: The domain's URLs, in display order.
        scoped_urls: URLs returned by the run-scoped query, carrying
            ``crawl_in_run``. May be partial.
        run_id: Run the crawls belong to.

    Returns:
        Snapshot with one entry per URL in ``urls``; URLs missing from
        ``scoped_urls`` or without a crawl in the run map to ``None``.
    """
    crawl_by_url_id: dict[str, Optional[UrlCrawl]] = {}
    for scoped in scoped_urls:
        crawl_by_url_id[scoped.id] = scoped.crawl_in_run

    entries = [SnapshotEntry(url=url, crawl=crawl_by_url_id.get(url.id)) for url in urls]
    return Snapshot(run_id=run_id, entries=entries)


class RunScopedResolver(SnapshotResolver):
    """Resolve each URL to the crawl created for the selected run.

    One batched query returns every URL with its ``crawlInRun``.
    """

    def __init__(self, backend: DomainQueryBackend, urls_limit: int = 50) -> None:
        self._backend = backend
        self._urls_limit = urls_limit

    @property
    def name(self) -> str:
        return "run-scoped"

    @property
    def is_run_scoped(self) -> bool:
        return True

    async def resolve(self, request: SnapshotRequest) -> Snapshot:
        """Resolve the snapshot of ``request.run``.

        Args:
            request: Domain URLs and the run to resolve.

        Returns:
            Complete snapshot, or an empty one when there is no run.

        Raises:
            CollectApiError: On transport failure.
        """
        run = request.run
        if run is None or not run.id:
            return Snapshot()

        logger.debug("Fetching run snapshot domain=%s run=%s", request.domain_id, run.id)
        result = await self._backend.fetch_run_snapshot(
            request.domain_id, run.id, self._urls_limit
        )

        snapshot = build_run_snapshot(request.urls, result.data or [], run_id=run.id)
        snapshot.errors = list(result.errors)
        return snapshot
