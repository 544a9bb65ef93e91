"""Domain timeline explorer.

Coordinates the query and publication backends for one domain at a time:
loads the run timeline, resolves the snapshot of the effective run and keeps
the publication drafts of the runs the user edits.

Fetches are not cancelled when the selection moves on. Each one remembers the
key it was issued for (domain, run, cutoff) and its response is dropped if
that key is no longer the active one by the time it arrives.
"""

import asyncio
import logging
from typing import Optional

from crawlscope.client.api import CollectApiError
from crawlscope.core.interfaces import (
    DomainQueryBackend,
    PublicationBackend,
    Snapshot,
    SnapshotRequest,
    SnapshotResolver,
)
from crawlscope.core.models import ClientConfig, CrawlRun, Domain
from crawlscope.engine.publication import (
    Action,
    PublicationChanges,
    PublicationState,
    PublicationWorkspace,
    build_payload,
    compute_changes,
)
from crawlscope.engine.timeline import Timeline, TimelineCursor, build_timeline
from crawlscope.resolvers.factory import SnapshotResolverFactory

logger = logging.getLogger(__name__)

SnapshotKey = tuple[Optional[str], Optional[str], Optional[float]]


class DomainTimelineExplorer:
    """Timeline, snapshot and publication drafts for one domain."""

    def __init__(
        self,
        queries: DomainQueryBackend,
        publisher: Optional[PublicationBackend] = None,
        resolver: Optional[SnapshotResolver] = None,
        config: Optional[ClientConfig] = None,
    ) -> None:
        """Initialize the explorer.

        Args:
            queries: Read side of the collect API.
            publisher: Write side; saving is unavailable without it.
            resolver: Snapshot strategy. Chosen from the backend's
                capabilities when omitted.
            config: Query limits and draft behavior.
        """
        self._config = config or ClientConfig()
        self._queries = queries
        self._publisher = publisher
        self._resolver = resolver or SnapshotResolverFactory.get_resolver(
            queries, config=self._config
        )

        self.cursor = TimelineCursor()
        self.workspace = PublicationWorkspace(preserve_drafts=self._config.preserve_drafts)
        self.domain: Optional[Domain] = None
        self.meta_errors: list[str] = []
        self.meta_error: Optional[str] = None
        self.snapshot = Snapshot()
        self.snapshot_error: Optional[str] = None
        self.save_error: Optional[str] = None
        self.cutoff: Optional[float] = None
        self._saving: set[str] = set()

    @property
    def resolver(self) -> SnapshotResolver:
        return self._resolver

    @property
    def domain_id(self) -> Optional[str]:
        return self.cursor.domain_id

    @property
    def timeline(self) -> Timeline[CrawlRun]:
        return self.cursor.timeline

    @property
    def effective_run(self) -> Optional[CrawlRun]:
        return self.cursor.effective_run

    @property
    def publication(self) -> Optional[PublicationState]:
        """Publication state of the effective run, once its snapshot loaded."""
        run = self.effective_run
        if run is None:
            return None
        return self.workspace.get(run.id)

    def _snapshot_key(self) -> SnapshotKey:
        run = self.effective_run
        return (self.domain_id, run.id if run else None, self.cutoff)

    async def open_domain(self, domain_id: str) -> None:
        """Load ``domain_id`` and the snapshot of its most recent run.

        Raises:
            ValueError: If ``domain_id`` is empty.
        """
        if not domain_id:
            raise ValueError("A domain id is required")

        if self.cursor.switch_domain(domain_id):
            logger.debug("Switching to domain %s", domain_id)
            self.domain = None
            self.meta_errors = []
            self.meta_error = None
            self.snapshot = Snapshot()
            self.snapshot_error = None
            self.save_error = None
            self.cutoff = None
            self.workspace.clear()

        await self.refresh()

    async def refresh(self) -> None:
        """Re-fetch the timeline and the current snapshot."""
        await self.refresh_meta()
        await self.refresh_snapshot()

    async def refresh_meta(self) -> bool:
        """Fetch the domain with its runs and URLs.

        Returns:
            True if the response was applied, False if it failed or was
            superseded by a newer selection.
        """
        domain_id = self.domain_id
        if not domain_id:
            return False

        try:
            result = await self._queries.fetch_domain_meta(
                domain_id, self._config.urls_limit, self._config.runs_limit
            )
        except CollectApiError as e:
            if domain_id != self.domain_id:
                return False
            logger.warning("Timeline fetch failed for %s: %s", domain_id, e.message)
            self.meta_error = e.message
            return False

        if domain_id != self.domain_id:
            logger.debug("Dropping stale timeline for %s", domain_id)
            return False

        self.meta_error = None
        self.meta_errors = list(result.errors)
        self.domain = result.data
        self.cursor.load(build_timeline(self.domain.crawl_runs if self.domain else []))
        return True

    async def refresh_snapshot(self) -> bool:
        """Resolve the snapshot for the current selection.

        A failure is recorded in ``snapshot_error``; the timeline stays as
        it is.

        Returns:
            True if a snapshot was applied.
        """
        key = self._snapshot_key()
        run = self.effective_run

        if self.domain is None or (run is None and self.cutoff is None):
            self.snapshot = Snapshot()
            self.snapshot_error = None
            return True

        request = SnapshotRequest(
            domain_id=self.domain.id, urls=self.domain.urls, run=run, cutoff=self.cutoff
        )
        try:
            snapshot = await self._resolver.resolve(request)
        except CollectApiError as e:
            if key != self._snapshot_key():
                return False
            logger.warning("Snapshot fetch failed for %s: %s", key, e.message)
            self.snapshot_error = e.message
            return False

        if key != self._snapshot_key():
            logger.debug("Dropping stale snapshot for %s", key)
            return False

        self.snapshot = snapshot
        self.snapshot_error = None
        # publication edits are keyed by run, so only run-scoped crawls count
        if run is not None and self.cutoff is None and self._resolver.is_run_scoped:
            self.workspace.sync(run, snapshot, self.domain)
        return True

    async def scrub(self, index: int) -> None:
        """Move along the completed-run timeline."""
        self.cursor.scrub(index)
        self.cutoff = None
        await self.refresh_snapshot()

    async def select_run(self, run_id: str) -> bool:
        """Inspect any listed run, overriding the scrub position."""
        if not self.cursor.select_run(run_id):
            return False
        self.cutoff = None
        await self.refresh_snapshot()
        return True

    async def follow_timeline(self) -> None:
        """Drop the explicit run selection and go back to the scrub position."""
        self.cursor.follow_timeline()
        self.cutoff = None
        await self.refresh_snapshot()

    async def show_at(self, cutoff: float) -> None:
        """Show each URL's latest crawl at or before ``cutoff`` (epoch ms)."""
        self.cutoff = cutoff
        await self.refresh_snapshot()

    def dispatch(self, action: Action) -> Optional[PublicationState]:
        """Apply a publication edit to the effective run's draft."""
        run = self.effective_run
        if run is None or run.id not in self.workspace:
            return None
        return self.workspace.dispatch(run.id, action)

    def changes(self) -> Optional[PublicationChanges]:
        state = self.publication
        return compute_changes(state) if state else None

    @property
    def saving(self) -> bool:
        """Whether the effective run's draft is being submitted."""
        state = self.publication
        return state is not None and state.run_id in self._saving

    @property
    def can_save(self) -> bool:
        state = self.publication
        return (
            self._publisher is not None
            and state is not None
            and state.run_id not in self._saving
            and self.workspace.is_pending(state.run_id)
        )

    async def save(self) -> bool:
        """Submit the effective run's draft as a minimal diff.

        On success the baseline is rebuilt from a fresh fetch and edits made
        while the request was in flight are replayed on top of it. On
        failure the draft is kept so the user can retry or reset.

        Returns:
            True if the API accepted the change.
        """
        if not self.can_save:
            return False

        state = self.publication
        payload = build_payload(state)
        if payload is None:
            return False

        run_id = state.run_id
        self._saving.add(run_id)
        try:
            try:
                await self._publisher.apply_publication(run_id, payload.to_dict())
            except CollectApiError as e:
                logger.warning("Saving publication for run %s failed: %s", run_id, e.message)
                self.save_error = e.message
                return False

            self.save_error = None
            self.workspace.mark_submitted(run_id, state.draft)
            await self.refresh()
        finally:
            self._saving.discard(run_id)
        return True

    async def poll(
        self, interval: Optional[float] = None, iterations: Optional[int] = None
    ) -> None:
        """Periodically re-fetch for live run and crawl status.

        Args:
            interval: Seconds between refreshes (defaults to the config).
            iterations: Stop after this many refreshes; run forever if None.
        """
        interval = self._config.poll_interval if interval is None else interval
        count = 0
        while iterations is None or count < iterations:
            await self.refresh()
            count += 1
            if iterations is not None and count >= iterations:
                break
            await asyncio.sleep(interval)
