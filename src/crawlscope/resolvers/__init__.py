"""Snapshot resolution strategies."""

from crawlscope.resolvers.factory import SnapshotResolverFactory
from crawlscope.resolvers.run_scoped import RunScopedResolver, build_run_snapshot
from crawlscope.resolvers.time_cutoff import TimeCutoffResolver, resolve_at_cutoff

__all__ = [
    "SnapshotResolverFactory",
    "RunScopedResolver",
    "TimeCutoffResolver",
    "build_run_snapshot",
    "resolve_at_cutoff",
]
