"""Timeline, snapshot and publication engine."""

from crawlscope.engine.explorer import DomainTimelineExplorer
from crawlscope.engine.publication import (
    PublicationState,
    PublicationWorkspace,
    build_payload,
    compute_changes,
    reduce,
)
from crawlscope.engine.timeline import Timeline, TimelineCursor, build_timeline

__all__ = [
    "DomainTimelineExplorer",
    "PublicationState",
    "PublicationWorkspace",
    "build_payload",
    "compute_changes",
    "reduce",
    "Timeline",
    "TimelineCursor",
    "build_timeline",
]
