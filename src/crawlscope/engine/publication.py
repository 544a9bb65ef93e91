"""Draft/baseline publication state for crawl runs.

The baseline mirrors what the server last reported as public; the draft holds
local edits. Edits go through :func:`reduce`, a pure ``(state, action) ->
state`` function, and :func:`compute_changes` turns the difference between
the two layers into the minimal diff to submit.

Actions that are not currently allowed (for example picking a section while
the homepage crawl is not drafted public) leave the state unchanged. Callers
check the ``can_*`` properties to disable the matching controls.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Union

from crawlscope.core.interfaces import Snapshot
from crawlscope.core.models import CrawlRun, CrawlStatus, Domain, ReviewStatus

logger = logging.getLogger(__name__)


class DomainSuggestion(Enum):
    """One-shot proposal to publish the domain alongside a run.

    UNSET: nothing proposed yet. SUGGESTED: the draft domain flag was set on
    the user's behalf once. USER_OVERRIDDEN: the user set the flag
    explicitly, so it is never proposed again.
    """

    UNSET = "unset"
    SUGGESTED = "suggested"
    USER_OVERRIDDEN = "user_overridden"


@dataclass(frozen=True)
class PublicationFields:
    """The publication flags tracked for one run."""

    run_is_published: bool = False
    run_tags: frozenset[str] = frozenset()
    published_crawl_ids: frozenset[str] = frozenset()
    published_section_ids: frozenset[str] = frozenset()
    domain_is_published: bool = False


# Actions


@dataclass(frozen=True)
class ToggleCrawlPublished:
    crawl_id: str


@dataclass(frozen=True)
class ToggleSectionPublished:
    section_id: str


@dataclass(frozen=True)
class SelectAllCrawls:
    pass


@dataclass(frozen=True)
class ClearCrawls:
    pass


@dataclass(frozen=True)
class SelectAllSections:
    pass


@dataclass(frozen=True)
class ClearSections:
    pass


@dataclass(frozen=True)
class ToggleRunTag:
    tag: str
    enabled: bool


@dataclass(frozen=True)
class SetRunPublished:
    value: bool


@dataclass(frozen=True)
class SetDomainPublished:
    value: bool


@dataclass(frozen=True)
class ResetDraft:
    pass


Action = Union[
    ToggleCrawlPublished,
    ToggleSectionPublished,
    SelectAllCrawls,
    ClearCrawls,
    SelectAllSections,
    ClearSections,
    ToggleRunTag,
    SetRunPublished,
    SetDomainPublished,
    ResetDraft,
]


@dataclass(frozen=True)
class PublicationState:
    """Publication state of one crawl run and its snapshot."""

    run_id: str
    run_status: CrawlStatus
    review_status: Optional[ReviewStatus] = None
    eligible_crawl_ids: frozenset[str] = frozenset()
    homepage_crawl_id: Optional[str] = None
    homepage_crawl_status: Optional[CrawlStatus] = None
    homepage_section_ids: tuple[str, ...] = ()
    domain_has_published_run: bool = False
    baseline: PublicationFields = field(default_factory=PublicationFields)
    draft: PublicationFields = field(default_factory=PublicationFields)
    suggestion: DomainSuggestion = DomainSuggestion.UNSET

    @classmethod
    def from_snapshot(
        cls,
        run: CrawlRun,
        snapshot: Snapshot,
        domain: Optional[Domain] = None,
    ) -> "PublicationState":
        """Compute the baseline for ``run`` and start with an equal draft.

        Args:
            run: The crawl run being edited.
            snapshot: The run's resolved snapshot.
            domain: Owning domain, for the domain-level flag.

        Returns:
            A state whose draft equals its baseline.
        """
        crawls = snapshot.crawls

        published_crawl_ids = frozenset(c.id for c in crawls if c.is_published)
        published_section_ids = frozenset(
            s.id for c in crawls for s in c.sections if s.is_published
        )
        eligible = frozenset(c.id for c in crawls if c.status == CrawlStatus.SUCCESS)

        homepage = snapshot.homepage
        homepage_crawl = homepage.crawl if homepage else None

        baseline = PublicationFields(
            run_is_published=run.is_published,
            run_tags=frozenset(run.tags),
            published_crawl_ids=published_crawl_ids,
            published_section_ids=published_section_ids,
            domain_is_published=bool(domain and domain.is_published),
        )

        return cls(
            run_id=run.id,
            run_status=run.status,
            review_status=run.review_status,
            eligible_crawl_ids=eligible,
            homepage_crawl_id=homepage_crawl.id if homepage_crawl else None,
            homepage_crawl_status=homepage_crawl.status if homepage_crawl else None,
            homepage_section_ids=tuple(
                s.id for s in sorted(homepage_crawl.sections, key=lambda s: s.index)
            )
            if homepage_crawl
            else (),
            domain_has_published_run=bool(domain and domain.has_published_run),
            baseline=baseline,
            draft=baseline,
        )

    @property
    def can_publish_selection(self) -> bool:
        return self.run_status == CrawlStatus.SUCCESS

    @property
    def can_pick_sections(self) -> bool:
        return (
            self.homepage_crawl_id is not None
            and self.homepage_crawl_status == CrawlStatus.SUCCESS
            and self.can_publish_selection
            and self.homepage_crawl_id in self.draft.published_crawl_ids
        )

    @property
    def has_changes(self) -> bool:
        return compute_changes(self).has_changes

    @property
    def can_save(self) -> bool:
        return self.has_changes

    @property
    def marks_reviewed(self) -> bool:
        return self.review_status == ReviewStatus.PENDING_REVIEW


def _toggle(ids: frozenset[str], item: str) -> frozenset[str]:
    if item in ids:
        return ids - {item}
    return ids | {item}


def _apply(state: PublicationState, action: Action) -> Optional[PublicationFields]:
    """Return the new draft for ``action``, or ``None`` if it is not allowed."""
    draft = state.draft

    if isinstance(action, ToggleRunTag):
        tag = action.tag.strip()
        if not tag:
            return None
        tags = draft.run_tags | {tag} if action.enabled else draft.run_tags - {tag}
        return replace(draft, run_tags=tags)

    if not state.can_publish_selection:
        return None

    if isinstance(action, SetRunPublished):
        return replace(draft, run_is_published=action.value)

    if isinstance(action, ToggleCrawlPublished):
        crawl_id = action.crawl_id
        if crawl_id in draft.published_crawl_ids:
            sections = draft.published_section_ids
            if crawl_id == state.homepage_crawl_id:
                sections = frozenset()
            return replace(
                draft,
                published_crawl_ids=draft.published_crawl_ids - {crawl_id},
                published_section_ids=sections,
            )
        if crawl_id not in state.eligible_crawl_ids:
            return None
        return replace(draft, published_crawl_ids=draft.published_crawl_ids | {crawl_id})

    if isinstance(action, SelectAllCrawls):
        return replace(draft, published_crawl_ids=state.eligible_crawl_ids)

    if isinstance(action, ClearCrawls):
        return replace(
            draft, published_crawl_ids=frozenset(), published_section_ids=frozenset()
        )

    if isinstance(action, ClearSections):
        return replace(draft, published_section_ids=frozenset())

    if not state.can_pick_sections:
        return None

    if isinstance(action, ToggleSectionPublished):
        section_id = action.section_id
        if (
            section_id not in draft.published_section_ids
            and section_id not in state.homepage_section_ids
        ):
            return None
        return replace(
            draft,
            published_section_ids=_toggle(draft.published_section_ids, section_id),
        )

    if isinstance(action, SelectAllSections):
        return replace(draft, published_section_ids=frozenset(state.homepage_section_ids))

    return None


def _suggest_domain(state: PublicationState) -> PublicationState:
    """Propose publishing the domain once, unless the user already decided."""
    if state.suggestion is not DomainSuggestion.UNSET:
        return state

    draft = state.draft
    wants_public = (
        state.domain_has_published_run
        or draft.run_is_published
        or bool(draft.published_crawl_ids)
    )
    if not wants_public or draft.domain_is_published:
        return state

    logger.debug("Suggesting domain publication for run %s", state.run_id)
    return replace(
        state,
        draft=replace(draft, domain_is_published=True),
        suggestion=DomainSuggestion.SUGGESTED,
    )


def _publishes(action: Action, before: PublicationFields, after: PublicationFields) -> bool:
    """Whether ``action`` made something public that was not before."""
    if isinstance(action, SetRunPublished):
        return action.value
    if isinstance(action, (ToggleCrawlPublished, SelectAllCrawls)):
        return bool(after.published_crawl_ids - before.published_crawl_ids)
    if isinstance(action, (ToggleSectionPublished, SelectAllSections)):
        return bool(after.published_section_ids - before.published_section_ids)
    return False


def reduce(state: PublicationState, action: Action) -> PublicationState:
    """Apply one edit to the draft.

    The domain flag is only proposed after an edit that publishes something;
    tag edits and removals never touch it.

    Args:
        state: Current state.
        action: Edit to apply.

    Returns:
        The new state, or ``state`` itself when the action is not allowed
        or changes nothing. The baseline is never modified.
    """
    if isinstance(action, ResetDraft):
        if state.draft == state.baseline:
            return state
        return replace(state, draft=state.baseline)

    if isinstance(action, SetDomainPublished):
        return replace(
            state,
            draft=replace(state.draft, domain_is_published=action.value),
            suggestion=DomainSuggestion.USER_OVERRIDDEN,
        )

    draft = _apply(state, action)
    if draft is None:
        logger.debug("Ignoring %s on run %s", type(action).__name__, state.run_id)
        return state
    if draft == state.draft:
        return state

    new_state = replace(state, draft=draft)
    if _publishes(action, state.draft, draft):
        return _suggest_domain(new_state)
    return new_state


def _rebase_ids(
    fresh: frozenset[str], base: frozenset[str], draft: frozenset[str]
) -> frozenset[str]:
    return (fresh | (draft - base)) - (base - draft)


def rebase(
    fresh: PublicationFields, base: PublicationFields, draft: PublicationFields
) -> PublicationFields:
    """Replay the edits ``draft`` made on top of ``base`` onto ``fresh``.

    Fields the draft left alone take the fresh server value, so a later
    save only resubmits what the user actually changed.

    Args:
        fresh: Newly fetched baseline.
        base: Baseline the draft was edited from.
        draft: Edited fields.

    Returns:
        The rebased draft.
    """

    def flag(name: str) -> bool:
        edited = getattr(draft, name)
        return edited if edited != getattr(base, name) else getattr(fresh, name)

    return PublicationFields(
        run_is_published=flag("run_is_published"),
        run_tags=_rebase_ids(fresh.run_tags, base.run_tags, draft.run_tags),
        published_crawl_ids=_rebase_ids(
            fresh.published_crawl_ids, base.published_crawl_ids, draft.published_crawl_ids
        ),
        published_section_ids=_rebase_ids(
            fresh.published_section_ids,
            base.published_section_ids,
            draft.published_section_ids,
        ),
        domain_is_published=flag("domain_is_published"),
    )


@dataclass(frozen=True)
class PublicationChanges:
    """Difference between a state's draft and baseline."""

    crawls_to_publish: list[str] = field(default_factory=list)
    crawls_to_unpublish: list[str] = field(default_factory=list)
    sections_to_publish: list[str] = field(default_factory=list)
    sections_to_unpublish: list[str] = field(default_factory=list)
    run_tags_changed: bool = False
    run_is_published_changed: bool = False
    domain_is_published_changed: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(
            self.crawls_to_publish
            or self.crawls_to_unpublish
            or self.sections_to_publish
            or self.sections_to_unpublish
            or self.run_tags_changed
            or self.run_is_published_changed
            or self.domain_is_published_changed
        )


def _normalized_tags(tags: frozenset[str]) -> list[str]:
    return sorted({t.strip() for t in tags if t.strip()})


def compute_changes(state: PublicationState) -> PublicationChanges:
    """Compute the minimal diff between draft and baseline."""
    draft, baseline = state.draft, state.baseline

    return PublicationChanges(
        crawls_to_publish=sorted(draft.published_crawl_ids - baseline.published_crawl_ids),
        crawls_to_unpublish=sorted(baseline.published_crawl_ids - draft.published_crawl_ids),
        sections_to_publish=sorted(
            draft.published_section_ids - baseline.published_section_ids
        ),
        sections_to_unpublish=sorted(
            baseline.published_section_ids - draft.published_section_ids
        ),
        run_tags_changed=_normalized_tags(draft.run_tags) != _normalized_tags(baseline.run_tags),
        run_is_published_changed=draft.run_is_published != baseline.run_is_published,
        domain_is_published_changed=draft.domain_is_published != baseline.domain_is_published,
    )


@dataclass
class PublicationPayload:
    """Publication diff for one run, as accepted by the collect API.

    ``None`` fields are not sent.
    """

    domain_is_published: Optional[bool] = None
    crawl_run_is_published: Optional[bool] = None
    crawl_run_tags: Optional[list[str]] = None
    mark_reviewed: Optional[bool] = None
    crawls_to_publish: Optional[list[str]] = None
    crawls_to_unpublish: Optional[list[str]] = None
    sections_to_publish: Optional[list[str]] = None
    sections_to_unpublish: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the API's camelCase JSON body."""
        data = {
            "domainIsPublished": self.domain_is_published,
            "crawlRunIsPublished": self.crawl_run_is_published,
            "crawlRunTags": self.crawl_run_tags,
            "markReviewed": self.mark_reviewed,
            "crawlsToPublish": self.crawls_to_publish,
            "crawlsToUnpublish": self.crawls_to_unpublish,
            "sectionsToPublish": self.sections_to_publish,
            "sectionsToUnpublish": self.sections_to_unpublish,
        }
        return {key: value for key, value in data.items() if value is not None}


def build_payload(state: PublicationState) -> Optional[PublicationPayload]:
    """Build the submission for ``state``.

    Returns:
        Payload carrying only changed fields, or ``None`` when the draft
        equals the baseline and nothing may be submitted.
    """
    changes = compute_changes(state)
    if not changes.has_changes:
        return None

    draft = state.draft
    return PublicationPayload(
        domain_is_published=draft.domain_is_published
        if changes.domain_is_published_changed
        else None,
        crawl_run_is_published=draft.run_is_published
        if changes.run_is_published_changed
        else None,
        crawl_run_tags=_normalized_tags(draft.run_tags) if changes.run_tags_changed else None,
        mark_reviewed=True if state.marks_reviewed else None,
        crawls_to_publish=changes.crawls_to_publish or None,
        crawls_to_unpublish=changes.crawls_to_unpublish or None,
        sections_to_publish=changes.sections_to_publish or None,
        sections_to_unpublish=changes.sections_to_unpublish or None,
    )


class PublicationWorkspace:
    """Publication states for the runs of one domain.

    With ``preserve_drafts`` (accordion layout) every run keeps its own draft
    until it is saved or reset. Without it (single panel) switching to
    another run throws away the drafts of every other run.
    """

    def __init__(self, preserve_drafts: bool = True) -> None:
        self.preserve_drafts = preserve_drafts
        self.active_run_id: Optional[str] = None
        self._states: dict[str, PublicationState] = {}
        self._submitted: dict[str, PublicationFields] = {}

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._states

    def get(self, run_id: Optional[str]) -> Optional[PublicationState]:
        if not run_id:
            return None
        return self._states.get(run_id)

    @property
    def active(self) -> Optional[PublicationState]:
        return self.get(self.active_run_id)

    def activate(self, run_id: Optional[str]) -> None:
        """Make ``run_id`` the run being edited."""
        if run_id == self.active_run_id:
            return
        if not self.preserve_drafts:
            self._states = {k: v for k, v in self._states.items() if k == run_id}
            self._submitted = {k: v for k, v in self._submitted.items() if k == run_id}
        self.active_run_id = run_id

    def sync(
        self,
        run: CrawlRun,
        snapshot: Snapshot,
        domain: Optional[Domain] = None,
        reset: bool = False,
    ) -> PublicationState:
        """Recompute a run's baseline from fresh data.

        Pending edits are rebased onto the new baseline unless ``reset`` is
        set. After a submission only the edits made since the submitted
        draft are replayed.

        Args:
            run: Run the snapshot belongs to.
            snapshot: Freshly resolved snapshot.
            domain: Owning domain.
            reset: Discard any pending draft.

        Returns:
            The run's new state.
        """
        self.activate(run.id)

        fresh = PublicationState.from_snapshot(run, snapshot, domain)
        existing = self._states.get(run.id)
        submitted = self._submitted.pop(run.id, None)
        if existing is not None and not reset:
            base = submitted if submitted is not None else existing.baseline
            draft = rebase(fresh.baseline, base, existing.draft)
            home = fresh.homepage_crawl_id
            if (
                home in base.published_crawl_ids
                and home not in existing.draft.published_crawl_ids
            ):
                # sections follow an unpublished homepage crawl
                draft = replace(draft, published_section_ids=frozenset())
            if draft != fresh.baseline:
                fresh = replace(fresh, draft=draft, suggestion=existing.suggestion)

        self._states[run.id] = fresh
        return fresh

    def mark_submitted(self, run_id: str, fields: PublicationFields) -> None:
        """Record the draft the server accepted for ``run_id``.

        The next :meth:`sync` of the run replays only the edits made after it.
        """
        if run_id in self._states:
            self._submitted[run_id] = fields

    def is_pending(self, run_id: str) -> bool:
        """Whether ``run_id`` holds edits the server has not accepted yet."""
        state = self._states.get(run_id)
        if state is None:
            return False
        submitted = self._submitted.get(run_id)
        if submitted is not None:
            return state.draft != submitted
        return state.has_changes

    def dispatch(self, run_id: str, action: Action) -> Optional[PublicationState]:
        state = self._states.get(run_id)
        if state is None:
            return None
        new_state = reduce(state, action)
        self._states[run_id] = new_state
        return new_state

    def pending_runs(self) -> list[str]:
        """Runs holding unsaved edits."""
        return [run_id for run_id in self._states if self.is_pending(run_id)]

    def discard(self, run_id: str) -> None:
        self._states.pop(run_id, None)
        self._submitted.pop(run_id, None)

    def clear(self) -> None:
        self._states.clear()
        self._submitted.clear()
        self.active_run_id = None
