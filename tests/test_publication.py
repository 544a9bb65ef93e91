"""Tests for the publication reducer, diffing and run workspace."""

from dataclasses import replace

import pytest

from crawlscope.core.interfaces import Snapshot, SnapshotEntry
from crawlscope.core.models import CrawlStatus, Domain, ReviewStatus, Url
from crawlscope.engine.publication import (
    ClearCrawls,
    ClearSections,
    DomainSuggestion,
    PublicationFields,
    PublicationState,
    PublicationWorkspace,
    ResetDraft,
    SelectAllCrawls,
    SelectAllSections,
    SetDomainPublished,
    SetRunPublished,
    ToggleCrawlPublished,
    ToggleRunTag,
    ToggleSectionPublished,
    build_payload,
    compute_changes,
    rebase,
    reduce,
)
from crawlscope.resolvers import build_run_snapshot


def _snapshot(domain_record, crawls_by_url, run_id):
    scoped = []
    for url in domain_record["urls"]:
        record = dict(url)
        record["crawlInRun"] = crawls_by_url.get(url["id"])
        scoped.append(Url.from_dict(record))
    domain = Domain.from_dict(domain_record)
    return domain, build_run_snapshot(domain.urls, scoped, run_id=run_id)


@pytest.fixture
def loaded(domain_record, run_crawls):
    """Domain, run r1 and its snapshot."""
    domain, snapshot = _snapshot(domain_record, run_crawls["r1"], "r1")
    return domain, domain.find_run("r1"), snapshot


@pytest.fixture
def state(loaded):
    domain, run, snapshot = loaded
    return PublicationState.from_snapshot(run, snapshot, domain)


class TestFromSnapshot:
    """Tests for baseline computation."""

    def test_baseline_from_published_flags(self, state):
        """Test the baseline mirrors the server's isPublished flags."""
        assert state.baseline.published_crawl_ids == {"C1"}
        assert state.baseline.published_section_ids == {"S1", "S2"}
        assert state.baseline.run_is_published is False
        assert state.baseline.domain_is_published is False
        assert state.draft == state.baseline
        assert state.suggestion == DomainSuggestion.UNSET

    def test_homepage_and_eligibility(self, state):
        """Test homepage sections and eligible crawls are derived from the snapshot."""
        assert state.homepage_crawl_id == "C1"
        assert state.homepage_section_ids == ("S1", "S2", "S3")
        assert state.eligible_crawl_ids == {"C1", "C2"}
        assert state.can_publish_selection
        assert state.can_pick_sections
        assert state.marks_reviewed

    def test_sections_ordered_by_index(self, domain_record, run_crawls):
        """Test homepage sections follow their index, not their list order."""
        home = run_crawls["r1"]["u_home"]
        home["sections"] = list(reversed(home["sections"]))
        domain, snapshot = _snapshot(domain_record, run_crawls["r1"], "r1")

        state = PublicationState.from_snapshot(domain.find_run("r1"), snapshot, domain)
        assert state.homepage_section_ids == ("S1", "S2", "S3")

    def test_no_homepage(self, loaded):
        """Test sections cannot be picked without a homepage URL."""
        domain, run, snapshot = loaded
        about_only = Snapshot(
            run_id="r1", entries=[e for e in snapshot.entries if not e.url.is_homepage]
        )
        state = PublicationState.from_snapshot(run, about_only, domain)
        assert state.homepage_crawl_id is None
        assert state.can_pick_sections is False


class TestScenario:
    """Homepage C1 with S1, S2 published and S3 not; about C2 unpublished."""

    def test_toggle_homepage_off_cascades(self, state):
        """Test unpublishing the homepage crawl clears every section."""
        new_state = reduce(state, ToggleCrawlPublished("C1"))

        assert new_state.draft.published_crawl_ids == frozenset()
        assert new_state.draft.published_section_ids == frozenset()

        changes = compute_changes(new_state)
        assert changes.crawls_to_unpublish == ["C1"]
        assert changes.sections_to_unpublish == ["S1", "S2"]
        assert changes.crawls_to_publish == []
        assert changes.sections_to_publish == []
        assert changes.has_changes

    def test_payload(self, state):
        """Test only changed fields are sent, plus markReviewed."""
        payload = build_payload(reduce(state, ToggleCrawlPublished("C1")))

        assert payload.to_dict() == {
            "crawlsToUnpublish": ["C1"],
            "sectionsToUnpublish": ["S1", "S2"],
            "markReviewed": True,
        }

    def test_baseline_untouched(self, state):
        """Test reducing never mutates the input state."""
        baseline = state.baseline
        reduce(state, ToggleCrawlPublished("C1"))
        assert state.baseline is baseline
        assert state.draft.published_crawl_ids == {"C1"}


class TestMinimalDiff:
    """Tests for compute_changes and build_payload with no edits."""

    def test_no_changes(self, state):
        """Test an unedited state has no diff and no payload."""
        changes = compute_changes(state)
        assert changes.has_changes is False
        assert changes.crawls_to_publish == []
        assert changes.sections_to_unpublish == []
        assert state.can_save is False
        assert build_payload(state) is None

    def test_toggle_twice_is_no_change(self, state):
        """Test reverting an edit by hand leaves nothing to submit."""
        state = reduce(state, ToggleCrawlPublished("C2"))
        state = reduce(state, ToggleCrawlPublished("C2"))
        # the first toggle triggered the domain suggestion
        state = reduce(state, SetDomainPublished(False))

        assert state.has_changes is False
        assert build_payload(state) is None

    def test_tag_order_and_whitespace_ignored(self, loaded):
        """Test tags compare as a trimmed set."""
        domain, run, snapshot = loaded
        run.tags = ["b", "a"]
        state = PublicationState.from_snapshot(run, snapshot, domain)

        state = reduce(state, ToggleRunTag("a", False))
        state = reduce(state, ToggleRunTag(" a ", True))
        assert compute_changes(state).run_tags_changed is False


class TestReset:
    """Tests for ResetDraft."""

    def test_reset_is_idempotent(self, state):
        """Test a second reset returns the same state."""
        edited = reduce(state, ToggleCrawlPublished("C1"))
        once = reduce(edited, ResetDraft())
        twice = reduce(once, ResetDraft())

        assert once.draft == once.baseline
        assert twice.draft == twice.baseline
        assert twice is once

    def test_reset_keeps_suggestion_state(self, state):
        """Test a reset does not re-arm the domain suggestion."""
        edited = reduce(state, SetRunPublished(True))
        assert edited.suggestion == DomainSuggestion.SUGGESTED

        reset = reduce(edited, ResetDraft())
        assert reset.draft.domain_is_published is False
        assert reset.suggestion == DomainSuggestion.SUGGESTED


class TestEligibility:
    """Tests for actions that are not allowed."""

    def test_only_successful_crawls_can_be_added(self, domain_record, run_crawls):
        """Test failed and unknown crawls cannot be drafted public."""
        run_crawls["r1"]["u_about"]["status"] = "FAILED"
        domain, snapshot = _snapshot(domain_record, run_crawls["r1"], "r1")
        state = PublicationState.from_snapshot(domain.find_run("r1"), snapshot, domain)

        assert reduce(state, ToggleCrawlPublished("C2")) is state
        assert reduce(state, ToggleCrawlPublished("unknown")) is state

    def test_unsuccessful_run_blocks_selection(self, loaded):
        """Test crawl and run flags are locked on a run that did not succeed."""
        domain, run, snapshot = loaded
        run.status = CrawlStatus.FAILED
        state = PublicationState.from_snapshot(run, snapshot, domain)

        assert state.can_publish_selection is False
        assert reduce(state, ToggleCrawlPublished("C1")) is state
        assert reduce(state, SetRunPublished(True)) is state
        assert reduce(state, SelectAllCrawls()) is state

    def test_tags_editable_on_any_run(self, loaded):
        """Test tags stay editable on a failed run and blank tags are ignored."""
        domain, run, snapshot = loaded
        run.status = CrawlStatus.FAILED
        state = PublicationState.from_snapshot(run, snapshot, domain)

        new_state = reduce(state, ToggleRunTag("redesign", True))
        assert new_state.draft.run_tags == {"redesign"}
        assert reduce(state, ToggleRunTag("   ", True)) is state

    def test_sections_need_published_homepage(self, state):
        """Test sections can only be picked while the homepage crawl is drafted public."""
        without_home = reduce(state, ToggleCrawlPublished("C1"))
        assert without_home.can_pick_sections is False
        assert reduce(without_home, ToggleSectionPublished("S3")) is without_home
        assert reduce(without_home, SelectAllSections()) is without_home

        with_home = reduce(without_home, ToggleCrawlPublished("C1"))
        assert with_home.can_pick_sections is True
        picked = reduce(with_home, ToggleSectionPublished("S3"))
        assert picked.draft.published_section_ids == {"S3"}

    def test_unknown_section_ignored(self, state):
        """Test a section outside the homepage crawl cannot be toggled."""
        assert reduce(state, ToggleSectionPublished("S99")) is state

    def test_homepage_crawl_not_successful(self, domain_record, run_crawls):
        """Test sections are locked when the homepage crawl failed."""
        run_crawls["r1"]["u_home"]["status"] = "FAILED"
        run_crawls["r1"]["u_home"]["isPublished"] = False
        domain, snapshot = _snapshot(domain_record, run_crawls["r1"], "r1")
        state = PublicationState.from_snapshot(domain.find_run("r1"), snapshot, domain)

        assert state.can_pick_sections is False


class TestBulkActions:
    """Tests for select-all and clear actions."""

    def test_select_all_crawls(self, state):
        """Test every eligible crawl is drafted public."""
        new_state = reduce(state, SelectAllCrawls())
        assert new_state.draft.published_crawl_ids == {"C1", "C2"}
        assert compute_changes(new_state).crawls_to_publish == ["C2"]

    def test_clear_crawls_clears_sections(self, state):
        """Test clearing crawls also clears homepage sections."""
        new_state = reduce(state, ClearCrawls())
        assert new_state.draft.published_crawl_ids == frozenset()
        assert new_state.draft.published_section_ids == frozenset()

    def test_select_all_and_clear_sections(self, state):
        """Test section bulk actions leave crawl selection alone."""
        all_sections = reduce(state, SelectAllSections())
        assert all_sections.draft.published_section_ids == {"S1", "S2", "S3"}
        assert compute_changes(all_sections).sections_to_publish == ["S3"]

        cleared = reduce(all_sections, ClearSections())
        assert cleared.draft.published_section_ids == frozenset()
        assert cleared.draft.published_crawl_ids == {"C1"}


class TestDomainSuggestion:
    """Tests for the one-shot domain publication proposal."""

    def test_suggested_once_on_publish(self, state):
        """Test publishing the run proposes publishing the domain."""
        new_state = reduce(state, SetRunPublished(True))
        assert new_state.draft.domain_is_published is True
        assert new_state.suggestion == DomainSuggestion.SUGGESTED

        payload = build_payload(new_state).to_dict()
        assert payload["domainIsPublished"] is True
        assert payload["crawlRunIsPublished"] is True

    def test_not_repeated_after_user_declines(self, state):
        """Test a user override is never replaced by a new suggestion."""
        state = reduce(state, SetRunPublished(True))
        state = reduce(state, SetDomainPublished(False))
        assert state.suggestion == DomainSuggestion.USER_OVERRIDDEN

        state = reduce(state, ToggleCrawlPublished("C2"))
        assert state.draft.domain_is_published is False

    def test_not_repeated_after_suggestion(self, state):
        """Test the suggestion fires once even after a reset."""
        state = reduce(state, SetRunPublished(True))
        state = reduce(state, ResetDraft())
        state = reduce(state, ToggleCrawlPublished("C2"))
        assert state.draft.domain_is_published is False

    def test_not_suggested_when_already_public(self, loaded):
        """Test nothing is proposed for a domain that is already public."""
        domain, run, snapshot = loaded
        domain.is_published = True
        state = PublicationState.from_snapshot(run, snapshot, domain)

        new_state = reduce(state, SetRunPublished(True))
        assert new_state.suggestion == DomainSuggestion.UNSET
        assert compute_changes(new_state).domain_is_published_changed is False

    def test_not_suggested_without_edits(self, loaded):
        """Test building a state never proposes anything by itself."""
        domain, run, snapshot = loaded
        domain.crawl_runs[0].is_published = True
        state = PublicationState.from_snapshot(run, snapshot, domain)

        assert state.domain_has_published_run is True
        assert state.draft.domain_is_published is False
        assert state.suggestion == DomainSuggestion.UNSET

    def test_tag_edit_never_suggests(self, loaded):
        """Test a tag-only edit submits only the tags, even with a published run."""
        domain, run, snapshot = loaded
        domain.crawl_runs[0].is_published = True
        state = PublicationState.from_snapshot(run, snapshot, domain)

        state = reduce(state, ToggleRunTag("redesign", True))
        assert state.suggestion == DomainSuggestion.UNSET
        assert state.draft.domain_is_published is False
        assert build_payload(state).to_dict() == {
            "crawlRunTags": ["redesign"],
            "markReviewed": True,
        }

    def test_removals_never_suggest(self, state):
        """Test unpublishing crawls and sections leaves the domain flag alone."""
        state = reduce(state, ClearSections())
        state = reduce(state, ToggleCrawlPublished("C1"))
        assert state.suggestion == DomainSuggestion.UNSET
        assert compute_changes(state).domain_is_published_changed is False

    def test_section_pick_suggests(self, state):
        """Test publishing a section counts as publishing something."""
        state = reduce(state, ToggleSectionPublished("S3"))
        assert state.suggestion == DomainSuggestion.SUGGESTED
        assert state.draft.domain_is_published is True


class TestPayload:
    """Tests for payload serialization."""

    def test_reviewed_run_not_marked(self, loaded):
        """Test markReviewed is only sent for runs pending review."""
        domain, run, snapshot = loaded
        run.review_status = ReviewStatus.REVIEWED
        state = PublicationState.from_snapshot(run, snapshot, domain)

        payload = build_payload(reduce(state, ClearSections())).to_dict()
        assert "markReviewed" not in payload
        assert payload == {"sectionsToUnpublish": ["S1", "S2"]}

    def test_tags_sorted(self, state):
        """Test tags are submitted in sorted order."""
        state = reduce(state, ToggleRunTag("redesign", True))
        state = reduce(state, ToggleRunTag("brand", True))
        assert build_payload(state).to_dict()["crawlRunTags"] == ["brand", "redesign"]


class TestRebase:
    """Tests for replaying draft edits onto a fresh baseline."""

    def test_untouched_fields_follow_server(self):
        """Test fields the draft never edited take the new server values."""
        base = PublicationFields(published_crawl_ids=frozenset({"C1"}))
        draft = replace(base, run_tags=frozenset({"redesign"}))
        fresh = replace(
            base, run_is_published=True, published_crawl_ids=frozenset({"C1", "C2"})
        )

        assert rebase(fresh, base, draft) == PublicationFields(
            run_is_published=True,
            run_tags=frozenset({"redesign"}),
            published_crawl_ids=frozenset({"C1", "C2"}),
        )

    def test_local_edits_win(self):
        """Test additions, removals and flag flips made locally are kept."""
        base = PublicationFields(published_crawl_ids=frozenset({"C1", "C2"}))
        draft = replace(
            base, published_crawl_ids=frozenset({"C1", "C4"}), domain_is_published=True
        )
        fresh = replace(base, published_crawl_ids=frozenset({"C1", "C2", "C3"}))

        rebased = rebase(fresh, base, draft)
        assert rebased.published_crawl_ids == {"C1", "C3", "C4"}
        assert rebased.domain_is_published is True

    def test_unedited_draft_equals_fresh(self):
        """Test a draft equal to its base rebases to the fresh baseline."""
        base = PublicationFields(run_tags=frozenset({"old"}))
        fresh = PublicationFields(run_tags=frozenset({"new"}), run_is_published=True)
        assert rebase(fresh, base, base) == fresh


class TestPublicationWorkspace:
    """Tests for per-run draft storage."""

    def test_sync_keeps_pending_draft(self, loaded):
        """Test an unchanged refetch keeps the pending edit."""
        domain, run, snapshot = loaded
        workspace = PublicationWorkspace()
        workspace.sync(run, snapshot, domain)
        workspace.dispatch("r1", ToggleCrawlPublished("C1"))

        resynced = workspace.sync(run, snapshot, domain)
        assert resynced.draft.published_crawl_ids == frozenset()
        assert resynced.draft.published_section_ids == frozenset()
        assert workspace.pending_runs() == ["r1"]

    def test_sync_rebases_onto_server_changes(self, domain_record, run_crawls, loaded):
        """Test a crawl published elsewhere is not reverted by a pending tag edit."""
        domain, run, snapshot = loaded
        workspace = PublicationWorkspace()
        workspace.sync(run, snapshot, domain)
        workspace.dispatch("r1", ToggleRunTag("redesign", True))

        run_crawls["r1"]["u_about"]["isPublished"] = True
        domain, fresh = _snapshot(domain_record, run_crawls["r1"], "r1")
        state = workspace.sync(domain.find_run("r1"), fresh, domain)

        assert state.baseline.published_crawl_ids == {"C1", "C2"}
        assert state.draft.published_crawl_ids == {"C1", "C2"}

        changes = compute_changes(state)
        assert changes.crawls_to_unpublish == []
        assert changes.run_tags_changed is True
        assert build_payload(state).to_dict() == {
            "crawlRunTags": ["redesign"],
            "markReviewed": True,
        }

    def test_sync_drops_draft_matching_server(self, domain_record, run_crawls, loaded):
        """Test a draft the server caught up with is no longer pending."""
        domain, run, snapshot = loaded
        workspace = PublicationWorkspace()
        workspace.sync(run, snapshot, domain)
        workspace.dispatch("r1", ToggleCrawlPublished("C1"))

        run_crawls["r1"]["u_home"]["isPublished"] = False
        for section in run_crawls["r1"]["u_home"]["sections"]:
            section["isPublished"] = False
        domain, fresh = _snapshot(domain_record, run_crawls["r1"], "r1")
        state = workspace.sync(domain.find_run("r1"), fresh, domain)

        assert state.draft == state.baseline
        assert workspace.pending_runs() == []

    def test_sync_reset_drops_draft(self, loaded):
        """Test a reset sync throws the pending draft away."""
        domain, run, snapshot = loaded
        workspace = PublicationWorkspace()
        workspace.sync(run, snapshot, domain)
        workspace.dispatch("r1", ToggleCrawlPublished("C1"))

        resynced = workspace.sync(run, snapshot, domain, reset=True)
        assert resynced.draft == resynced.baseline
        assert workspace.pending_runs() == []

    def test_submitted_draft_replays_later_edits(self, domain_record, loaded, run_crawls):
        """Test only edits made after a submission survive the next sync."""
        domain, run, snapshot = loaded
        workspace = PublicationWorkspace()
        workspace.sync(run, snapshot, domain)
        submitted = workspace.dispatch("r1", ToggleRunTag("redesign", True)).draft

        workspace.mark_submitted("r1", submitted)
        assert workspace.is_pending("r1") is False

        workspace.dispatch("r1", ToggleCrawlPublished("C2"))
        assert workspace.is_pending("r1") is True

        domain_record["crawlRuns"][1]["tags"] = ["redesign"]
        domain, fresh = _snapshot(domain_record, run_crawls["r1"], "r1")
        state = workspace.sync(domain.find_run("r1"), fresh, domain)

        changes = compute_changes(state)
        assert changes.run_tags_changed is False
        assert changes.crawls_to_publish == ["C2"]
        assert workspace.pending_runs() == ["r1"]

    def test_mark_submitted_unknown_run(self):
        """Test recording a submission for a run without state is a no-op."""
        workspace = PublicationWorkspace()
        workspace.mark_submitted("r1", PublicationFields())
        assert workspace.is_pending("r1") is False

    def test_accordion_keeps_other_runs(self, loaded):
        """Test other runs keep their drafts when drafts are preserved."""
        domain, run, snapshot = loaded
        other = replace(run, id="r9")
        workspace = PublicationWorkspace(preserve_drafts=True)
        workspace.sync(run, snapshot, domain)
        workspace.dispatch("r1", ToggleCrawlPublished("C1"))

        workspace.sync(other, snapshot, domain)
        assert workspace.active_run_id == "r9"
        assert "r1" in workspace
        assert workspace.get("r1").has_changes

    def test_single_panel_drops_other_runs(self, loaded):
        """Test switching runs drops other drafts in single-panel mode."""
        domain, run, snapshot = loaded
        other = replace(run, id="r9")
        workspace = PublicationWorkspace(preserve_drafts=False)
        workspace.sync(run, snapshot, domain)
        workspace.dispatch("r1", ToggleCrawlPublished("C1"))

        workspace.sync(other, snapshot, domain)
        assert "r1" not in workspace
        assert workspace.active.run_id == "r9"

    def test_dispatch_unknown_run(self):
        """Test dispatching to a run without state returns None."""
        workspace = PublicationWorkspace()
        assert workspace.dispatch("nope", ResetDraft()) is None
        assert workspace.get(None) is None

    def test_discard_and_clear(self, loaded):
        """Test runs can be dropped one by one or all at once."""
        domain, run, snapshot = loaded
        workspace = PublicationWorkspace()
        workspace.sync(run, snapshot, domain)

        workspace.discard("r1")
        assert "r1" not in workspace

        workspace.sync(run, snapshot, domain)
        workspace.clear()
        assert workspace.active is None
        assert workspace.active_run_id is None


def test_snapshot_entry_without_crawl_is_not_eligible(loaded):
    """Test URLs without a crawl in the run contribute nothing selectable."""
    domain, run, _ = loaded
    snapshot = Snapshot(run_id="r1", entries=[SnapshotEntry(url=u) for u in domain.urls])
    state = PublicationState.from_snapshot(run, snapshot, domain)

    assert state.eligible_crawl_ids == frozenset()
    assert reduce(state, SelectAllCrawls()) is state
