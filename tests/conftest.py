"""Pytest configuration and fixtures."""

import asyncio
import copy
from typing import Any, Optional

import pytest

from crawlscope.client.api import CollectApiError
from crawlscope.core.interfaces import DomainQueryBackend, PublicationBackend, QueryResult
from crawlscope.core.models import Domain, Url


def run_record(
    run_id: str,
    status: str = "SUCCESS",
    finished_at: Optional[str] = None,
    started_at: Optional[str] = None,
    created_at: Optional[str] = None,
    **extra: Any,
) -> dict[str, Any]:
    record = {
        "id": run_id,
        "domainId": "dom_1",
        "status": status,
        "finishedAt": finished_at,
        "startedAt": started_at,
        "createdAt": created_at,
    }
    record.update(extra)
    return record


def crawl_record(
    crawl_id: str,
    url_id: str,
    status: str = "SUCCESS",
    crawled_at: Optional[str] = None,
    **extra: Any,
) -> dict[str, Any]:
    record = {
        "id": crawl_id,
        "urlId": url_id,
        "status": status,
        "crawledAt": crawled_at,
        "createdAt": crawled_at,
    }
    record.update(extra)
    return record


class FakeCollectBackend(DomainQueryBackend, PublicationBackend):
    """In-memory stand-in for the collect API.

    Holds raw camelCase records so every fetch goes through ``from_dict``
    like real responses do. Publication payloads are applied to the stored
    records so a refetch shows the new server state.
    """

    def __init__(self, domain: dict[str, Any], run_crawls: dict[str, dict[str, Any]]) -> None:
        self.domain = domain
        self.run_crawls = run_crawls
        self.history: dict[str, list[dict[str, Any]]] = {}
        self.run_scope = True
        self.meta_errors: list[str] = []
        self.snapshot_errors: list[str] = []
        self.fail_meta = False
        self.fail_snapshot = False
        self.fail_publish = False
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, ...]] = []
        self.published: list[tuple[str, dict[str, Any]]] = []

    @property
    def supports_run_scope(self) -> bool:
        return self.run_scope

    async def close(self) -> None:
        self.calls.append(("close",))

    async def fetch_domain_meta(self, domain_id, urls_limit, runs_limit):
        self.calls.append(("meta", domain_id))
        gate = self.gates.get(f"meta:{domain_id}")
        if gate is not None:
            await gate.wait()
        if self.fail_meta:
            raise CollectApiError("Request failed: connection refused")
        if domain_id != self.domain["id"]:
            return QueryResult(data=None, errors=list(self.meta_errors))
        return QueryResult(
            data=Domain.from_dict(copy.deepcopy(self.domain)), errors=list(self.meta_errors)
        )

    async def fetch_run_snapshot(self, domain_id, run_id, urls_limit):
        self.calls.append(("snapshot", domain_id, run_id))
        gate = self.gates.get(f"run:{run_id}")
        if gate is not None:
            await gate.wait()
        if self.fail_snapshot:
            raise CollectApiError("Request failed: timed out")
        crawls = self.run_crawls.get(run_id, {})
        urls = []
        for url in self.domain["urls"]:
            record = dict(url)
            record["crawlInRun"] = copy.deepcopy(crawls.get(url["id"]))
            urls.append(Url.from_dict(record))
        return QueryResult(data=urls, errors=list(self.snapshot_errors))

    async def fetch_crawl_history(self, domain_id, urls_limit, crawls_limit):
        self.calls.append(("history", domain_id))
        if self.fail_snapshot:
            raise CollectApiError("Request failed: timed out")
        urls = []
        for url in self.domain["urls"]:
            record = dict(url)
            record["crawls"] = copy.deepcopy(self.history.get(url["id"], []))
            urls.append(Url.from_dict(record))
        return QueryResult(data=urls, errors=list(self.snapshot_errors))

    async def apply_publication(self, run_id, payload):
        self.calls.append(("publish", run_id))
        if self.fail_publish:
            raise CollectApiError("Run is locked", status_code=409, code="CONFLICT")
        self.published.append((run_id, copy.deepcopy(payload)))

        run = next(r for r in self.domain["crawlRuns"] if r["id"] == run_id)
        if "crawlRunIsPublished" in payload:
            run["isPublished"] = payload["crawlRunIsPublished"]
        if "crawlRunTags" in payload:
            run["tags"] = list(payload["crawlRunTags"])
        if payload.get("markReviewed"):
            run["reviewStatus"] = "REVIEWED"
        if "domainIsPublished" in payload:
            self.domain["isPublished"] = payload["domainIsPublished"]

        for crawl in self.run_crawls.get(run_id, {}).values():
            if crawl is None:
                continue
            if crawl["id"] in payload.get("crawlsToPublish", []):
                crawl["isPublished"] = True
            if crawl["id"] in payload.get("crawlsToUnpublish", []):
                crawl["isPublished"] = False
            for section in crawl.get("sections", []):
                if section["id"] in payload.get("sectionsToPublish", []):
                    section["isPublished"] = True
                if section["id"] in payload.get("sectionsToUnpublish", []):
                    section["isPublished"] = False


@pytest.fixture
def domain_record():
    """Domain with a homepage and an about page and three runs.

    r0 FAILED (oldest), r1 SUCCESS pending review, r2 RUNNING.
    """
    return {
        "id": "dom_1",
        "host": "example.com",
        "canonicalUrl": "https://example.com/",
        "displayName": None,
        "isPublished": False,
        "profile": {"name": "Example Inc", "description": "Makes examples"},
        "crawlRuns": [
            run_record("r0", "FAILED", finished_at="2024-04-01T10:00:00Z", error="timeout"),
            run_record(
                "r1",
                "SUCCESS",
                finished_at="2024-05-01T10:00:00Z",
                reviewStatus="PENDING_REVIEW",
                tags=[],
            ),
            run_record("r2", "RUNNING", started_at="2024-06-01T10:00:00Z"),
        ],
        "urls": [
            {
                "id": "u_home",
                "domainId": "dom_1",
                "path": "/",
                "normalizedUrl": "https://example.com/",
                "type": "HOMEPAGE",
                "isCanonical": True,
            },
            {
                "id": "u_about",
                "domainId": "dom_1",
                "path": "/about",
                "normalizedUrl": "https://example.com/about",
                "type": "ABOUT",
                "isCanonical": True,
            },
        ],
    }


@pytest.fixture
def run_crawls():
    """Crawls per run: r1 has C1 (homepage, 3 sections) and C2 (about)."""
    return {
        "r0": {
            "u_home": crawl_record("C0", "u_home", "FAILED", "2024-04-01T09:00:00Z"),
            "u_about": None,
        },
        "r1": {
            "u_home": crawl_record(
                "C1",
                "u_home",
                "SUCCESS",
                "2024-05-01T09:00:00Z",
                crawlRunId="r1",
                isPublished=True,
                screenshots=[
                    {"id": "shot_1", "crawlId": "C1", "kind": "FULL_PAGE",
                     "publicUrl": "/storage/shots/c1.png"},
                ],
                sections=[
                    {"id": "S1", "crawlId": "C1", "index": 0, "isPublished": True},
                    {"id": "S2", "crawlId": "C1", "index": 1, "isPublished": True},
                    {"id": "S3", "crawlId": "C1", "index": 2, "isPublished": False},
                ],
            ),
            "u_about": crawl_record(
                "C2",
                "u_about",
                "SUCCESS",
                "2024-05-01T09:05:00Z",
                crawlRunId="r1",
                isPublished=False,
            ),
        },
        "r2": {"u_home": crawl_record("C3", "u_home", "RUNNING", None, crawlRunId="r2")},
    }


@pytest.fixture
def fake_backend(domain_record, run_crawls):
    return FakeCollectBackend(domain_record, run_crawls)
