"""Data models for crawlscope."""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class CrawlStatus(Enum):
    """Status of a crawl run, a URL crawl or a crawl task."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value: object) -> "CrawlStatus":
        return cls.UNKNOWN

    @property
    def is_completed(self) -> bool:
        return self in (CrawlStatus.SUCCESS, CrawlStatus.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (CrawlStatus.PENDING, CrawlStatus.RUNNING)


class ReviewStatus(Enum):
    """Review state of a crawl run."""

    PENDING_REVIEW = "PENDING_REVIEW"
    REVIEWED = "REVIEWED"


class UrlType(Enum):
    """Semantic type of a domain URL."""

    HOMEPAGE = "HOMEPAGE"
    ABOUT = "ABOUT"
    CONTACT = "CONTACT"
    PRICING = "PRICING"
    BLOG = "BLOG"
    CAREERS = "CAREERS"
    DOCS = "DOCS"
    TERMS = "TERMS"
    PRIVACY = "PRIVACY"
    OTHER = "OTHER"

    @classmethod
    def _missing_(cls, value: object) -> "UrlType":
        return cls.OTHER


def _review_status(value: Optional[str]) -> Optional[ReviewStatus]:
    if not value:
        return None
    try:
        return ReviewStatus(value)
    except ValueError:
        return None


@dataclass
class ClientConfig:
    """Configuration for talking to the collect API."""

    api_url: str = "http://localhost:3000"
    timeout: float = 30.0
    urls_limit: int = 50
    runs_limit: int = 80
    crawls_limit: int = 50
    poll_interval: float = 5.0
    preserve_drafts: bool = True  # False = single-panel reset on run switch
    verbose: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build a config from ``COLLECT_API_URL`` / ``COLLECT_API_TIMEOUT``.

        Explicit keyword overrides win over the environment.
        """
        values: dict[str, Any] = {}
        api_url = os.environ.get("COLLECT_API_URL")
        if api_url:
            values["api_url"] = api_url
        timeout = os.environ.get("COLLECT_API_TIMEOUT")
        if timeout:
            try:
                values["timeout"] = float(timeout)
            except ValueError:
                raise ValueError(f"Invalid COLLECT_API_TIMEOUT: {timeout!r}") from None
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class DomainProfile:
    """Human-facing profile of a domain."""

    name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DomainProfile":
        return cls(name=data.get("name"), description=data.get("description"))


@dataclass
class Category:
    id: str
    slug: str
    name: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Category":
        return cls(
            id=data.get("id", ""),
            slug=data.get("slug", ""),
            name=data.get("name", ""),
            description=data.get("description"),
        )


@dataclass
class Technology:
    id: str
    slug: str
    name: str
    website_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Technology":
        return cls(
            id=data.get("id", ""),
            slug=data.get("slug", ""),
            name=data.get("name", ""),
            website_url=data.get("websiteUrl"),
        )


@dataclass
class Screenshot:
    """A full-page or viewport screenshot of a crawl."""

    id: str
    crawl_id: str
    kind: str = "FULL_PAGE"
    is_published: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    public_url: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Screenshot":
        return cls(
            id=data["id"],
            crawl_id=data.get("crawlId", ""),
            kind=data.get("kind") or "FULL_PAGE",
            is_published=bool(data.get("isPublished")),
            width=data.get("width"),
            height=data.get("height"),
            format=data.get("format"),
            public_url=data.get("publicUrl"),
            created_at=data.get("createdAt"),
        )


@dataclass
class SectionScreenshot:
    """A sub-region screenshot of a homepage crawl, publishable on its own."""

    id: str
    crawl_id: str
    index: int = 0
    is_published: bool = False
    format: Optional[str] = None
    public_url: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SectionScreenshot":
        return cls(
            id=data["id"],
            crawl_id=data.get("crawlId", ""),
            index=data.get("index") or 0,
            is_published=bool(data.get("isPublished")),
            format=data.get("format"),
            public_url=data.get("publicUrl"),
            created_at=data.get("createdAt"),
        )


@dataclass
class CrawlTask:
    """A sub-operation of a crawl (screenshot, technologies, sections, ...)."""

    id: str
    crawl_id: str
    type: str
    status: CrawlStatus = CrawlStatus.PENDING
    attempts: int = 0
    last_attempt_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlTask":
        return cls(
            id=data["id"],
            crawl_id=data.get("crawlId", ""),
            type=data.get("type", ""),
            status=CrawlStatus(data.get("status")),
            attempts=data.get("attempts") or 0,
            last_attempt_at=data.get("lastAttemptAt"),
            started_at=data.get("startedAt"),
            finished_at=data.get("finishedAt"),
            error=data.get("error"),
        )


@dataclass
class CrawlCategory:
    category: Optional[Category] = None
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlCategory":
        category = data.get("category")
        return cls(
            category=Category.from_dict(category) if category else None,
            confidence=data.get("confidence"),
        )


@dataclass
class CrawlTechnology:
    technology: Optional[Technology] = None
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlTechnology":
        technology = data.get("technology")
        return cls(
            technology=Technology.from_dict(technology) if technology else None,
            confidence=data.get("confidence"),
        )


@dataclass
class UrlCrawl:
    """The result of crawling one URL, optionally within a crawl run."""

    id: str
    url_id: str
    status: CrawlStatus
    crawl_run_id: Optional[str] = None
    is_published: bool = False
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    crawled_at: Optional[str] = None
    created_at: Optional[str] = None
    http_status: Optional[int] = None
    final_url: Optional[str] = None
    title: Optional[str] = None
    meta_description: Optional[str] = None
    language: Optional[str] = None
    error: Optional[str] = None
    screenshots: list[Screenshot] = field(default_factory=list)
    sections: list[SectionScreenshot] = field(default_factory=list)
    tasks: list[CrawlTask] = field(default_factory=list)
    categories: list[CrawlCategory] = field(default_factory=list)
    technologies: list[CrawlTechnology] = field(default_factory=list)

    @property
    def category_names(self) -> list[str]:
        return [c.category.name for c in self.categories if c.category and c.category.name]

    @property
    def technology_names(self) -> list[str]:
        return [t.technology.name for t in self.technologies if t.technology and t.technology.name]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UrlCrawl":
        """Create from a collect API crawl record."""
        return cls(
            id=data["id"],
            url_id=data.get("urlId", ""),
            status=CrawlStatus(data.get("status")),
            crawl_run_id=data.get("crawlRunId"),
            is_published=bool(data.get("isPublished")),
            started_at=data.get("startedAt"),
            finished_at=data.get("finishedAt"),
            crawled_at=data.get("crawledAt"),
            created_at=data.get("createdAt"),
            http_status=data.get("httpStatus"),
            final_url=data.get("finalUrl"),
            title=data.get("title"),
            meta_description=data.get("metaDescription"),
            language=data.get("language"),
            error=data.get("error"),
            screenshots=[Screenshot.from_dict(s) for s in data.get("screenshots") or []],
            sections=[SectionScreenshot.from_dict(s) for s in data.get("sections") or []],
            tasks=[CrawlTask.from_dict(t) for t in data.get("tasks") or []],
            categories=[CrawlCategory.from_dict(c) for c in data.get("categories") or []],
            technologies=[
                CrawlTechnology.from_dict(t) for t in data.get("technologies") or []
            ],
        )


@dataclass
class CrawlRun:
    """One orchestrated crawl sweep over a domain's URLs."""

    id: str
    domain_id: str
    status: CrawlStatus
    review_status: Optional[ReviewStatus] = None
    is_published: bool = False
    tags: list[str] = field(default_factory=list)
    job_id: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    created_at: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        """Only successful runs can be published."""
        return self.status == CrawlStatus.SUCCESS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlRun":
        """Create from a collect API crawl run record."""
        return cls(
            id=data["id"],
            domain_id=data.get("domainId", ""),
            status=CrawlStatus(data.get("status")),
            review_status=_review_status(data.get("reviewStatus")),
            is_published=bool(data.get("isPublished")),
            tags=list(data.get("tags") or []),
            job_id=data.get("jobId"),
            started_at=data.get("startedAt"),
            finished_at=data.get("finishedAt"),
            created_at=data.get("createdAt"),
            error=data.get("error"),
        )


@dataclass
class Url:
    """A discovered path under a domain."""

    id: str
    domain_id: str
    path: str
    normalized_url: str
    type: UrlType = UrlType.OTHER
    is_canonical: bool = False
    crawls: list[UrlCrawl] = field(default_factory=list)
    crawl_in_run: Optional[UrlCrawl] = None

    @property
    def is_homepage(self) -> bool:
        return self.type == UrlType.HOMEPAGE

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Url):
            return False
        return self.id == other.id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Url":
        """Create from a collect API URL record.

        ``crawls`` is present on history queries, ``crawlInRun`` on
        run-scoped snapshot queries.
        """
        crawl_in_run = data.get("crawlInRun")
        return cls(
            id=data["id"],
            domain_id=data.get("domainId", ""),
            path=data.get("path", ""),
            normalized_url=data.get("normalizedUrl", ""),
            type=UrlType(data.get("type")),
            is_canonical=bool(data.get("isCanonical")),
            crawls=[UrlCrawl.from_dict(c) for c in data.get("crawls") or []],
            crawl_in_run=UrlCrawl.from_dict(crawl_in_run) if crawl_in_run else None,
        )


@dataclass
class Domain:
    """A tracked website, the aggregate root of the timeline."""

    id: str
    host: str
    canonical_url: str
    display_name: Optional[str] = None
    profile: Optional[DomainProfile] = None
    is_published: bool = False
    crawl_runs: list[CrawlRun] = field(default_factory=list)
    urls: list[Url] = field(default_factory=list)

    @property
    def title(self) -> str:
        if self.profile and self.profile.name:
            return self.profile.name
        return self.display_name or self.host

    @property
    def has_published_run(self) -> bool:
        return any(run.is_published for run in self.crawl_runs)

    def find_run(self, run_id: Optional[str]) -> Optional[CrawlRun]:
        if not run_id:
            return None
        return next((run for run in self.crawl_runs if run.id == run_id), None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Domain":
        """Create from a collect API domain record."""
        profile = data.get("profile")
        return cls(
            id=data["id"],
            host=data.get("host", ""),
            canonical_url=data.get("canonicalUrl", ""),
            display_name=data.get("displayName"),
            profile=DomainProfile.from_dict(profile) if profile else None,
            is_published=bool(data.get("isPublished")),
            crawl_runs=[CrawlRun.from_dict(r) for r in data.get("crawlRuns") or []],
            urls=[Url.from_dict(u) for u in data.get("urls") or []],
        )
