"""HTTP client for the collect API.

Reads go through the GraphQL endpoint (``POST /graphql``), which answers with
a ``{data, errors}`` envelope. Publication changes go through the REST API,
which answers with ``{ok: true, data}`` or ``{ok: false, error: {code,
message}}``.
"""

import logging
from typing import Any, Optional

import httpx

from crawlscope.core.interfaces import DomainQueryBackend, PublicationBackend, QueryResult
from crawlscope.core.models import ClientConfig, Domain, Url

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Request failed"

_CRAWL_FIELDS = """
          id
          urlId
          crawlRunId
          status
          isPublished
          startedAt
          finishedAt
          crawledAt
          httpStatus
          finalUrl
          title
          metaDescription
          language
          error
          createdAt
          tasks { id crawlId type status attempts lastAttemptAt startedAt finishedAt error }
          screenshots { id crawlId kind isPublished width height format publicUrl createdAt }
          sections { id crawlId index isPublished format publicUrl createdAt }
          categories { confidence category { id slug name description } }
          technologies { confidence technology { id slug name websiteUrl } }
"""

DOMAIN_TIMELINE_META_QUERY = """
  query DomainTimelineMeta($id: ID!, $urlsLimit: Int = 50, $runsLimit: Int = 80) {
    domain(id: $id) {
      id
      host
      canonicalUrl
      displayName
      isPublished
      profile { name description }
      crawlRuns(limit: $runsLimit) {
        id
        domainId
        status
        reviewStatus
        isPublished
        tags
        jobId
        startedAt
        finishedAt
        error
        createdAt
      }
      urls(limit: $urlsLimit) {
        id
        domainId
        path
        normalizedUrl
        type
        isCanonical
      }
    }
  }
"""

DOMAIN_TIMELINE_SNAPSHOT_QUERY = (
    """
  query DomainTimelineSnapshot($id: ID!, $urlsLimit: Int = 50, $runId: ID!) {
    domain(id: $id) {
      id
      urls(limit: $urlsLimit) {
        id
        domainId
        path
        normalizedUrl
        type
        isCanonical
        crawlInRun(runId: $runId) {"""
    + _CRAWL_FIELDS
    + """        }
      }
    }
  }
"""
)

DOMAIN_CRAWL_HISTORY_QUERY = (
    """
  query DomainCrawlHistory($id: ID!, $urlsLimit: Int = 50, $crawlsLimit: Int = 50) {
    domain(id: $id) {
      id
      urls(limit: $urlsLimit) {
        id
        domainId
        path
        normalizedUrl
        type
        isCanonical
        crawls(limit: $crawlsLimit) {"""
    + _CRAWL_FIELDS
    + """        }
      }
    }
  }
"""
)


class CollectApiError(Exception):
    """A request to the collect API failed as a whole."""

    def __init__(
        self,
        message: str = GENERIC_ERROR_MESSAGE,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


def _error_messages(errors: Any) -> list[str]:
    if not isinstance(errors, list):
        return []
    messages = []
    for error in errors:
        if isinstance(error, dict):
            messages.append(str(error.get("message") or "Unknown error"))
        else:
            messages.append(str(error))
    return messages


class CollectApiClient(DomainQueryBackend, PublicationBackend):
    """Query and mutation client for one collect API instance."""

    GRAPHQL_PATH = "/graphql"

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: API location and timeout.
            client: Pre-built HTTP client (tests, connection sharing). When
                omitted one is created and owned by this instance.
        """
        self._config = config or ClientConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._config.api_url,
            timeout=self._config.timeout,
            headers={"Content-Type": "application/json"},
            follow_redirects=True,
        )

    @property
    def base_url(self) -> str:
        return self._config.api_url

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CollectApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(
        self, method: str, path: str, json: Optional[dict[str, Any]] = None
    ) -> tuple[httpx.Response, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise CollectApiError(f"{GENERIC_ERROR_MESSAGE}: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        return response, payload

    async def graphql(self, query: str, variables: dict[str, Any]) -> QueryResult[dict]:
        """Run a GraphQL query.

        Returns:
            Envelope with the ``data`` object and error messages.

        Raises:
            CollectApiError: On transport failure or a non-GraphQL error
                response.
        """
        response, payload = await self._request(
            "POST", self.GRAPHQL_PATH, json={"query": query, "variables": variables}
        )

        if not isinstance(payload, dict) or ("data" not in payload and "errors" not in payload):
            raise CollectApiError(status_code=response.status_code)

        errors = _error_messages(payload.get("errors"))
        if errors:
            logger.info("GraphQL returned %d error(s): %s", len(errors), "; ".join(errors))
        return QueryResult(data=payload.get("data") or {}, errors=errors)

    async def fetch_domain_meta(
        self, domain_id: str, urls_limit: int, runs_limit: int
    ) -> QueryResult[Domain]:
        result = await self.graphql(
            DOMAIN_TIMELINE_META_QUERY,
            {"id": domain_id, "urlsLimit": urls_limit, "runsLimit": runs_limit},
        )
        raw = (result.data or {}).get("domain")
        return QueryResult(data=Domain.from_dict(raw) if raw else None, errors=result.errors)

    async def fetch_run_snapshot(
        self, domain_id: str, run_id: str, urls_limit: int
    ) -> QueryResult[list[Url]]:
        result = await self.graphql(
            DOMAIN_TIMELINE_SNAPSHOT_QUERY,
            {"id": domain_id, "urlsLimit": urls_limit, "runId": run_id},
        )
        raw = (result.data or {}).get("domain") or {}
        urls = [Url.from_dict(u) for u in raw.get("urls") or []]
        return QueryResult(data=urls, errors=result.errors)

    async def fetch_crawl_history(
        self, domain_id: str, urls_limit: int, crawls_limit: int
    ) -> QueryResult[list[Url]]:
        result = await self.graphql(
            DOMAIN_CRAWL_HISTORY_QUERY,
            {"id": domain_id, "urlsLimit": urls_limit, "crawlsLimit": crawls_limit},
        )
        raw = (result.data or {}).get("domain") or {}
        urls = [Url.from_dict(u) for u in raw.get("urls") or []]
        return QueryResult(data=urls, errors=result.errors)

    async def apply_publication(self, run_id: str, payload: dict[str, Any]) -> None:
        """Submit a publication diff for a crawl run.

        Raises:
            CollectApiError: If the API rejected the change or could not be
                reached.
        """
        path = f"/crawl-runs/{run_id}/publication"
        response, body = await self._request("PATCH", path, json=payload)

        if isinstance(body, dict) and body.get("ok") is False:
            error = body.get("error") or {}
            raise CollectApiError(
                str(error.get("message") or GENERIC_ERROR_MESSAGE),
                status_code=response.status_code,
                code=error.get("code"),
            )

        if response.is_error:
            raise CollectApiError(status_code=response.status_code)

        logger.info("Applied publication changes to run %s: %s", run_id, sorted(payload))
