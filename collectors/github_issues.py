"""
GitHub Issues API client.

Searches a repository for open, unassigned issues and fetches repository
metadata. Every call goes through the retry policy in retry_strategy.py:
transient failures (network, 5xx) are retried with backoff, client errors
are not.

Search degrades on client errors: a 4xx (rate limiting included) yields an
empty SearchResult so the pagination loop simply stops for that target.

Usage:
    async with GitHubIssuesClient(token=os.getenv("GITHUB_TOKEN")) as client:
        result = await client.search(target, page=1, page_size=100)
        for item in result.items:
            issue = IssueItem.from_api_response(item)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from collectors.retry_strategy import (
    RetryConfig,
    SleepFunc,
    get_retry_after_seconds,
    is_rate_limit_response,
    with_retry,
)
from services.targets import RepositoryTarget

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "open-issue-sync"

MAX_PAGE_SIZE = 100
RATE_LIMIT_WARNING_THRESHOLD = 10


class RepositoryNotFoundError(Exception):
    """GitHub returned 404 for a repository."""

    def __init__(self, full_name: str):
        super().__init__(f"Repository not found: {full_name}")
        self.full_name = full_name


# =============================================================================
# DATA CLASSES
# =============================================================================

def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class LabelItem:
    """A label as returned by the API (color without '#')."""
    name: str
    color: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> LabelItem:
        return cls(name=data["name"], color=data.get("color"))


@dataclass
class IssueItem:
    """One item of a search page."""
    id: int
    title: str
    html_url: Optional[str]
    state: str = "open"
    comments: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    labels: List[LabelItem] = field(default_factory=list)

    @property
    def label_names(self) -> List[str]:
        return [label.name for label in self.labels]

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> IssueItem:
        """
        Parse a raw search item.

        Raises:
            ValueError: id or title missing, or a field has the wrong shape
        """
        if not isinstance(data, dict):
            raise ValueError(f"Search item is not an object: {type(data).__name__}")

        issue_id = data.get("id")
        title = data.get("title")
        if issue_id is None or not title:
            raise ValueError(f"Search item missing id or title: id={issue_id!r}")

        try:
            labels = [
                LabelItem.from_api_response(label)
                for label in (data.get("labels") or [])
                if label.get("name")
            ]
            return cls(
                id=int(issue_id),
                title=title,
                html_url=data.get("html_url"),
                state=data.get("state") or "open",
                comments=int(data.get("comments") or 0),
                created_at=_parse_timestamp(data.get("created_at")),
                updated_at=_parse_timestamp(data.get("updated_at")),
                labels=labels,
            )
        except (AttributeError, KeyError, TypeError) as e:
            raise ValueError(f"Malformed search item {issue_id}: {e}") from e


@dataclass
class SearchResult:
    """One page of /search/issues. Items are kept raw for per-item parsing."""
    total_count: int = 0
    incomplete_results: bool = False
    items: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @classmethod
    def empty(cls) -> SearchResult:
        return cls()

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> SearchResult:
        return cls(
            total_count=int(data.get("total_count") or 0),
            incomplete_results=bool(data.get("incomplete_results", False)),
            items=list(data.get("items") or []),
        )


@dataclass
class RepositoryInfo:
    """Repository metadata from /repos/{owner}/{name}. id may be missing."""
    id: Optional[int]
    full_name: str
    html_url: Optional[str] = None
    language: Optional[str] = None
    stargazers_count: Optional[int] = None

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> RepositoryInfo:
        repo_id = data.get("id")
        stars = data.get("stargazers_count")
        return cls(
            id=int(repo_id) if repo_id is not None else None,
            full_name=data.get("full_name", ""),
            html_url=data.get("html_url"),
            language=data.get("language"),
            stargazers_count=int(stars) if stars is not None else None,
        )


# =============================================================================
# CLIENT
# =============================================================================

def build_search_query(target: RepositoryTarget) -> str:
    """
    Search query for open, unassigned issues of one repository.

    Example:
        repo:vuejs/vue state:open is:issue no:assignee (label:"good first issue" OR label:"help wanted")
    """
    query = f"repo:{target.full_name} state:open is:issue no:assignee"
    if target.labels:
        label_query = " OR ".join(f'label:"{label}"' for label in target.labels)
        query += f" ({label_query})"
    return query


def normalize_paging(page: int, page_size: int) -> Tuple[int, int]:
    """Clamp page to >= 1 and page_size to 1..100 (out of range -> 100)."""
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = MAX_PAGE_SIZE
    return page, page_size


class GitHubIssuesClient:
    """
    Async GitHub client for issue search.

    Usage:
        async with GitHubIssuesClient(token=token) as client:
            result = await client.search(target, page=1)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = GITHUB_API_URL,
        retry_config: Optional[RetryConfig] = None,
        sleep: Optional[SleepFunc] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Args:
            token: GitHub API token; unauthenticated requests get a far lower quota
            base_url: API root
            retry_config: Retry policy (3 attempts, 2s/4s backoff by default)
            sleep: Awaitable sleep for retry backoff (e.g. Pacer.sleep)
            http_client: Pre-built client; not closed by this class
            timeout: Request timeout for the owned client
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._timeout = timeout

        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No GitHub token configured; using unauthenticated rate limits")

        self.client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None
        self._request_count = 0

    async def __aenter__(self):
        """Async context manager entry"""
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def close(self) -> None:
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    @property
    def request_count(self) -> int:
        return self._request_count

    async def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """Single attempt; raises httpx.HTTPStatusError on non-2xx."""
        if self.client is None:
            raise RuntimeError("Client not started. Use 'async with GitHubIssuesClient()'")

        url = f"{self.base_url}{endpoint}"
        logger.debug(f"GitHub API: {method} {endpoint}")

        response = await self.client.request(method, url, headers=self.headers, **kwargs)
        self._request_count += 1

        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining and remaining.isdigit() and int(remaining) < RATE_LIMIT_WARNING_THRESHOLD:
            logger.warning(f"GitHub rate limit low: {remaining} remaining")

        response.raise_for_status()
        return response.json()

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await with_retry(
            lambda: self._request("GET", endpoint, params=params),
            self.retry_config,
            sleep=self._sleep,
        )

    async def search(
        self,
        target: RepositoryTarget,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
    ) -> SearchResult:
        """
        Fetch one page of open, unassigned issues for a target.

        Args:
            target: Repository to search
            page: 1-based page number (values < 1 become 1)
            page_size: Items per page (outside 1..100 becomes 100)

        Returns:
            SearchResult; empty on any 4xx

        Raises:
            httpx.HTTPStatusError / httpx.TransportError once transient
            failures exhaust their retries
        """
        page, page_size = normalize_paging(page, page_size)
        params = {
            "q": build_search_query(target),
            "page": page,
            "per_page": page_size,
            "sort": "created",
            "order": "desc",
        }

        try:
            data = await self._get("/search/issues", params=params)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if not 400 <= status < 500:
                raise
            if is_rate_limit_response(e.response):
                retry_after = get_retry_after_seconds(e)
                logger.warning(
                    f"Rate limited searching {target.full_name} page {page} "
                    f"(HTTP {status}, retry after {retry_after}s)"
                )
            else:
                logger.error(f"Search rejected for {target.full_name} page {page}: HTTP {status}")
            return SearchResult.empty()

        result = SearchResult.from_api_response(data)
        logger.debug(
            f"{target.full_name} page {page}: {len(result.items)} items "
            f"(total {result.total_count})"
        )
        return result

    async def fetch_repository_info(self, full_name: str) -> RepositoryInfo:
        """
        Fetch repository metadata.

        Raises:
            RepositoryNotFoundError: GitHub returned 404
            httpx.HTTPStatusError: any other error status
        """
        try:
            data = await self._get(f"/repos/{full_name}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise RepositoryNotFoundError(full_name) from e
            raise
        return RepositoryInfo.from_api_response(data)

    async def check_rate_limit(self) -> Optional[Dict[str, Any]]:
        """Current quota from /rate_limit, or None if it could not be read."""
        try:
            data = await self._request("GET", "/rate_limit")
        except Exception as e:
            logger.warning(f"Failed to check GitHub rate limit: {e}")
            return None

        core = (data.get("resources") or {}).get("core") or data.get("rate") or {}
        search = (data.get("resources") or {}).get("search") or {}
        logger.info(
            f"GitHub rate limit: core {core.get('remaining')}/{core.get('limit')}, "
            f"search {search.get('remaining')}/{search.get('limit')}"
        )
        return data
