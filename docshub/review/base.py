from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional
import logging

import httpx

from docshub.errors import PlatformAPIError
from docshub.models.review import PullRequest, ReviewComment, SubmitReviewPayload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Upper bound on followed pages for one listing (100 items per page)
MAX_PAGES = 20
PAGE_SIZE = 100


def default_title(head_branch: str) -> str:
    return f"Documentation review: {head_branch}"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp as returned by the hosting platforms."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def epoch_ms_to_iso(value: int) -> str:
    """Convert a millisecond epoch (Bitbucket Server) to ISO-8601 UTC."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


def sort_comments(comments: list[ReviewComment]) -> list[ReviewComment]:
    """Oldest first. Equal timestamps keep their original order."""
    return sorted(comments, key=lambda c: parse_timestamp(c.created_at))


class ReviewProvider(ABC):
    """
    Pull request review operations against one hosting platform.

    Instances hold the token, the API base URL and two names:

    - `user_name`: the human actor, used only for the `**[name]:**` tag
    - `login`: the platform account the token acts as, used for `isOwn`
      and for participant updates. When not configured it is looked up
      once per instance through the platform's current-user endpoint.

    Every call is an independent request/response cycle; nothing is retried.
    """

    platform: str = "base"

    def __init__(
        self,
        token: str,
        base_url: str,
        user_name: Optional[str] = None,
        login: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.user_name = user_name
        self.login = login
        self.timeout = timeout
        self._transport = transport
        self._identity: Optional[frozenset[str]] = frozenset({login}) if login else None

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    async def _send(
        self,
        method: str,
        url: str,
        params: dict | None = None,
        json: Any = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Perform one HTTP call and raise PlatformAPIError on a non-success status."""
        request_headers = self._headers()
        if headers:
            request_headers.update(headers)

        async with httpx.AsyncClient(
            follow_redirects=True, timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.request(
                method, url, params=params, json=json, headers=request_headers
            )

        if not response.is_success:
            logger.error(
                f"{self.platform} {method} {url} failed with {response.status_code}: {response.text[:500]}"
            )
            raise PlatformAPIError(self.platform, response.status_code, response.text)
        return response

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: Any = None,
    ) -> Any:
        """Call `base_url + path` and return the decoded JSON body (None when empty)."""
        response = await self._send(method, f"{self.base_url}{path}", params=params, json=json)
        if not response.content:
            return None
        return response.json()

    async def _get_all(self, path: str, params: dict | None = None) -> list:
        """GET a JSON-array listing, following `Link: <...>; rel="next"` headers."""
        url = f"{self.base_url}{path}"
        params = {**(params or {}), "per_page": PAGE_SIZE}
        items: list = []
        for _ in range(MAX_PAGES):
            response = await self._send("GET", url, params=params)
            items += response.json() or []
            url = response.links.get("next", {}).get("url")
            if not url:
                return items
            # the next link already carries the query string
            params = None
        logger.warning(f"{self.platform} listing {path} truncated after {MAX_PAGES} pages")
        return items

    def _tag(self, body: str) -> str:
        """Prefix the acting user's name to a comment body."""
        return f"**[{self.user_name}]:** {body}" if self.user_name else body

    async def identity(self) -> frozenset[str]:
        """Handles of the account the token acts as, resolved once."""
        if self._identity is None:
            try:
                handles = await self._fetch_identity()
            except PlatformAPIError as e:
                # e.g. GitHub App installation tokens cannot read /user
                logger.warning(f"Could not resolve the {self.platform} account for this token: {e}")
                handles = []
            self._identity = frozenset(h for h in handles if h)
        return self._identity

    def _is_own(self, *handles: Optional[str]) -> bool:
        """Match comment author handles against the resolved identity (see identity())."""
        if not self._identity:
            return False
        return any(handle in self._identity for handle in handles if handle)

    @abstractmethod
    async def _fetch_identity(self) -> list[Optional[str]]:
        """Ask the platform which account the token belongs to."""

    @abstractmethod
    async def find_pr(self, repo: str, head_branch: str) -> Optional[PullRequest]:
        """Return the first open pull request whose source is `head_branch`, or None."""

    @abstractmethod
    async def list_comments(self, repo: str, pr_number: int) -> list[ReviewComment]:
        """Return global and inline comments, oldest first."""

    @abstractmethod
    async def add_comment(self, repo: str, pr_number: int, body: str) -> ReviewComment:
        """Post a global comment."""

    @abstractmethod
    async def add_inline_comment(
        self,
        repo: str,
        pr_number: int,
        file_path: str,
        line: int,
        body: str,
        commit_sha: Optional[str] = None,
    ) -> ReviewComment:
        """Post a comment anchored to `file_path` at `line`."""

    @abstractmethod
    async def submit_review(
        self, repo: str, pr_number: int, payload: SubmitReviewPayload
    ) -> None:
        """Approve, request changes or comment on a pull request."""

    @abstractmethod
    async def create_pr(
        self,
        repo: str,
        head_branch: str,
        base_branch: str,
        title: Optional[str] = None,
    ) -> PullRequest:
        """Open a pull request from `head_branch` into `base_branch`."""
