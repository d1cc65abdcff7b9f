import asyncio
import logging
from typing import Optional

from docshub.errors import DiffAnchorError, PlatformAPIError
from docshub.models.review import PullRequest, ReviewComment, SubmitReviewPayload
from docshub.review.base import ReviewProvider, default_title, sort_comments

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"

REVIEW_EVENTS = {
    "approve": "APPROVE",
    "request_changes": "REQUEST_CHANGES",
    "comment": "COMMENT",
}


class GitHubReviewProvider(ReviewProvider):
    """
    GitHub (and GitHub Enterprise, via `base_url`) over the REST API.

    Inline comments go through the REST review-comment endpoint, which only
    accepts lines that fall inside a diff hunk of the pull request. A comment
    on any other line is rejected by GitHub and raised as DiffAnchorError.
    """

    platform = "GitHub"

    def __init__(self, token: str, base_url: str = GITHUB_API_BASE, user_name: Optional[str] = None, **kwargs):
        super().__init__(token, base_url, user_name, **kwargs)

    def _headers(self) -> dict:
        headers = super()._headers()
        headers["Accept"] = "application/vnd.github+json"
        headers["X-GitHub-Api-Version"] = "2022-11-28"
        return headers

    @staticmethod
    def _to_pr(pr: dict) -> PullRequest:
        state = "merged" if pr.get("merged_at") else pr["state"]
        return PullRequest(
            id=pr["id"],
            number=pr["number"],
            title=pr["title"],
            state=state,
            head=pr["head"]["ref"],
            base=pr["base"]["ref"],
            url=pr["html_url"],
        )

    def _to_comment(self, c: dict, inline: bool = False) -> ReviewComment:
        login = (c.get("user") or {}).get("login")
        line = None
        if inline:
            line = c.get("line") or c.get("original_line")
        return ReviewComment(
            id=c["id"],
            author=login or "unknown",
            body=c.get("body") or "",
            created_at=c["created_at"],
            path=c.get("path") if inline and line is not None else None,
            line=line,
            is_own=self._is_own(login),
        )

    async def find_pr(self, repo: str, head_branch: str) -> Optional[PullRequest]:
        owner = repo.split("/")[0]
        prs = await self._request(
            "GET",
            f"/repos/{repo}/pulls",
            params={"state": "open", "head": f"{owner}:{head_branch}", "per_page": 5},
        )
        logger.debug(f"GitHub returned {len(prs)} open PRs for {repo}:{head_branch}")
        if not prs:
            return None
        return self._to_pr(prs[0])

    async def _fetch_identity(self) -> list[Optional[str]]:
        user = await self._request("GET", "/user")
        return [user.get("login")]

    async def list_comments(self, repo: str, pr_number: int) -> list[ReviewComment]:
        await self.identity()
        issue_comments, review_comments = await asyncio.gather(
            self._get_all(f"/repos/{repo}/issues/{pr_number}/comments"),
            self._get_all(f"/repos/{repo}/pulls/{pr_number}/comments"),
        )
        comments = [self._to_comment(c) for c in issue_comments]
        comments += [self._to_comment(c, inline=True) for c in review_comments]
        return sort_comments(comments)

    async def add_comment(self, repo: str, pr_number: int, body: str) -> ReviewComment:
        c = await self._request(
            "POST",
            f"/repos/{repo}/issues/{pr_number}/comments",
            json={"body": self._tag(body)},
        )
        logger.info(f"Posted comment {c['id']} on {repo}#{pr_number}")
        comment = self._to_comment(c)
        comment.is_own = True
        return comment

    async def add_inline_comment(
        self,
        repo: str,
        pr_number: int,
        file_path: str,
        line: int,
        body: str,
        commit_sha: Optional[str] = None,
    ) -> ReviewComment:
        if not commit_sha:
            pr = await self._request("GET", f"/repos/{repo}/pulls/{pr_number}")
            commit_sha = pr["head"]["sha"]

        try:
            c = await self._request(
                "POST",
                f"/repos/{repo}/pulls/{pr_number}/comments",
                json={
                    "body": self._tag(body),
                    "commit_id": commit_sha,
                    "path": file_path,
                    "line": line,
                    "side": "RIGHT",
                },
            )
        except PlatformAPIError as e:
            if e.status_code == 422:
                raise DiffAnchorError(self.platform, e.status_code, e.body, file_path, line) from e
            raise

        logger.info(f"Posted inline comment {c['id']} on {repo}#{pr_number} at {file_path}:{line}")
        return ReviewComment(
            id=c["id"],
            author=(c.get("user") or {}).get("login") or "unknown",
            body=c.get("body") or "",
            created_at=c["created_at"],
            path=c.get("path") or file_path,
            line=c.get("line") or line,
            is_own=True,
        )

    async def submit_review(
        self, repo: str, pr_number: int, payload: SubmitReviewPayload
    ) -> None:
        review = {
            "event": REVIEW_EVENTS[payload.action],
            "body": self._tag(payload.body) if payload.body else "",
        }
        if payload.comments:
            review["comments"] = [
                {"path": c.path, "line": c.line, "body": self._tag(c.body), "side": "RIGHT"}
                for c in payload.comments
            ]

        data = await self._request("POST", f"/repos/{repo}/pulls/{pr_number}/reviews", json=review)
        logger.info(f"Submitted {review['event']} review {(data or {}).get('id')} on {repo}#{pr_number}")

    async def create_pr(
        self,
        repo: str,
        head_branch: str,
        base_branch: str,
        title: Optional[str] = None,
    ) -> PullRequest:
        pr = await self._request(
            "POST",
            f"/repos/{repo}/pulls",
            json={
                "title": title or default_title(head_branch),
                "head": head_branch,
                "base": base_branch,
            },
        )
        logger.info(f"Created PR #{pr['number']} on {repo} ({head_branch} -> {base_branch})")
        return self._to_pr(pr)
