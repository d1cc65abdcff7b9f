import logging
from typing import Optional
from urllib.parse import quote

from docshub.models.review import PullRequest, ReviewComment, SubmitReviewPayload
from docshub.review.base import ReviewProvider, default_title, sort_comments

logger = logging.getLogger(__name__)

GITLAB_API_BASE = "https://gitlab.com/api/v4"

REQUEST_CHANGES_MARKER = "🔄 **Request Changes**"

MR_STATES = {"opened": "open", "closed": "closed", "merged": "merged", "locked": "open"}


class GitLabReviewProvider(ReviewProvider):
    """
    GitLab merge requests (gitlab.com or self-managed via `base_url`).

    GitLab has no "request changes" action at this API level, so it is
    posted as a note carrying REQUEST_CHANGES_MARKER.
    """

    platform = "GitLab"

    def __init__(self, token: str, base_url: str = GITLAB_API_BASE, user_name: Optional[str] = None, **kwargs):
        super().__init__(token, base_url, user_name, **kwargs)

    @staticmethod
    def _project(repo: str) -> str:
        """Encode `group/project` as a single path segment."""
        return quote(repo, safe="")

    def _mr_path(self, repo: str, pr_number: int) -> str:
        return f"/projects/{self._project(repo)}/merge_requests/{pr_number}"

    @staticmethod
    def _to_pr(mr: dict) -> PullRequest:
        return PullRequest(
            id=mr["id"],
            number=mr["iid"],
            title=mr["title"],
            state=MR_STATES.get(mr["state"], "closed"),
            head=mr["source_branch"],
            base=mr["target_branch"],
            url=mr["web_url"],
        )

    def _to_comment(self, note: dict) -> ReviewComment:
        username = (note.get("author") or {}).get("username")
        position = note.get("position") or {}
        # notes on removed lines only carry the old side
        if position.get("new_line") is not None:
            path, line = position.get("new_path"), position["new_line"]
        else:
            path, line = position.get("old_path"), position.get("old_line")
        return ReviewComment(
            id=note["id"],
            author=username or "unknown",
            body=note.get("body") or "",
            created_at=note["created_at"],
            path=path if line is not None else None,
            line=line,
            is_own=self._is_own(username),
        )

    async def find_pr(self, repo: str, head_branch: str) -> Optional[PullRequest]:
        mrs = await self._request(
            "GET",
            f"/projects/{self._project(repo)}/merge_requests",
            params={"state": "opened", "source_branch": head_branch, "per_page": 5},
        )
        logger.debug(f"GitLab returned {len(mrs)} open MRs for {repo}:{head_branch}")
        if not mrs:
            return None
        return self._to_pr(mrs[0])

    async def _fetch_identity(self) -> list[Optional[str]]:
        user = await self._request("GET", "/user")
        return [user.get("username")]

    async def list_comments(self, repo: str, pr_number: int) -> list[ReviewComment]:
        await self.identity()
        notes = await self._get_all(
            f"{self._mr_path(repo, pr_number)}/notes",
            params={"sort": "asc", "order_by": "created_at"},
        )
        # System notes ("changed the description", "added 1 commit") are not review comments
        return sort_comments([self._to_comment(n) for n in notes if not n.get("system")])

    async def add_comment(self, repo: str, pr_number: int, body: str) -> ReviewComment:
        note = await self._request(
            "POST", f"{self._mr_path(repo, pr_number)}/notes", json={"body": self._tag(body)}
        )
        logger.info(f"Posted note {note['id']} on {repo}!{pr_number}")
        comment = self._to_comment(note)
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
        mr = await self._request("GET", self._mr_path(repo, pr_number))
        diff_refs = mr.get("diff_refs") or {}
        base_sha = diff_refs.get("base_sha")
        position = {
            "position_type": "text",
            "base_sha": base_sha,
            "start_sha": diff_refs.get("start_sha") or base_sha,
            "head_sha": commit_sha or diff_refs.get("head_sha") or mr.get("sha"),
            "new_path": file_path,
            "new_line": line,
        }

        discussion = await self._request(
            "POST",
            f"{self._mr_path(repo, pr_number)}/discussions",
            json={"body": self._tag(body), "position": position},
        )
        note = (discussion.get("notes") or [discussion])[0]
        logger.info(f"Opened discussion {discussion.get('id')} on {repo}!{pr_number} at {file_path}:{line}")
        return ReviewComment(
            id=note["id"],
            author=(note.get("author") or {}).get("username") or "unknown",
            body=note.get("body") or "",
            created_at=note["created_at"],
            path=file_path,
            line=line,
            is_own=True,
        )

    async def submit_review(
        self, repo: str, pr_number: int, payload: SubmitReviewPayload
    ) -> None:
        for draft in payload.comments:
            await self.add_inline_comment(repo, pr_number, draft.path, draft.line, draft.body)

        if payload.action == "approve":
            await self._request("POST", f"{self._mr_path(repo, pr_number)}/approve")
            logger.info(f"Approved {repo}!{pr_number}")
            if payload.body:
                await self.add_comment(repo, pr_number, payload.body)
        elif payload.action == "request_changes":
            body = (
                f"{REQUEST_CHANGES_MARKER}: {payload.body}"
                if payload.body
                else f"{REQUEST_CHANGES_MARKER}: changes requested."
            )
            await self.add_comment(repo, pr_number, body)
            logger.info(f"Requested changes on {repo}!{pr_number}")
        elif payload.body:
            await self.add_comment(repo, pr_number, payload.body)

    async def create_pr(
        self,
        repo: str,
        head_branch: str,
        base_branch: str,
        title: Optional[str] = None,
    ) -> PullRequest:
        mr = await self._request(
            "POST",
            f"/projects/{self._project(repo)}/merge_requests",
            json={
                "title": title or default_title(head_branch),
                "source_branch": head_branch,
                "target_branch": base_branch,
            },
        )
        logger.info(f"Created MR !{mr['iid']} on {repo} ({head_branch} -> {base_branch})")
        return self._to_pr(mr)
