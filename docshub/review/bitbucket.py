import logging
from typing import Literal, Optional
from urllib.parse import quote

from docshub.errors import ProviderConfigError
from docshub.models.review import PullRequest, ReviewComment, SubmitReviewPayload
from docshub.review.base import (
    MAX_PAGES,
    PAGE_SIZE,
    ReviewProvider,
    default_title,
    epoch_ms_to_iso,
    sort_comments,
)

logger = logging.getLogger(__name__)

BITBUCKET_CLOUD_ORIGIN = "https://api.bitbucket.org"

PR_STATES = {"OPEN": "open", "MERGED": "merged", "DECLINED": "closed", "SUPERSEDED": "closed"}


class BitbucketReviewProvider(ReviewProvider):
    """
    Bitbucket Cloud and Bitbucket Server / Data Center behind one provider.

    The two products share the review workflow but little else: paths, field
    names and timestamp formats all differ, so every operation branches on
    `variant`.

    Cloud:  {origin}/2.0,          repo "workspace/slug" -> /repositories/workspace/slug
    Server: {origin}/rest/api/1.0, repo "KEY/slug"       -> /projects/KEY/repos/slug

    Server has no public default host; `base_origin` is mandatory for it.
    """

    platform = "Bitbucket"

    def __init__(
        self,
        token: str,
        base_origin: Optional[str] = None,
        user_name: Optional[str] = None,
        variant: Literal["cloud", "server"] = "cloud",
        **kwargs,
    ):
        if variant not in ("cloud", "server"):
            raise ProviderConfigError(f"Unknown Bitbucket variant: {variant}")
        if variant == "server":
            if not base_origin:
                raise ProviderConfigError(
                    "Bitbucket Server requires the instance origin (set `apiUrl` or an https repo `url`)"
                )
            base_url = f"{base_origin.rstrip('/')}/rest/api/1.0"
        else:
            base_url = f"{(base_origin or BITBUCKET_CLOUD_ORIGIN).rstrip('/')}/2.0"

        super().__init__(token, base_url, user_name, **kwargs)
        self.variant = variant

    @property
    def is_server(self) -> bool:
        return self.variant == "server"

    def repo_prefix(self, repo: str) -> str:
        if not self.is_server:
            return f"/repositories/{repo}"
        project, sep, slug = repo.partition("/")
        if not sep or not slug:
            raise ProviderConfigError(
                f'Bitbucket Server repositories are addressed as "PROJECT_KEY/repo-slug", got "{repo}"'
            )
        return f"/projects/{project}/repos/{slug}"

    def _pr_path(self, repo: str, pr_number: int) -> str:
        collection = "pull-requests" if self.is_server else "pullrequests"
        return f"{self.repo_prefix(repo)}/{collection}/{pr_number}"

    # ------------------------------------------------------------------
    # Response mapping
    # ------------------------------------------------------------------

    def _to_pr(self, pr: dict) -> PullRequest:
        if self.is_server:
            links = (pr.get("links") or {}).get("self") or [{}]
            return PullRequest(
                id=pr["id"],
                number=pr["id"],
                title=pr["title"],
                state=PR_STATES.get(pr["state"], "closed"),
                head=pr["fromRef"]["displayId"],
                base=pr["toRef"]["displayId"],
                url=links[0].get("href", ""),
            )
        return PullRequest(
            id=pr["id"],
            number=pr["id"],
            title=pr["title"],
            state=PR_STATES.get(pr["state"], "closed"),
            head=pr["source"]["branch"]["name"],
            base=pr["destination"]["branch"]["name"],
            url=pr["links"]["html"]["href"],
        )

    def _to_comment(self, c: dict, anchor: Optional[dict] = None) -> ReviewComment:
        if self.is_server:
            author = c.get("author") or {}
            # replies carry no anchor of their own; they inherit the thread's
            anchor = c.get("anchor") or anchor or {}
            line = anchor.get("line")
            return ReviewComment(
                id=c["id"],
                author=author.get("name") or author.get("displayName") or "unknown",
                body=c.get("text") or "",
                created_at=epoch_ms_to_iso(c["createdDate"]),
                path=anchor.get("path") if line is not None else None,
                line=line,
                is_own=self._is_own(author.get("name"), author.get("slug")),
            )

        user = c.get("user") or {}
        inline = c.get("inline") or {}
        line = inline.get("to")
        handle = user.get("nickname") or user.get("display_name")
        return ReviewComment(
            id=c["id"],
            author=handle or "unknown",
            body=(c.get("content") or {}).get("raw") or "",
            created_at=c["created_on"],
            path=inline.get("path") if line is not None else None,
            line=line,
            is_own=self._is_own(user.get("nickname"), user.get("account_id"), user.get("uuid")),
        )

    async def _get_values(self, path: str, params: dict | None = None) -> list[dict]:
        """Collect `values` across pages: Cloud follows `next`, Server `nextPageStart`."""
        url = f"{self.base_url}{path}"
        params = {**(params or {}), ("limit" if self.is_server else "pagelen"): PAGE_SIZE}
        values: list[dict] = []
        for _ in range(MAX_PAGES):
            data = (await self._send("GET", url, params=params)).json()
            values += data.get("values", [])
            if self.is_server:
                if data.get("isLastPage", True):
                    return values
                params = {**params, "start": data["nextPageStart"]}
            else:
                url = data.get("next")
                if not url:
                    return values
                params = None
        logger.warning(f"Bitbucket listing {path} truncated after {MAX_PAGES} pages")
        return values

    async def _fetch_identity(self) -> list[Optional[str]]:
        if self.is_server:
            # Server has no current-user resource; every response names the caller
            response = await self._send("GET", f"{self.base_url}/application-properties")
            return [response.headers.get("X-AUSERNAME")]
        user = await self._request("GET", "/user")
        return [user.get("nickname"), user.get("account_id"), user.get("uuid")]

    # ------------------------------------------------------------------
    # ReviewProvider
    # ------------------------------------------------------------------

    async def find_pr(self, repo: str, head_branch: str) -> Optional[PullRequest]:
        if self.is_server:
            data = await self._request(
                "GET",
                f"{self.repo_prefix(repo)}/pull-requests",
                params={
                    "at": f"refs/heads/{head_branch}",
                    "state": "OPEN",
                    "direction": "OUTGOING",
                    "limit": 5,
                },
            )
            prs = [
                pr for pr in data.get("values", [])
                if pr["fromRef"]["displayId"] == head_branch
            ]
        else:
            data = await self._request(
                "GET",
                f"{self.repo_prefix(repo)}/pullrequests",
                params={
                    "q": f'source.branch.name="{head_branch}" AND state="OPEN"',
                    "pagelen": 5,
                },
            )
            prs = data.get("values", [])

        logger.debug(f"Bitbucket {self.variant} returned {len(prs)} open PRs for {repo}:{head_branch}")
        if not prs:
            return None
        return self._to_pr(prs[0])

    async def list_comments(self, repo: str, pr_number: int) -> list[ReviewComment]:
        await self.identity()
        if self.is_server:
            return await self._list_server_comments(repo, pr_number)

        values = await self._get_values(f"{self._pr_path(repo, pr_number)}/comments")
        comments = [self._to_comment(c) for c in values if not c.get("deleted")]
        return sort_comments(comments)

    async def _list_server_comments(self, repo: str, pr_number: int) -> list[ReviewComment]:
        """
        Every thread, global or inline, shows up in the activity stream.

        A root comment arrives with its replies nested under `comments`, and
        each reply also arrives as its own REPLIED activity, so comments are
        collected by id. Activities are newest first: the first copy seen
        holds the current text.
        """
        activities = await self._get_values(f"{self._pr_path(repo, pr_number)}/activities")
        collected: dict[int, Optional[ReviewComment]] = {}
        for activity in activities:
            if activity.get("action") != "COMMENTED" or not activity.get("comment"):
                continue
            if activity.get("commentAction") == "DELETED":
                collected.setdefault(activity["comment"]["id"], None)
                continue
            self._collect_thread(activity["comment"], activity.get("commentAnchor"), collected)
        return sort_comments([c for c in collected.values() if c is not None])

    def _collect_thread(self, comment: dict, anchor: Optional[dict], into: dict) -> None:
        if comment["id"] not in into:
            into[comment["id"]] = self._to_comment(comment, anchor)
        for reply in comment.get("comments") or []:
            self._collect_thread(reply, comment.get("anchor") or anchor, into)

    async def add_comment(self, repo: str, pr_number: int, body: str) -> ReviewComment:
        text = self._tag(body)
        payload = {"text": text} if self.is_server else {"content": {"raw": text}}
        c = await self._request("POST", f"{self._pr_path(repo, pr_number)}/comments", json=payload)
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
        text = self._tag(body)
        if self.is_server:
            payload = {
                "text": text,
                "anchor": {
                    "path": file_path,
                    "line": line,
                    "lineType": "ADDED",
                    "fileType": "TO",
                },
            }
        else:
            payload = {"content": {"raw": text}, "inline": {"path": file_path, "to": line}}

        c = await self._request("POST", f"{self._pr_path(repo, pr_number)}/comments", json=payload)
        logger.info(f"Posted inline comment {c['id']} on {repo}#{pr_number} at {file_path}:{line}")
        comment = self._to_comment(c)
        comment.path = file_path
        comment.line = line
        comment.is_own = True
        return comment

    async def submit_review(
        self, repo: str, pr_number: int, payload: SubmitReviewPayload
    ) -> None:
        participant = None
        if payload.action == "request_changes" and self.is_server:
            participant = self.login or next(iter(await self.identity()), None)
            if not participant:
                raise ProviderConfigError(
                    "Requesting changes on Bitbucket Server needs the login of the token's account "
                    "(set `login` on the repo)"
                )

        pr_path = self._pr_path(repo, pr_number)

        for draft in payload.comments:
            await self.add_inline_comment(repo, pr_number, draft.path, draft.line, draft.body)
        if payload.body:
            await self.add_comment(repo, pr_number, payload.body)

        if payload.action == "approve":
            await self._request("POST", f"{pr_path}/approve")
            logger.info(f"Approved {repo}#{pr_number}")
        elif payload.action == "request_changes":
            if self.is_server:
                await self._request(
                    "PUT",
                    f"{pr_path}/participants/{quote(participant, safe='')}",
                    json={
                        "user": {"name": participant},
                        "approved": False,
                        "status": "NEEDS_WORK",
                    },
                )
            else:
                await self._request("POST", f"{pr_path}/request-changes")
            logger.info(f"Requested changes on {repo}#{pr_number}")

    async def create_pr(
        self,
        repo: str,
        head_branch: str,
        base_branch: str,
        title: Optional[str] = None,
    ) -> PullRequest:
        title = title or default_title(head_branch)
        if self.is_server:
            project, _, slug = repo.partition("/")
            repository = {"slug": slug, "project": {"key": project}}
            payload = {
                "title": title,
                "fromRef": {"id": f"refs/heads/{head_branch}", "repository": repository},
                "toRef": {"id": f"refs/heads/{base_branch}", "repository": repository},
            }
            path = f"{self.repo_prefix(repo)}/pull-requests"
        else:
            payload = {
                "title": title,
                "source": {"branch": {"name": head_branch}},
                "destination": {"branch": {"name": base_branch}},
            }
            path = f"{self.repo_prefix(repo)}/pullrequests"

        pr = await self._request("POST", path, json=payload)
        logger.info(f"Created PR #{pr['id']} on {repo} ({head_branch} -> {base_branch})")
        return self._to_pr(pr)
