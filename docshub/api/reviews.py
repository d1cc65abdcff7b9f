from typing import Optional
import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from docshub.api.deps import get_http_transport, get_registry
from docshub.api.errors import error_response
from docshub.auth import get_oauth_session
from docshub.models.repo import RepoConfig
from docshub.models.review import OAuthSession, ReviewRequest, SubmitReviewPayload
from docshub.registry import RepoRegistry
from docshub.review import create_review_provider, extract_repo_path

logger = logging.getLogger(__name__)
router = APIRouter()


def bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def repo_meta(repo_config: RepoConfig) -> dict:
    """Repo context included in every GET response."""
    return {
        "authMode": repo_config.auth_mode,
        "repoType": repo_config.type,
        "defaultBranch": repo_config.default_branch,
    }


def api_repo_path(repo_config: RepoConfig) -> str:
    """Identifier passed to the platform: "owner/repo" from the URL, else the repo name."""
    if repo_config.url:
        return extract_repo_path(repo_config.url, repo_config.type)
    return repo_config.name


@router.get("/reviews/{repo}")
async def get_review(
    repo: str,
    branch: Optional[str] = None,
    registry: RepoRegistry = Depends(get_registry),
    session: Optional[OAuthSession] = Depends(get_oauth_session),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    """
    Review state of a branch:
    - canReview=false: no credential, review UI disabled
    - canReview=true, pr=null: no open PR yet, the UI may offer to create one
    - canReview=true, pr set: the PR and its comments, oldest first
    """
    if not branch:
        return bad_request("Missing `branch` parameter")

    try:
        repo_config = registry.get_repo(repo)
        meta = repo_meta(repo_config)
        provider = create_review_provider(repo_config, session, transport=transport)

        if provider is None:
            return {"pr": None, "comments": [], "canReview": False, **meta}

        api_repo = api_repo_path(repo_config)
        pr = await provider.find_pr(api_repo, branch)
        if pr is None:
            return {"pr": None, "comments": [], "canReview": True, **meta}

        comments = await provider.list_comments(api_repo, pr.number)
        logger.info(f"Loaded PR #{pr.number} with {len(comments)} comments for {repo}:{branch}")
        return {
            "pr": pr.model_dump(by_alias=True),
            "comments": [c.model_dump(by_alias=True) for c in comments],
            "canReview": True,
            **meta,
        }
    except Exception as e:
        return error_response(e)


@router.post("/reviews/{repo}")
async def post_review(
    repo: str,
    request: ReviewRequest,
    registry: RepoRegistry = Depends(get_registry),
    session: Optional[OAuthSession] = Depends(get_oauth_session),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    """
    Review actions on a repository:
    - create_pr: open a PR from `branch` into `baseBranch`
    - comment: inline when `filePath` and `line` are given, global otherwise
    - approve / request_changes: formal review, `comment` used as its body
    """
    try:
        repo_config = registry.get_repo(repo)
        provider = create_review_provider(repo_config, session, transport=transport)
        if provider is None:
            return bad_request("No review provider available")

        api_repo = api_repo_path(repo_config)
        action = request.action

        if action == "create_pr":
            if not request.branch or not request.base_branch:
                return bad_request("Missing branch parameters")
            pr = await provider.create_pr(api_repo, request.branch, request.base_branch, request.title)
            return {"pr": pr.model_dump(by_alias=True)}

        if action not in ("comment", "approve", "request_changes"):
            return bad_request("Unknown action")

        if request.pr_number is None:
            return bad_request("Missing `prNumber`")

        if action == "comment":
            if not request.comment:
                return bad_request("Missing `comment`")
            if request.file_path and request.line:
                created = await provider.add_inline_comment(
                    api_repo,
                    request.pr_number,
                    request.file_path,
                    request.line,
                    request.comment,
                    request.commit_sha,
                )
            else:
                created = await provider.add_comment(api_repo, request.pr_number, request.comment)
            return created.model_dump(by_alias=True)

        await provider.submit_review(
            api_repo,
            request.pr_number,
            SubmitReviewPayload(action=action, body=request.comment),
        )
        return {"success": True}
    except Exception as e:
        return error_response(e)
