import logging
import re
from typing import Optional
from urllib.parse import urlsplit

import httpx

from docshub.config import settings
from docshub.errors import ProviderConfigError
from docshub.models.repo import RepoConfig
from docshub.models.review import OAuthSession
from docshub.review.base import ReviewProvider
from docshub.review.bitbucket import BitbucketReviewProvider
from docshub.review.github import GitHubReviewProvider
from docshub.review.gitlab import GitLabReviewProvider

logger = logging.getLogger(__name__)

_REPO_PATH_RE = re.compile(r"[/:]([\w-]+/[\w.-]+)$")


def extract_repo_path(url: str, repo_type: Optional[str] = None) -> str:
    """
    Derive "owner/repo" from a clone URL.

    https://github.com/acme/widgets.git -> acme/widgets
    git@gitlab.com:acme/widgets.git     -> acme/widgets

    The URL is returned unchanged when no two-segment suffix is found.
    """
    cleaned = url.rstrip("/")
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]
    match = _REPO_PATH_RE.search(cleaned)
    return match.group(1) if match else url


def _origin(url: Optional[str]) -> Optional[str]:
    """REST origin of an http(s) clone URL. SSH clone URLs cannot be used."""
    if not url:
        return None
    parts = urlsplit(url)
    if not parts.netloc:
        return None
    if parts.scheme not in ("http", "https"):
        raise ProviderConfigError(
            f"Cannot derive the Bitbucket Server API origin from {url}; set `apiUrl` on the repo"
        )
    return f"{parts.scheme}://{parts.netloc}"


def create_review_provider(
    repo_config: RepoConfig,
    session: Optional[OAuthSession] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[ReviewProvider]:
    """
    Build the review provider for a repository, or None when reviews are unavailable.

    The OAuth session's token is used when the repo is in `oauth` mode and the
    session was issued by the repo's platform; otherwise the configured service
    token. None is returned when neither exists or the repo type has no
    review platform (e.g. `local`).
    """
    use_oauth = (
        repo_config.auth_mode == "oauth"
        and session is not None
        and bool(session.access_token)
        and session.provider == repo_config.type
    )
    token = session.access_token if use_oauth else repo_config.token
    user_name = session.name if use_oauth else repo_config.username
    # an OAuth token acts as the signed-in account, looked up on first use
    login = None if use_oauth else repo_config.login

    if not token:
        logger.debug(f"No credential for repo {repo_config.name}, reviews disabled")
        return None

    kwargs = {"login": login, "timeout": settings.http_timeout, "transport": transport}

    if repo_config.type == "github":
        return GitHubReviewProvider(
            token, repo_config.api_url or settings.github_api_url, user_name, **kwargs
        )
    if repo_config.type == "gitlab":
        return GitLabReviewProvider(
            token, repo_config.api_url or settings.gitlab_api_url, user_name, **kwargs
        )
    if repo_config.type == "bitbucket":
        if repo_config.bitbucket_variant == "server":
            origin = repo_config.api_url or _origin(repo_config.url)
        else:
            origin = repo_config.api_url or settings.bitbucket_api_url
        return BitbucketReviewProvider(
            token, origin, user_name, variant=repo_config.bitbucket_variant, **kwargs
        )

    return None
