import logging

import httpx
from fastapi.responses import JSONResponse

from docshub.errors import (
    DiffAnchorError,
    GitError,
    PlatformAPIError,
    RepoNotFoundError,
)

logger = logging.getLogger(__name__)

# (code, substrings, hint) checked in order against the lowercased message
HINTS = [
    (
        "auth_failed",
        ("authentication failed", "401", "bad credentials", "unauthorized"),
        "The token was rejected. Check the repository token or sign in again.",
    ),
    (
        "forbidden",
        ("403", "forbidden", "permission denied"),
        "The token lacks permission for this repository. Grant it read/write access to pull requests.",
    ),
    (
        "not_found",
        ("404", "not found", "does not exist"),
        "The repository or branch was not found. Check the configured URL and branch name.",
    ),
    (
        "dns_failure",
        (
            "could not resolve host",
            "name or service not known",
            "nodename nor servname",
            "getaddrinfo",
            "temporary failure in name resolution",
        ),
        "The host could not be resolved. Check the repository URL and network access.",
    ),
    (
        "timeout",
        ("timed out", "timeout"),
        "The hosting platform did not answer in time. Try again later.",
    ),
]


def describe_error(exc: BaseException) -> dict:
    """
    Build the JSON error payload: the raw message plus a best-effort hint.

    The raw message is always kept under "error" for diagnostics.
    """
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, DiffAnchorError):
        return {
            "error": message,
            "code": "diff_anchor",
            "hint": "Inline comments can only target lines changed by the pull request.",
        }

    lowered = message.lower()
    if isinstance(exc, httpx.TimeoutException):
        lowered += " timed out"
    for code, needles, hint in HINTS:
        if any(needle in lowered for needle in needles):
            return {"error": message, "code": code, "hint": hint}
    return {"error": message, "code": "unknown", "hint": None}


def status_for(exc: BaseException) -> int:
    if isinstance(exc, RepoNotFoundError):
        return 404
    if isinstance(exc, DiffAnchorError):
        return 422
    if isinstance(exc, (PlatformAPIError, httpx.HTTPError, GitError)):
        return 502
    return 500


def error_response(exc: BaseException, status_code: int | None = None) -> JSONResponse:
    status_code = status_code or status_for(exc)
    logger.error(f"Request failed ({status_code}): {exc}")
    return JSONResponse(status_code=status_code, content=describe_error(exc))
