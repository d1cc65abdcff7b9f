from typing import Optional

import httpx
from fastapi import Request

from docshub.registry import RepoRegistry


def get_registry(request: Request) -> RepoRegistry:
    """The registry created in the app lifespan."""
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("Repository registry not initialized")
    return registry


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport used by review providers; None means httpx's default network transport."""
    return None
