"""
OAuth identity forwarded by the authenticating proxy.

Sign-in happens upstream (oauth2-proxy or similar with token passing
enabled). The app only reads the resulting access token and user name from
the forwarded headers.
"""

from typing import Optional
from fastapi import Request

from docshub.config import settings
from docshub.models.review import OAuthSession

ACCESS_TOKEN_HEADER = "X-Forwarded-Access-Token"
PROVIDER_HEADER = "X-Forwarded-Provider"
USERNAME_HEADERS = ("X-Forwarded-Preferred-Username", "X-Forwarded-User")


def get_oauth_session(request: Request) -> Optional[OAuthSession]:
    """FastAPI dependency: the signed-in user's session, or None."""
    token = request.headers.get(ACCESS_TOKEN_HEADER)
    if not token:
        return None

    name = next(
        (request.headers[h] for h in USERNAME_HEADERS if request.headers.get(h)),
        None,
    )
    provider = request.headers.get(PROVIDER_HEADER) or settings.oauth_provider
    return OAuthSession(access_token=token, provider=provider, name=name)
