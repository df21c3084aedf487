"""Auth collaborator interface.

The OAuth handshake happens elsewhere (the dashboard's identity provider).
This service only asks an ``AuthProvider`` who the caller is and which
delegated upstream token to use, per request.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

BEARER_PREFIX = "Bearer "


class UserIdentity(BaseModel):
    """Authenticated dashboard user."""

    user_id: str = Field(..., description="Stable user id from the identity provider")
    provider: Optional[str] = Field(default=None, description="discord or github")


@runtime_checkable
class AuthProvider(Protocol):
    """Resolves identities and delegated tokens for an incoming request."""

    def get_current_user(self, request: Any) -> Optional[UserIdentity]:
        ...

    def get_delegated_token(self, request: Any, provider_name: str) -> Optional[str]:
        ...


def extract_bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Return the token of an ``Authorization: Bearer`` header, if present."""
    header = headers.get("Authorization", "")
    if not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


class BearerTokenAuthProvider:
    """Treats the request's bearer token as the delegated upstream token.

    The dashboard forwards the GitHub provider token it received at sign-in,
    so the same credential serves as both identity and capability. The user
    id comes from ``X-BotForge-User`` when the dashboard sets it.
    """

    user_header = "X-BotForge-User"

    def get_current_user(self, request: Any) -> Optional[UserIdentity]:
        if extract_bearer_token(request.headers) is None:
            return None
        user_id = request.headers.get(self.user_header) or "anonymous"
        return UserIdentity(user_id=user_id, provider="github")

    def get_delegated_token(self, request: Any, provider_name: str) -> Optional[str]:
        if provider_name != "github":
            return None
        return extract_bearer_token(request.headers)


__all__ = [
    "AuthProvider",
    "BEARER_PREFIX",
    "BearerTokenAuthProvider",
    "UserIdentity",
    "extract_bearer_token",
]
