import logging
from typing import Optional, Protocol

import httpx

from Backend.gemini_proxy.models import AuthenticatedCaller

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an `Authorization: Bearer <token>` header, or None if absent/empty."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


class CallerVerifier(Protocol):
    requires_token: bool

    async def verify(self, token: Optional[str]) -> Optional[AuthenticatedCaller]:
        ...


class NoopVerifier:
    """Deployments without caller identity: every request passes the gate."""

    requires_token = False

    async def verify(self, token: Optional[str]) -> Optional[AuthenticatedCaller]:
        return AuthenticatedCaller(uid="anonymous")


class FirebaseVerifier:
    """
    Resolves a Firebase ID token through the Identity Toolkit `accounts:lookup` endpoint.

    Transport errors, non-OK responses and payloads without `users[0].localId`
    all map to None; callers cannot tell an expired token from an unreachable
    identity service.
    """

    requires_token = True

    def __init__(self, http: httpx.AsyncClient, api_key: str, lookup_url: str):
        self.http = http
        self.api_key = api_key
        self.lookup_url = lookup_url

    async def verify(self, token: Optional[str]) -> Optional[AuthenticatedCaller]:
        if not token:
            return None

        try:
            response = await self.http.post(
                self.lookup_url,
                params={"key": self.api_key},
                json={"idToken": token},
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Error verifying Firebase ID token: {type(e).__name__}: {e}")
            return None

        if not response.is_success:
            logger.warning(f"Failed to verify Firebase ID token: HTTP {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Firebase lookup returned a non-JSON body")
            return None

        users = data.get("users") if isinstance(data, dict) else None
        first = users[0] if isinstance(users, list) and users else None
        uid = first.get("localId") if isinstance(first, dict) else None
        if not uid:
            return None
        return AuthenticatedCaller(uid=uid)
