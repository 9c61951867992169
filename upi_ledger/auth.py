"""
Caller identity.

Authentication is delegated to an external identity provider.
The bearer token from the request is sent to the provider's
/user endpoint and the returned user id becomes the caller id
for the rest of the request. Endpoints receive it through the
get_caller_id dependency, never from global state.
"""

import uuid
from functools import lru_cache

import httpx
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from upi_ledger.config import get_settings
from upi_ledger.errors import Unauthorized

bearer_scheme = HTTPBearer(auto_error=False)


class IdentityProvider:
    """Resolves bearer tokens into user ids."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )
        self.api_key = api_key

    def resolve(self, token: str) -> uuid.UUID:
        """
        Return the user id the token belongs to.

        Raises Unauthorized for any token the provider rejects
        or answers without a usable id.
        """
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            response = self.client.get("/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error("Identity provider request failed: {}", e)
            raise Unauthorized() from e

        if response.status_code != 200:
            logger.info("Identity provider rejected token ({})", response.status_code)
            raise Unauthorized()

        try:
            return uuid.UUID(str(response.json()["id"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Identity provider returned no usable user id")
            raise Unauthorized() from e


@lru_cache()
def get_identity_provider() -> IdentityProvider:
    settings = get_settings()
    return IdentityProvider(
        base_url=settings.AUTH_URL,
        api_key=settings.AUTH_API_KEY,
        timeout=settings.AUTH_TIMEOUT_SECONDS,
    )


def get_caller_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> uuid.UUID:
    """FastAPI dependency: the authenticated caller's id, or 401."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail=Unauthorized.default_message)
    try:
        return provider.resolve(credentials.credentials)
    except Unauthorized as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
