"""
luminous-client - Authentication

Providers of the bearer credential sent with each request.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, Union, runtime_checkable

import httpx

from .errors import ConfigurationError, DecodeError, TransportError, classify_error
from .logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies a bearer token per request."""

    async def get_token(self) -> str:
        ...


class StaticToken:
    """A fixed API token."""

    def __init__(self, token: str):
        self._token = token

    async def get_token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return f"StaticToken(prefix={self._token[:4]!r})"


class LoginCredentials:
    """
    Username and password, exchanged for a token on first use.

    The token is requested from ``POST {base_url}/users/login`` once and
    cached for the lifetime of this object.
    """

    def __init__(
        self,
        user: str,
        password: str,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.user = user
        self._password = password
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._token: Optional[str] = None
        self._lock: Optional[asyncio.Lock] = None

    async def get_token(self) -> str:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._token is None:
                self._token = await self._login()
            return self._token

    async def _login(self) -> str:
        payload = {"email": self.user, "password": self._password}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(f"{self.base_url}/users/login", json=payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(f"{self.base_url}/users/login", json=payload)
        except httpx.RequestError as e:
            raise TransportError(f"Login failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "Login failed: status=%d", response.status_code,
                extra={"status_code": response.status_code},
            )
            raise classify_error(response.status_code, response.text)
        try:
            token = response.json().get("token")
        except (ValueError, AttributeError) as e:
            raise DecodeError("login response is not a JSON object", payload=response.text[:500]) from e
        if not isinstance(token, str):
            raise DecodeError("login response has no token", payload=response.text[:500])
        return token

    def __repr__(self) -> str:
        return f"LoginCredentials(user={self.user!r})"


def as_token_provider(token: Union[str, TokenProvider, None]) -> Optional[TokenProvider]:
    """Wrap plain strings in ``StaticToken``."""
    if token is None:
        return None
    if isinstance(token, str):
        return StaticToken(token)
    if isinstance(token, TokenProvider):
        return token
    raise ConfigurationError(f"Unsupported token provider: {type(token).__name__}")
