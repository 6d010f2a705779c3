"""
luminous-client - HTTP Transport

Thin wrapper around ``httpx.AsyncClient``:
- One request per call. Nothing is retried; ``ApiError.retryable`` tells the
  caller whether trying again makes sense.
- Every await runs under the call's ``Deadline``.
- Failed responses are mapped through ``classify_error``.
- Request/response logging with model and path as extra fields.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from .config import ClientConfig
from .encoding import EncodedRequest
from .errors import ApiError, ClientTimeoutError, DecodeError, TransportError, classify_error
from .how import Deadline
from .logging import get_logger

logger = get_logger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class HttpTransport:
    """
    Sends encoded requests to the inference service.

    Args:
        config: Client configuration
        http_client: Externally owned ``httpx.AsyncClient``. It is used as is
            and not closed by ``close``.
    """

    def __init__(self, config: ClientConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or (self._owns_client and self._client.is_closed):
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.config.user_agent},
                # the per-call Deadline bounds every request
                timeout=None,
                limits=httpx.Limits(max_connections=self.config.max_connections),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if it was created here."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def _build_request(
        self,
        client: httpx.AsyncClient,
        encoded: EncodedRequest,
        headers: Dict[str, str],
        params: Dict[str, str],
    ) -> httpx.Request:
        merged_headers = {"User-Agent": self.config.user_agent, **headers}
        if encoded.stream:
            merged_headers["Accept"] = "text/event-stream"
        return client.build_request(
            encoded.method,
            f"{self.config.base_url}{encoded.path}",
            json=encoded.body,
            headers=merged_headers,
            params={**encoded.params, **params} or None,
        )

    def _log_request_start(self, encoded: EncodedRequest) -> None:
        logger.debug(
            "%s %s", encoded.method, encoded.path,
            extra={"model": encoded.model, "path": encoded.path, "stream": encoded.stream},
        )

    def _log_response(self, encoded: EncodedRequest, status_code: int) -> None:
        logger.debug(
            "Response: status=%d", status_code,
            extra={"model": encoded.model, "path": encoded.path, "status_code": status_code},
        )

    def _failure(self, encoded: EncodedRequest, response: httpx.Response, body: bytes) -> ApiError:
        error = classify_error(
            response.status_code,
            body,
            model=encoded.model,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            table=self.config.error_codes,
        )
        logger.warning(
            "%s %s failed: %s", encoded.method, encoded.path, error.message,
            extra={
                "model": encoded.model,
                "path": encoded.path,
                "status_code": response.status_code,
                "error_code": error.code,
            },
        )
        return error

    async def _send(self, request: httpx.Request, deadline: Deadline, stream: bool) -> httpx.Response:
        client = await self._get_client()
        try:
            return await deadline.run(client.send(request, stream=stream))
        except httpx.TimeoutException as e:
            raise ClientTimeoutError(deadline.timeout) from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}") from e

    async def send(
        self,
        encoded: EncodedRequest,
        headers: Dict[str, str],
        deadline: Deadline,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and return its parsed JSON body.

        Raises:
            ApiError: the classified failure, a ``ClientTimeoutError`` if the
                deadline ran out or a ``DecodeError`` if the body is not JSON
        """
        client = await self._get_client()
        request = self._build_request(client, encoded, headers, params or {})
        self._log_request_start(encoded)

        response = await self._send(request, deadline, stream=False)
        self._log_response(encoded, response.status_code)

        if not response.is_success:
            raise self._failure(encoded, response, response.content)
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(
                f"{encoded.path}: response is not valid JSON", payload=response.text[:500]
            ) from e

    async def open_stream(
        self,
        encoded: EncodedRequest,
        headers: Dict[str, str],
        deadline: Deadline,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Send a streaming request and return the response once its headers arrived.

        The body is left unread; the caller owns the response and must close it.

        Raises:
            ApiError: the classified failure if the status is not 2xx
        """
        client = await self._get_client()
        request = self._build_request(client, encoded, headers, params or {})
        self._log_request_start(encoded)

        response = await self._send(request, deadline, stream=True)
        self._log_response(encoded, response.status_code)

        if response.is_success:
            return response

        try:
            body = await deadline.run(response.aread())
        except httpx.HTTPError as e:
            logger.debug("Could not read error body: %s", e, extra={"path": encoded.path})
            body = b""
        finally:
            await response.aclose()
        raise self._failure(encoded, response, body)
