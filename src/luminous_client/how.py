"""
luminous-client - Execution Policy

``How`` controls how a task is executed, independently of what it computes:
its priority, a total deadline, a per-call credential and trace propagation.
It only shapes the outgoing request; nothing here retries.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Dict, Optional, TypeVar

from .errors import ClientTimeoutError
from .tracing import TraceContext

T = TypeVar("T")

DEFAULT_CLIENT_TIMEOUT = 300.0


class Priority(str, Enum):
    """Request priority."""
    NORMAL = "normal"
    NICE = "nice"  # the service may defer the request while under load


@dataclass(frozen=True)
class How:
    """
    Execution policy for a single call.

    Args:
        priority: ``Priority.NICE`` tells the service the result is not
            needed urgently, so it may be deferred under load.
        client_timeout: Total deadline in seconds for the call, including the
            whole stream for streaming calls. ``None`` disables it.
        api_token: Credential used for this call instead of the client default.
        trace_context: Trace context propagated to the service.
    """
    priority: Priority = Priority.NORMAL
    client_timeout: Optional[float] = DEFAULT_CLIENT_TIMEOUT
    api_token: Optional[str] = None
    trace_context: Optional[TraceContext] = None

    @classmethod
    def nice(cls, **kwargs) -> How:
        return cls(priority=Priority.NICE, **kwargs)

    @property
    def be_nice(self) -> bool:
        return self.priority == Priority.NICE

    def with_timeout(self, client_timeout: Optional[float]) -> How:
        return replace(self, client_timeout=client_timeout)

    def with_trace_context(self, trace_context: Optional[TraceContext]) -> How:
        return replace(self, trace_context=trace_context)

    def request_params(self) -> Dict[str, str]:
        """Query parameters for the request."""
        if self.be_nice:
            return {"nice": "true"}
        return {}

    def request_headers(self, default_token: Optional[str]) -> Dict[str, str]:
        """
        Headers for the request.

        The per-call ``api_token`` supersedes ``default_token``.
        """
        headers: Dict[str, str] = {}
        token = self.api_token or default_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if self.trace_context is not None:
            headers.update(self.trace_context.to_headers())
        return headers

    def deadline(self) -> Deadline:
        return Deadline(self.client_timeout)


class Deadline:
    """
    Total time budget of one call.

    Every suspension point of the call awaits through ``run`` so that the
    budget covers connection, headers and every body read together.
    """

    def __init__(self, timeout: Optional[float]):
        self.timeout = timeout
        self._expires_at: Optional[float] = None

    def start(self) -> None:
        if self._expires_at is None and self.timeout is not None:
            self._expires_at = asyncio.get_running_loop().time() + self.timeout

    def remaining(self) -> Optional[float]:
        if self.timeout is None:
            return None
        self.start()
        assert self._expires_at is not None
        return max(0.0, self._expires_at - asyncio.get_running_loop().time())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` within the remaining budget.

        Raises:
            ClientTimeoutError: if the budget runs out first
        """
        remaining = self.remaining()
        try:
            return await asyncio.wait_for(awaitable, remaining)
        except asyncio.TimeoutError as e:
            raise ClientTimeoutError(self.timeout) from e
