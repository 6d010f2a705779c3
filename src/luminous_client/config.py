"""
luminous-client - Client Configuration

Everything the client needs is passed in explicitly through ``ClientConfig``.
The environment is only read by ``ClientConfig.from_env``, which the
application calls itself.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from .auth import TokenProvider, as_token_provider
from .errors import DEFAULT_ERROR_CODES, ConfigurationError, ErrorCodeTable
from .how import DEFAULT_CLIENT_TIMEOUT

__version__ = "0.12.0"

ENV_BASE_URL = "INFERENCE_URL"
ENV_TOKEN = "PHARIA_AI_TOKEN"


@dataclass(frozen=True)
class ClientConfig:
    """
    Configuration of a ``Client``.

    Args:
        base_url: Base URL of the inference service
        token: Default credential, a token string or a ``TokenProvider``.
            May be omitted if every call passes ``How(api_token=...)``.
        timeout: Default total deadline per call in seconds
        max_connections: Size of the connection pool
        user_agent: User-Agent header value
        error_codes: Service error codes consulted when classifying failures
    """
    base_url: str
    token: Union[str, TokenProvider, None] = None
    timeout: Optional[float] = DEFAULT_CLIENT_TIMEOUT
    max_connections: int = 100
    user_agent: str = f"luminous-client-python/{__version__}"
    error_codes: ErrorCodeTable = DEFAULT_ERROR_CODES

    def __post_init__(self):
        if not self.base_url or not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if self.max_connections < 1:
            raise ConfigurationError("max_connections must be at least 1")
        as_token_provider(self.token)
        # normalize once so paths can be appended
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @property
    def token_provider(self) -> Optional[TokenProvider]:
        return as_token_provider(self.token)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> ClientConfig:
        """
        Build a config from ``INFERENCE_URL`` and ``PHARIA_AI_TOKEN``.

        Raises:
            ConfigurationError: if ``INFERENCE_URL`` is not set
        """
        env = os.environ if environ is None else environ
        base_url = overrides.pop("base_url", None) or env.get(ENV_BASE_URL)
        if not base_url:
            raise ConfigurationError(
                f"Base URL required. Set {ENV_BASE_URL} environment variable or pass base_url."
            )
        token = overrides.pop("token", None) or env.get(ENV_TOKEN)
        return cls(base_url=base_url, token=token, **overrides)
