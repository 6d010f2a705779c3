"""
luminous-client - Error Classes

Closed error taxonomy shared by the blocking and the streaming call paths.

Every failure a call can run into is raised as a subclass of ``ApiError``.
Service-side failures are mapped by ``classify_error``, a pure function of
the HTTP status and the (optional) parsed error body, so that both execution
modes report identical errors for identical server behavior.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Type, Union


class ApiError(Exception):
    """
    Base exception for luminous-client.

    All errors raised by a call inherit from this class.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        status_code: HTTP status code if applicable (0 if no response was received)
        retryable: Whether the request may be retried by the caller
        details: Additional error details
    """

    default_code = "api_error"
    default_retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: int = 0,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code
        self.retryable = self.default_retryable if retryable is None else retryable
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status_code={self.status_code})"
        )


class BusyError(ApiError):
    """
    The service rejected the request because its queue is full.

    Retry with backoff, or send the request with a lower priority.
    """

    default_code = "queue_full"
    default_retryable = True

    def __init__(self, message: str = "Service queue is full", **kwargs):
        kwargs.setdefault("status_code", 503)
        super().__init__(message, **kwargs)


class UnavailableError(ApiError):
    """
    The service is temporarily unable to serve the request.

    Distinct from ``BusyError`` so callers can apply a different backoff.
    """

    default_code = "unavailable"
    default_retryable = True

    def __init__(self, message: str = "Service temporarily unavailable", **kwargs):
        kwargs.setdefault("status_code", 503)
        super().__init__(message, **kwargs)


class ModelNotFoundError(ApiError):
    """
    The requested model does not exist on the service.

    Attributes:
        model: The model name that was requested
    """

    default_code = "model_not_found"

    def __init__(self, model: Optional[str], message: Optional[str] = None, **kwargs):
        kwargs.setdefault("status_code", 404)
        super().__init__(message or f"Model {model!r} not found", **kwargs)
        self.model = model


class InvalidRequestError(ApiError):
    """
    The task cannot be executed as configured.

    Raised before any network call is made.

    Attributes:
        param: The task parameter that caused the error
    """

    default_code = "invalid_request"

    def __init__(self, message: str, param: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.param = param


class DecodeError(ApiError):
    """
    A response body or stream record did not match the expected shape,
    or a stream ended without its end marker.

    Attributes:
        payload: The offending payload, if any
    """

    default_code = "decode_error"

    def __init__(self, message: str, payload: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.payload = payload


class HttpError(ApiError):
    """
    Any other non-success status.

    Attributes:
        body: The raw response body, kept for diagnostics
    """

    default_code = "http_error"

    def __init__(self, status_code: int, body: str = "", message: Optional[str] = None, **kwargs):
        super().__init__(
            message or f"HTTP {status_code}: {body[:200]}",
            status_code=status_code,
            **kwargs
        )
        self.body = body


class TooManyRequestsError(HttpError):
    """
    Rate limit exceeded for the calling user.

    Attributes:
        retry_after: Seconds to wait before retrying, if the service said so
    """

    default_code = "too_many_requests"
    default_retryable = True

    def __init__(self, body: str = "", retry_after: Optional[int] = None, **kwargs):
        kwargs.pop("status_code", None)
        super().__init__(429, body, message="Too many requests", **kwargs)
        self.retry_after = retry_after


class ClientTimeoutError(ApiError):
    """
    The configured deadline elapsed before the call completed.

    Attributes:
        timeout: The deadline in seconds
    """

    default_code = "client_timeout"
    default_retryable = True

    def __init__(self, timeout: Optional[float], message: Optional[str] = None, **kwargs):
        super().__init__(message or f"Call did not complete within {timeout}s", **kwargs)
        self.timeout = timeout


class TransportError(ApiError):
    """Failed to reach the service (DNS, connection refused, reset)."""

    default_code = "transport_error"
    default_retryable = True


class ConfigurationError(ApiError):
    """The client was constructed with an unusable configuration."""

    default_code = "configuration_error"


# ============================================================
# Classification
# ============================================================

@dataclass(frozen=True)
class ErrorCodeTable:
    """
    Maps service error codes to error classes.

    Kept as data so that a change of the service's code strings only needs
    a new table, not a new classifier.
    """
    codes: Mapping[str, Type[ApiError]] = field(default_factory=dict)

    def lookup(self, code: Optional[str]) -> Optional[Type[ApiError]]:
        if not code:
            return None
        return self.codes.get(code.strip().lower())

    def extend(self, extra: Mapping[str, Type[ApiError]]) -> "ErrorCodeTable":
        merged = dict(self.codes)
        merged.update({key.lower(): value for key, value in extra.items()})
        return ErrorCodeTable(merged)


DEFAULT_ERROR_CODES = ErrorCodeTable({
    "queue_full": BusyError,
    "model_not_found": ModelNotFoundError,
    "unknown_model": ModelNotFoundError,
    "model_loading": UnavailableError,
    "unavailable": UnavailableError,
    "service_unavailable": UnavailableError,
})


def parse_error_body(body: Union[str, bytes, None]) -> Optional[Dict[str, Any]]:
    """Parse an error body as a JSON object, returning None if it is not one."""
    if not body:
        return None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(body)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def error_code_of(data: Optional[Mapping[str, Any]]) -> Optional[str]:
    """
    Extract the service error code from a parsed error body.

    The service sends ``{"error": <message>, "code": <CODE>}``; short bodies
    of the form ``{"error": "<code>"}`` are accepted as well.
    """
    if not data:
        return None
    code = data.get("code")
    if isinstance(code, str) and code:
        return code.lower()
    error = data.get("error")
    if isinstance(error, str) and error and " " not in error.strip():
        return error.strip().lower()
    if isinstance(error, dict):
        return error_code_of(error)
    return None


def _message_of(data: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not data:
        return None
    for key in ("message", "error"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return " ".join(value.split())
    return None


def classify_error(
    status_code: int,
    body: Union[str, bytes, Mapping[str, Any], None] = None,
    model: Optional[str] = None,
    retry_after: Optional[int] = None,
    table: ErrorCodeTable = DEFAULT_ERROR_CODES,
) -> ApiError:
    """
    Map a failed response to the error taxonomy.

    Args:
        status_code: HTTP status of the response (or of the stream error record)
        body: Raw or parsed error body
        model: Model name of the request, attached to ModelNotFoundError
        retry_after: Parsed Retry-After header, attached to TooManyRequestsError
        table: Error code table to consult before falling back on the status

    Returns:
        The classified error. It is returned, not raised.
    """
    if isinstance(body, Mapping):
        data: Optional[Mapping[str, Any]] = body
        raw = json.dumps(body)
    else:
        data = parse_error_body(body)
        if isinstance(body, bytes):
            raw = body.decode("utf-8", errors="replace")
        else:
            raw = body or ""

    code = error_code_of(data)
    message = _message_of(data)
    details = {"body": raw} if raw else {}

    error_class = table.lookup(code)
    if error_class is None:
        if status_code == 404:
            error_class = ModelNotFoundError
        elif status_code == 503:
            error_class = UnavailableError
        elif status_code == 429:
            return TooManyRequestsError(raw, retry_after=retry_after, code=code, details=details)
        else:
            return HttpError(status_code, raw, code=code, details=details)

    if issubclass(error_class, ModelNotFoundError):
        return error_class(model, status_code=status_code, code=code, details=details)
    if issubclass(error_class, TooManyRequestsError):
        return error_class(raw, retry_after=retry_after, code=code, details=details)
    if issubclass(error_class, HttpError):
        return HttpError(status_code, raw, code=code, details=details)
    if message:
        return error_class(message, status_code=status_code, code=code, details=details)
    return error_class(status_code=status_code, code=code, details=details)


def is_retryable_error(error: Any) -> bool:
    """
    Check if an error is retryable.

    Busy, unavailable, rate limit, timeout and transport errors are
    retryable. Everything else needs a change of the request first.
    """
    if isinstance(error, ApiError):
        return error.retryable

    return False
