"""
luminous-client - Trace Context Propagation

W3C trace context (``traceparent`` / ``tracestate`` headers) attached to
outgoing requests, so the service can join the caller's distributed trace.

Usage:
    from luminous_client import How, TraceContext

    # Explicit ids
    how = How(trace_context=TraceContext(trace_id=0x4bf9..., span_id=0x00f0...))

    # Or from the active OpenTelemetry span
    how = How(trace_context=TraceContext.current())
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import Span

# https://www.w3.org/TR/trace-context/#version
SUPPORTED_VERSION = 0


@dataclass(frozen=True)
class TraceContext:
    """Trace context of the caller, propagated through HTTP headers."""
    trace_id: int
    span_id: int
    sampled: bool = True
    trace_state: Optional[str] = None

    @classmethod
    def new_sampled(cls, trace_id: int, span_id: int) -> TraceContext:
        return cls(trace_id, span_id, True)

    @classmethod
    def new_unsampled(cls, trace_id: int, span_id: int) -> TraceContext:
        return cls(trace_id, span_id, False)

    @classmethod
    def from_span(cls, span: Span) -> Optional[TraceContext]:
        """Create TraceContext from an OpenTelemetry span (None if it is not recording a valid context)."""
        ctx = span.get_span_context()
        if not ctx.is_valid:
            return None
        trace_state = ctx.trace_state.to_header() if ctx.trace_state else None
        return cls(
            trace_id=ctx.trace_id,
            span_id=ctx.span_id,
            sampled=ctx.trace_flags.sampled,
            trace_state=trace_state or None,
        )

    @classmethod
    def current(cls) -> Optional[TraceContext]:
        """Trace context of the active OpenTelemetry span, if any."""
        return cls.from_span(trace.get_current_span())

    @property
    def trace_flags(self) -> int:
        # version 0 only defines the sampled flag
        return 0x01 if self.sampled else 0x00

    def traceparent(self) -> str:
        """Generate W3C traceparent header value."""
        return f"{SUPPORTED_VERSION:02x}-{self.trace_id:032x}-{self.span_id:016x}-{self.trace_flags:02x}"

    def to_headers(self) -> Dict[str, str]:
        headers = {"traceparent": self.traceparent()}
        if self.trace_state:
            headers["tracestate"] = self.trace_state
        return headers
