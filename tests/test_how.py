"""
luminous-client - Execution Policy and Tracing Tests
"""

import asyncio

import pytest
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, SpanContext, TraceFlags, TraceState

from luminous_client.errors import ClientTimeoutError
from luminous_client.how import Deadline, How, Priority
from luminous_client.tracing import TraceContext


class TestHow:
    """Tests for How."""

    def test_defaults(self):
        how = How()
        assert how.priority == Priority.NORMAL
        assert how.client_timeout == 300.0
        assert not how.be_nice
        assert how.request_params() == {}

    def test_nice(self):
        how = How.nice(client_timeout=5)
        assert how.be_nice
        assert how.client_timeout == 5
        assert how.request_params() == {"nice": "true"}

    def test_headers(self):
        assert How().request_headers("abc") == {"Authorization": "Bearer abc"}
        assert How(api_token="override").request_headers("abc") == {"Authorization": "Bearer override"}
        assert How().request_headers(None) == {}

    def test_with_helpers_return_copies(self):
        how = How()
        context = TraceContext.new_unsampled(1, 2)

        traced = how.with_trace_context(context).with_timeout(None)

        assert how.trace_context is None
        assert traced.trace_context == context
        assert traced.client_timeout is None


class TestDeadline:
    """Tests for Deadline."""

    @pytest.mark.asyncio
    async def test_expires(self):
        deadline = Deadline(0.05)

        with pytest.raises(ClientTimeoutError):
            await deadline.run(asyncio.sleep(1))

        assert deadline.expired()

    @pytest.mark.asyncio
    async def test_budget_is_shared(self):
        """Every awaited step draws from the same budget."""
        deadline = Deadline(0.3)

        await deadline.run(asyncio.sleep(0.2))
        with pytest.raises(ClientTimeoutError):
            await deadline.run(asyncio.sleep(0.2))

    @pytest.mark.asyncio
    async def test_no_timeout(self):
        deadline = Deadline(None)
        assert await deadline.run(asyncio.sleep(0, result="done")) == "done"
        assert deadline.remaining() is None
        assert not deadline.expired()


class TestTraceContext:
    """Tests for W3C trace context propagation."""

    def test_traceparent(self):
        context = TraceContext.new_sampled(0x4bf92f3577b34da6a3ce929d0e0e4736, 0x00f067aa0ba902b7)
        assert context.traceparent() == "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"

    def test_unsampled_flags(self):
        context = TraceContext.new_unsampled(1, 2)
        assert context.traceparent() == "00-" + "0" * 31 + "1-" + "0" * 15 + "2-00"
        assert "tracestate" not in context.to_headers()

    def test_from_span(self):
        span = NonRecordingSpan(SpanContext(
            trace_id=0x4bf92f3577b34da6a3ce929d0e0e4736,
            span_id=0x00f067aa0ba902b7,
            is_remote=False,
            trace_flags=TraceFlags(TraceFlags.SAMPLED),
            trace_state=TraceState([("congo", "t61rcWkgMzE")]),
        ))

        context = TraceContext.from_span(span)

        assert context.trace_id == 0x4bf92f3577b34da6a3ce929d0e0e4736
        assert context.sampled
        assert context.to_headers()["tracestate"] == "congo=t61rcWkgMzE"

    def test_invalid_span(self):
        assert TraceContext.from_span(trace.INVALID_SPAN) is None

    def test_current_without_active_span(self):
        assert TraceContext.current() is None
