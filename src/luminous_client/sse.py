"""
luminous-client - Server-Sent Events Framing

Turns a byte stream, delivered in arbitrarily sized reads, into complete
SSE records.

For SSE the blank line, not the TCP/HTTP chunk boundary, is the record
boundary. One read may hold several records, or only part of one, so the
decoder carries unterminated bytes over to the next read. A record is only
dispatched once its terminating blank line has been seen; the result is the
same for every way the input bytes are split.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class SseRecord:
    """One complete SSE record."""
    event: str
    data: str


class SseDecoder:
    """
    Incremental SSE record decoder.

    State: the carry-over buffer of bytes after the last complete line, and
    the fields of the record being assembled.
    """

    def __init__(self):
        self._buffer = b""
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._closed = False

    @property
    def pending(self) -> bool:
        """Whether unterminated input is held back."""
        return bool(self._buffer) or self._event is not None or bool(self._data)

    def feed(self, chunk: bytes) -> List[SseRecord]:
        """
        Consume one read and return the records it completed.

        Raises:
            RuntimeError: if called after ``close``
        """
        if self._closed:
            raise RuntimeError("SseDecoder is closed")

        self._buffer += chunk
        records = []
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            if raw.endswith(b"\r"):
                raw = raw[:-1]
            record = self._process_line(raw.decode("utf-8", errors="replace"))
            if record is not None:
                records.append(record)
        return records

    def close(self) -> bool:
        """
        Signal end of input.

        Returns:
            True if an unterminated record was discarded
        """
        discarded = self.pending
        self._closed = True
        self._buffer = b""
        self._event = None
        self._data = []
        return discarded

    def _process_line(self, line: str) -> Optional[SseRecord]:
        if not line:
            return self._dispatch()

        # comment
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        # other fields (id, retry, unknown) are ignored
        return None

    def _dispatch(self) -> Optional[SseRecord]:
        event, data = self._event, self._data
        self._event, self._data = None, []
        if not data:
            # a record without data carries nothing to parse
            return None
        return SseRecord(event=event or DEFAULT_EVENT, data="\n".join(data))
