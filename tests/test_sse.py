"""
luminous-client - SSE Framing Tests

Verifies:
- Records are only dispatched at their terminating blank line
- The result does not depend on how the bytes are split into reads
- Comments, unknown fields and CRLF line endings are handled
"""

import pytest

from luminous_client.sse import SseDecoder, SseRecord


COMPLETION_STREAM = (
    b'event: completion_start\ndata: {"model_version": "2024-01"}\n\n'
    b': keep-alive\n\n'
    b'event: completion_chunk\ndata: {"completion": " keeps"}\n\n'
    b'event: completion_chunk\ndata: {"completion": " the doctor away \xc3\xa4"}\n\n'
    b'event: completion_end\ndata: {"finish_reason": "stop"}\n\n'
)


def decode_all(reads):
    decoder = SseDecoder()
    records = []
    for data in reads:
        records.extend(decoder.feed(data))
    return records, decoder.close()


class TestSseDecoder:
    """Tests for SseDecoder."""

    def test_single_read(self):
        records, discarded = decode_all([COMPLETION_STREAM])

        assert [r.event for r in records] == [
            "completion_start", "completion_chunk", "completion_chunk", "completion_end",
        ]
        assert records[2].data == '{"completion": " the doctor away ä"}'
        assert discarded is False

    def test_every_split_offset(self):
        """Splitting the stream at any byte offset yields the same records."""
        expected, _ = decode_all([COMPLETION_STREAM])

        for offset in range(len(COMPLETION_STREAM) + 1):
            reads = [COMPLETION_STREAM[:offset], COMPLETION_STREAM[offset:]]
            records, discarded = decode_all(reads)
            assert records == expected, f"split at {offset}"
            assert discarded is False

    def test_byte_by_byte(self):
        """One byte per read, including inside a multi-byte UTF-8 character."""
        expected, _ = decode_all([COMPLETION_STREAM])
        reads = [COMPLETION_STREAM[i:i + 1] for i in range(len(COMPLETION_STREAM))]

        records, _ = decode_all(reads)

        assert records == expected

    def test_record_waits_for_blank_line(self):
        decoder = SseDecoder()

        assert decoder.feed(b'data: {"a": 1}\n') == []
        assert decoder.pending
        assert decoder.feed(b"\n") == [SseRecord(event="message", data='{"a": 1}')]
        assert not decoder.pending

    def test_crlf_line_endings(self):
        records, _ = decode_all([b"event: usage\r\ndata: {}\r\n\r\n"])
        assert records == [SseRecord(event="usage", data="{}")]

    def test_multiple_data_lines_are_joined(self):
        records, _ = decode_all([b"data: first\ndata:second\n\n"])
        assert records[0].data == "first\nsecond"

    def test_unknown_fields_and_comments_ignored(self):
        records, _ = decode_all([b": comment\nid: 7\nretry: 1000\ndata: x\n\n"])
        assert records == [SseRecord(event="message", data="x")]

    def test_record_without_data_is_skipped(self):
        records, _ = decode_all([b"event: ping\n\n"])
        assert records == []

    def test_unterminated_record_is_never_dispatched(self):
        records, discarded = decode_all([b'event: completion_end\ndata: {"finish_reason": "stop"}\n'])

        assert records == []
        assert discarded is True

    def test_feed_after_close(self):
        decoder = SseDecoder()
        decoder.close()
        with pytest.raises(RuntimeError):
            decoder.feed(b"data: x\n\n")
