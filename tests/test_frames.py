"""
Kiro Gateway - Frame Decoder Tests

Verifies:
- Payload extraction with and without header bytes
- Partial frames are held back until complete
- Implausible lengths trigger a 1-byte resync
- Blank payloads and invalid UTF-8 are tolerated
"""

import struct

from kiro_gateway.streaming.frames import (
    MAX_FRAME_LENGTH,
    MIN_FRAME_LENGTH,
    decode_frames,
    is_plausible_length,
    iter_frames,
)

from conftest import encode_frame, event_headers


class TestFrameLengths:
    """Plausibility bounds for total_length."""

    def test_bounds(self):
        assert MIN_FRAME_LENGTH == 16
        assert MAX_FRAME_LENGTH == 1_000_000
        assert is_plausible_length(16)
        assert is_plausible_length(1_000_000)
        assert not is_plausible_length(15)
        assert not is_plausible_length(1_000_001)


class TestDecodeFrames:
    """Tests for decode_frames()."""

    def test_single_frame(self):
        payloads, remaining = decode_frames(encode_frame({"content": "hi"}))

        assert payloads == ['{"content": "hi"}']
        assert remaining == b""

    def test_multiple_frames_in_order(self):
        data = encode_frame({"content": "a"}) + encode_frame({"content": "b"})

        payloads, remaining = decode_frames(data)

        assert payloads == ['{"content": "a"}', '{"content": "b"}']
        assert remaining == b""

    def test_header_bytes_are_skipped(self):
        data = encode_frame({"content": "x"}, headers=event_headers())

        payloads, _ = decode_frames(data)

        assert payloads == ['{"content": "x"}']

    def test_incomplete_prelude_is_kept(self):
        data = encode_frame({"content": "x"})

        payloads, remaining = decode_frames(data[:11])

        assert payloads == []
        assert remaining == data[:11]

    def test_incomplete_frame_is_kept(self):
        first = encode_frame({"content": "a"})
        second = encode_frame({"content": "b"})
        data = first + second[:20]

        payloads, remaining = decode_frames(data)

        assert payloads == ['{"content": "a"}']
        assert remaining == second[:20]

    def test_remaining_completes_with_next_chunk(self):
        data = encode_frame({"content": "split"})

        _, remaining = decode_frames(data[:25])
        payloads, remaining = decode_frames(remaining + data[25:])

        assert payloads == ['{"content": "split"}']
        assert remaining == b""

    def test_empty_buffer(self):
        assert decode_frames(b"") == ([], b"")


class TestResync:
    """Implausible lengths are skipped one byte at a time."""

    def test_garbage_prefix_is_skipped(self):
        data = b"\x00" * 5 + encode_frame({"content": "after"})

        payloads, remaining = decode_frames(data)

        assert payloads == ['{"content": "after"}']
        assert remaining == b""

    def test_too_short_length_yields_nothing(self):
        bogus = struct.pack(">II", 15, 0) + b"\x00" * 11

        payloads, _ = decode_frames(bogus)

        assert payloads == []

    def test_too_long_length_yields_nothing(self):
        bogus = struct.pack(">II", MAX_FRAME_LENGTH + 1, 0) + b"\x00" * 20

        payloads, _ = decode_frames(bogus + encode_frame({"usage": 1}))

        assert payloads == ['{"usage": 1}']

    def test_resync_consumes_all_but_prelude_tail(self):
        garbage = b"\xff" * 30

        frames, consumed = iter_frames(garbage)

        assert frames == []
        # Scanning stops once fewer than 12 bytes remain
        assert consumed == len(garbage) - 11


class TestPayloadHandling:
    """Blank and undecodable payloads."""

    def test_empty_payload_is_skipped(self):
        data = encode_frame(b"") + encode_frame({"content": "x"})

        payloads, _ = decode_frames(data)

        assert payloads == ['{"content": "x"}']

    def test_whitespace_payload_is_skipped(self):
        payloads, _ = decode_frames(encode_frame(b"  \n\t "))

        assert payloads == []

    def test_invalid_utf8_is_replaced(self):
        payloads, _ = decode_frames(encode_frame(b'{"content": "\xff"}'))

        assert payloads == ['{"content": "\ufffd"}']

    def test_headers_length_past_payload_gives_empty_payload(self):
        body = b'{"content": "x"}'
        total = 12 + len(body) + 4
        data = struct.pack(">III", total, 500, 0) + body + b"\x00" * 4

        frames, consumed = iter_frames(data)

        assert len(frames) == 1
        assert frames[0].payload == b""
        assert consumed == total
