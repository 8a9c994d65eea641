"""
Kiro Gateway - Event Stream Frame Decoder

Splits the binary event stream returned by generateAssistantResponse into
JSON payload strings.

Frame layout (big-endian):

    [0:4)    total_length     uint32, whole frame including trailing CRC
    [4:8)    headers_length   uint32
    [8:12)   prelude_crc      uint32 (not verified)
    [12:12+headers_length)    header bytes (ignored)
    [...:total_length-4)      payload bytes (UTF-8 JSON)
    [total_length-4:)         message_crc uint32 (not verified)

There is no frame-start marker, so a frame whose declared length is
implausible is treated as garbage and the scan moves forward one byte.
"""

import struct
from dataclasses import dataclass
from typing import List, Tuple

PRELUDE_LENGTH = 12
TRAILER_LENGTH = 4
MIN_FRAME_LENGTH = PRELUDE_LENGTH + TRAILER_LENGTH
MAX_FRAME_LENGTH = 1_000_000

_UINT32 = struct.Struct(">I")


@dataclass(frozen=True)
class Frame:
    """One decoded frame. Transient: only its payload text leaves the decoder."""
    total_length: int
    headers_length: int
    payload: bytes

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


def is_plausible_length(total_length: int) -> bool:
    return MIN_FRAME_LENGTH <= total_length <= MAX_FRAME_LENGTH


def iter_frames(buffer: bytes) -> Tuple[List[Frame], int]:
    """
    Scan ``buffer`` for complete frames.

    Returns:
        (frames, consumed) where ``consumed`` is the offset of the first
        byte that still belongs to an incomplete frame (or len(buffer)).
    """
    frames: List[Frame] = []
    offset = 0
    size = len(buffer)

    while offset + PRELUDE_LENGTH <= size:
        (total_length,) = _UINT32.unpack_from(buffer, offset)

        if not is_plausible_length(total_length):
            offset += 1
            continue

        if offset + total_length > size:
            break

        (headers_length,) = _UINT32.unpack_from(buffer, offset + 4)
        payload_start = offset + PRELUDE_LENGTH + headers_length
        payload_end = offset + total_length - TRAILER_LENGTH

        payload = buffer[payload_start:payload_end] if payload_start < payload_end else b""
        frames.append(Frame(total_length, headers_length, payload))

        offset += total_length

    return frames, offset


def decode_frames(buffer: bytes) -> Tuple[List[str], bytes]:
    """
    Extract every complete frame's payload text from ``buffer``.

    Undecodable bytes are replaced rather than rejected, and blank payloads
    are skipped. Never raises.

    Returns:
        (payloads, remaining) where ``remaining`` holds the bytes that must
        be prepended to the next chunk.
    """
    frames, consumed = iter_frames(buffer)

    payloads = []
    for frame in frames:
        if not frame.payload:
            continue
        text = frame.text
        if text.strip():
            payloads.append(text)

    return payloads, bytes(buffer[consumed:])
