from __future__ import annotations

import struct
import zlib
from dataclasses import dataclass

from .base import FrameIntegrityError, TransportError

_OVERHEAD = 12  # length + seq + crc32
_MAX_FRAME = 16 * 1024 * 1024


@dataclass(slots=True)
class FullFraming:
    """
    MTProto transport: full.

    Frame format (all little-endian):
    - 4-byte total frame length (including these 12 bytes of overhead)
    - 4-byte sequence number, counted separately per direction from 0
    - payload
    - 4-byte CRC32 over length, seq and payload

    No connect header. A frame that fails the CRC or arrives out of sequence
    raises `FrameIntegrityError`; the stream cannot be resynchronized after that.
    """

    _send_seq: int = 0
    _recv_seq: int = 0

    def reset(self) -> None:
        self._send_seq = 0
        self._recv_seq = 0

    def encode(self, payload: bytes) -> bytes:
        if len(payload) % 4 != 0:
            raise TransportError("Full framing requires payload length multiple of 4 bytes.")
        total = len(payload) + _OVERHEAD
        if total > _MAX_FRAME:
            raise TransportError("Payload too large for full framing.")
        head = struct.pack("<II", total, self._send_seq)
        self._send_seq += 1
        crc = zlib.crc32(head + payload) & 0xFFFFFFFF
        return head + payload + struct.pack("<I", crc)

    def decode_from_buffer(self, buffer: bytearray) -> bytes | None:
        if len(buffer) < 4:
            return None
        (total,) = struct.unpack_from("<I", buffer, 0)
        if total < _OVERHEAD or total > _MAX_FRAME or total % 4 != 0:
            raise FrameIntegrityError(f"Invalid full frame length: {total}")
        if len(buffer) < total:
            return None

        frame = bytes(buffer[:total])
        del buffer[:total]

        (seq,) = struct.unpack_from("<I", frame, 4)
        (crc,) = struct.unpack_from("<I", frame, total - 4)
        if zlib.crc32(frame[:-4]) & 0xFFFFFFFF != crc:
            raise FrameIntegrityError("CRC32 mismatch in full frame")
        if seq != self._recv_seq:
            raise FrameIntegrityError(
                f"Unexpected frame sequence number: got {seq}, expected {self._recv_seq}"
            )
        self._recv_seq += 1
        return frame[8:-4]
