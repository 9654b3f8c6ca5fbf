from __future__ import annotations

import struct
import zlib

import pytest

from telewire.mtproto.transport.base import (
    Endpoint,
    FrameIntegrityError,
    TransportError,
    transport_error_code,
)
from telewire.mtproto.transport.full import FullFraming


def test_encode_layout() -> None:
    f = FullFraming()
    payload = b"\x01\x02\x03\x04" * 3
    framed = f.encode(payload)

    assert len(framed) == len(payload) + 12
    assert struct.unpack_from("<II", framed, 0) == (len(framed), 0)
    assert framed[8:-4] == payload
    assert struct.unpack_from("<I", framed, len(framed) - 4)[0] == zlib.crc32(framed[:-4])

    second = f.encode(payload)
    assert struct.unpack_from("<I", second, 4)[0] == 1


def test_decode_partial_buffer() -> None:
    sender, receiver = FullFraming(), FullFraming()
    payload = b"\xaa\xbb\xcc\xdd" * 2
    framed = sender.encode(payload)

    buf = bytearray(framed[:3])
    assert receiver.decode_from_buffer(buf) is None
    buf.extend(framed[3:-1])
    assert receiver.decode_from_buffer(buf) is None
    buf.extend(framed[-1:] + b"\x00")
    assert receiver.decode_from_buffer(buf) == payload
    assert buf == bytearray(b"\x00")


def test_two_frames_in_one_buffer() -> None:
    sender, receiver = FullFraming(), FullFraming()
    buf = bytearray(sender.encode(b"\x01" * 4) + sender.encode(b"\x02" * 8))
    assert receiver.decode_from_buffer(buf) == b"\x01" * 4
    assert receiver.decode_from_buffer(buf) == b"\x02" * 8
    assert buf == bytearray()


def test_every_single_bit_flip_in_payload_is_detected() -> None:
    payload = bytes(range(32))
    framed = FullFraming().encode(payload)
    for byte_index in range(8, 8 + len(payload)):
        for bit in range(8):
            corrupted = bytearray(framed)
            corrupted[byte_index] ^= 1 << bit
            with pytest.raises(FrameIntegrityError, match="CRC32"):
                FullFraming().decode_from_buffer(corrupted)


def test_out_of_sequence_frame_is_rejected() -> None:
    sender = FullFraming()
    sender.encode(b"\x00" * 4)  # seq 0 never delivered
    framed = sender.encode(b"\x00" * 4)
    with pytest.raises(FrameIntegrityError, match="sequence"):
        FullFraming().decode_from_buffer(bytearray(framed))


def test_send_and_receive_counters_are_independent() -> None:
    f = FullFraming()
    f.encode(b"\x00" * 4)
    f.encode(b"\x00" * 4)
    incoming = FullFraming().encode(b"\x07" * 4)
    assert f.decode_from_buffer(bytearray(incoming)) == b"\x07" * 4

    f.reset()
    assert struct.unpack_from("<I", f.encode(b"\x00" * 4), 4)[0] == 0


@pytest.mark.parametrize("total", [0, 8, 13, 32 * 1024 * 1024])
def test_invalid_length_field(total: int) -> None:
    buf = bytearray(struct.pack("<II", total, 0) + b"\x00" * 8)
    with pytest.raises(FrameIntegrityError, match="length"):
        FullFraming().decode_from_buffer(buf)


def test_encode_requires_word_aligned_payload() -> None:
    with pytest.raises(TransportError):
        FullFraming().encode(b"\x00" * 5)


def test_transport_error_code() -> None:
    assert transport_error_code((-404).to_bytes(4, "little", signed=True)) == -404
    assert transport_error_code(b"\x00\x00\x00\x00") is None
    assert transport_error_code(b"\x6c\xfe\xff\xff\x00\x00\x00\x00") is None
    assert str(Endpoint(host="149.154.167.40", port=443)) == "149.154.167.40:443"
