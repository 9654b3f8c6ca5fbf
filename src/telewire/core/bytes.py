from __future__ import annotations


class BytesError(Exception):
    pass


def xor_bytes(a: bytes, b: bytes) -> bytes:
    if len(a) != len(b):
        raise BytesError("xor_bytes requires equal-length inputs")
    return (int.from_bytes(a, "big") ^ int.from_bytes(b, "big")).to_bytes(len(a), "big")


def be_bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big", signed=False)


def int_to_be_bytes(n: int, length: int | None = None) -> bytes:
    """
    Big-endian unsigned encoding, as used by TL for big integers (pq, dh_prime, g_a...).

    Without `length` the shortest representation is returned (at least 1 byte).
    """

    if n < 0:
        raise BytesError("negative int")
    if length is None:
        length = (n.bit_length() + 7) // 8 or 1
    try:
        return n.to_bytes(length, "big", signed=False)
    except OverflowError as e:
        raise BytesError(f"int does not fit in {length} bytes") from e


def u64_to_le_bytes(x: int) -> bytes:
    return (int(x) & ((1 << 64) - 1)).to_bytes(8, "little", signed=False)


def le_bytes_to_i64(data: bytes) -> int:
    if len(data) != 8:
        raise BytesError("expected 8 bytes")
    return int.from_bytes(data, "little", signed=True)
