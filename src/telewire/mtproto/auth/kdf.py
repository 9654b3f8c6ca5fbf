from __future__ import annotations

from telewire.core.bytes import xor_bytes
from telewire.mtproto.crypto.hashes import sha1


class KdfError(Exception):
    pass


def tmp_aes_key_iv(*, new_nonce: bytes, server_nonce: bytes) -> tuple[bytes, bytes]:
    """
    Temporary AES key/iv protecting the DH parameters (before auth_key exists).

    - tmp_aes_key = sha1(new_nonce + server_nonce) + sha1(server_nonce + new_nonce)[:12]
    - tmp_aes_iv  = sha1(server_nonce + new_nonce)[12:20]
                   + sha1(new_nonce + new_nonce)
                   + new_nonce[:4]
    """

    if len(new_nonce) != 32:
        raise KdfError("new_nonce must be 32 bytes (int256)")
    if len(server_nonce) != 16:
        raise KdfError("server_nonce must be 16 bytes (int128)")

    ns = sha1(new_nonce + server_nonce)
    sn = sha1(server_nonce + new_nonce)
    nn = sha1(new_nonce + new_nonce)
    return ns + sn[:12], sn[12:20] + nn + new_nonce[:4]


def initial_server_salt(*, new_nonce: bytes, server_nonce: bytes) -> bytes:
    """First 8 bytes of new_nonce XOR first 8 bytes of server_nonce."""

    if len(new_nonce) < 8 or len(server_nonce) < 8:
        raise KdfError("nonces too short")
    return xor_bytes(new_nonce[:8], server_nonce[:8])


def new_nonce_hash(*, new_nonce: bytes, aux_hash: bytes, number: int) -> bytes:
    """
    new_nonce_hash{1,2,3} = sha1(new_nonce + bytes([number]) + auth_key_aux_hash)[4:20]

    Compared against dh_gen_ok / dh_gen_retry / dh_gen_fail respectively.
    """

    if number not in (1, 2, 3):
        raise KdfError("number must be 1, 2, or 3")
    if len(new_nonce) != 32:
        raise KdfError("new_nonce must be 32 bytes")
    if len(aux_hash) != 8:
        raise KdfError("aux_hash must be 8 bytes")
    return sha1(new_nonce + bytes([number]) + aux_hash)[4:20]
