from __future__ import annotations

import hashlib

import pytest

from telewire.mtproto.auth.kdf import KdfError, initial_server_salt, new_nonce_hash, tmp_aes_key_iv


def _sha1(data: bytes) -> bytes:
    return hashlib.sha1(data).digest()


def test_tmp_aes_key_iv_layout() -> None:
    new_nonce = bytes(range(32))
    server_nonce = bytes(range(200, 216))
    key, iv = tmp_aes_key_iv(new_nonce=new_nonce, server_nonce=server_nonce)

    assert key == _sha1(new_nonce + server_nonce) + _sha1(server_nonce + new_nonce)[:12]
    assert iv == (
        _sha1(server_nonce + new_nonce)[12:20] + _sha1(new_nonce + new_nonce) + new_nonce[:4]
    )
    assert len(key) == 32
    assert len(iv) == 32


def test_initial_server_salt() -> None:
    salt = initial_server_salt(new_nonce=b"\x0f" * 32, server_nonce=b"\xf0" * 16)
    assert salt == b"\xff" * 8


def test_new_nonce_hash_numbers_differ() -> None:
    new_nonce = b"\x01" * 32
    aux = b"\xaa" * 8
    hashes = {new_nonce_hash(new_nonce=new_nonce, aux_hash=aux, number=n) for n in (1, 2, 3)}
    assert len(hashes) == 3
    assert new_nonce_hash(new_nonce=new_nonce, aux_hash=aux, number=1) == _sha1(
        new_nonce + b"\x01" + aux
    )[4:20]


def test_rejects_bad_inputs() -> None:
    with pytest.raises(KdfError):
        tmp_aes_key_iv(new_nonce=b"\x00" * 16, server_nonce=b"\x00" * 16)
    with pytest.raises(KdfError):
        new_nonce_hash(new_nonce=b"\x00" * 32, aux_hash=b"\x00" * 8, number=4)
