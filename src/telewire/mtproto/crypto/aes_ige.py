from __future__ import annotations

from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from telewire.core.bytes import xor_bytes

_BLOCK = 16


class AesIgeError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class AesIge:
    """
    AES-256 in IGE mode.

    `iv` is 32 bytes: the first half seeds the previous-ciphertext chain, the
    second half the previous-plaintext chain. Inputs must be block aligned;
    padding is the caller's business.
    """

    key: bytes
    iv: bytes

    def __post_init__(self) -> None:
        if len(self.key) != 32:
            raise AesIgeError("AES-256 key must be 32 bytes")
        if len(self.iv) != 32:
            raise AesIgeError("IGE iv must be 32 bytes")

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self.key), modes.ECB())

    def encrypt(self, plaintext: bytes) -> bytes:
        if len(plaintext) % _BLOCK != 0:
            raise AesIgeError("Plaintext length must be a multiple of 16")

        ecb = self._cipher().encryptor()
        prev_c = self.iv[:_BLOCK]
        prev_p = self.iv[_BLOCK:]
        out = bytearray()
        for i in range(0, len(plaintext), _BLOCK):
            p = plaintext[i : i + _BLOCK]
            c = xor_bytes(ecb.update(xor_bytes(p, prev_c)), prev_p)
            out += c
            prev_c, prev_p = c, p
        ecb.finalize()
        return bytes(out)

    def decrypt(self, ciphertext: bytes) -> bytes:
        if len(ciphertext) % _BLOCK != 0:
            raise AesIgeError("Ciphertext length must be a multiple of 16")

        ecb = self._cipher().decryptor()
        prev_c = self.iv[:_BLOCK]
        prev_p = self.iv[_BLOCK:]
        out = bytearray()
        for i in range(0, len(ciphertext), _BLOCK):
            c = ciphertext[i : i + _BLOCK]
            p = xor_bytes(ecb.update(xor_bytes(c, prev_p)), prev_c)
            out += p
            prev_c, prev_p = c, p
        ecb.finalize()
        return bytes(out)
