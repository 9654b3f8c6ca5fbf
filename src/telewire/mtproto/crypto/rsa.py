from __future__ import annotations

from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from telewire.core.bytes import int_to_be_bytes
from telewire.tl.codec import TLWriter

from .hashes import sha1
from .random import RandomSource, random_bytes


class RsaError(Exception):
    pass


def load_rsa_public_key(data: bytes) -> rsa.RSAPublicKey:
    """Load a PEM (PKCS#1 or SPKI) or DER SPKI RSA public key."""

    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            key = serialization.load_pem_public_key(data)
        else:
            key = serialization.load_der_public_key(data)
    except ValueError as e:
        raise RsaError("Cannot parse RSA public key") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise RsaError("Not an RSA public key")
    return key


def rsa_fingerprint(n: int, e: int) -> int:
    """
    Server key fingerprint as sent in `resPQ.server_public_key_fingerprints`.

    The lower 64 bits of sha1 over the TL-serialized `(n, e)` pair, read as a
    signed little-endian long.
    """

    w = TLWriter()
    w.write_bytes(int_to_be_bytes(n))
    w.write_bytes(int_to_be_bytes(e))
    return int.from_bytes(sha1(w.to_bytes())[-8:], "little", signed=True)


def rsa_encrypt_raw(
    n: int, e: int, data: bytes, *, rand: RandomSource = random_bytes
) -> bytes:
    """
    Unpadded RSA over `sha1(data) + data + random` filled to `k - 1` bytes.

    The ciphertext is always exactly `k` bytes (256 for the production keys).
    """

    k = (n.bit_length() + 7) // 8
    if k < 64:
        raise RsaError("RSA key too small")

    prefix = sha1(data) + data
    target_len = k - 1
    if len(prefix) > target_len:
        raise RsaError("Data too long for raw RSA block")

    padded = prefix + rand(target_len - len(prefix))
    c = pow(int.from_bytes(padded, "big"), e, n)
    return c.to_bytes(k, "big")


@dataclass(frozen=True, slots=True)
class RsaPublicKey:
    n: int
    e: int

    @classmethod
    def from_pem(cls, pem: bytes | str) -> RsaPublicKey:
        raw = pem.encode("ascii") if isinstance(pem, str) else pem
        nums = load_rsa_public_key(raw).public_numbers()
        return cls(n=nums.n, e=nums.e)

    @classmethod
    def from_key(cls, key: rsa.RSAPublicKey) -> RsaPublicKey:
        nums = key.public_numbers()
        return cls(n=nums.n, e=nums.e)

    @property
    def fingerprint(self) -> int:
        return rsa_fingerprint(self.n, self.e)

    @property
    def key_size_bytes(self) -> int:
        return (self.n.bit_length() + 7) // 8

    def encrypt_raw(self, data: bytes, *, rand: RandomSource = random_bytes) -> bytes:
        return rsa_encrypt_raw(self.n, self.e, data, rand=rand)
