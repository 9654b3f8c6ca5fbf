from .aes_ige import AesIge, AesIgeError
from .hashes import sha1, sha256
from .random import RandomSource, random_bytes
from .rsa import RsaError, RsaPublicKey, load_rsa_public_key, rsa_encrypt_raw, rsa_fingerprint

__all__ = [
    "AesIge",
    "AesIgeError",
    "RandomSource",
    "RsaError",
    "RsaPublicKey",
    "load_rsa_public_key",
    "random_bytes",
    "rsa_encrypt_raw",
    "rsa_fingerprint",
    "sha1",
    "sha256",
]
