from .dh import DhError, DhParamsCheck, DhResult, make_dh_result
from .handshake import (
    AuthHandshakeError,
    AuthKeyExchangeResult,
    HandshakeIntegrityError,
    HandshakeStep,
    UntrustedServerKeyError,
    exchange_auth_key,
)
from .kdf import initial_server_salt, new_nonce_hash, tmp_aes_key_iv
from .pq import PqFactorizationError, factorize_pq
from .server_keys import DEFAULT_SERVER_KEYRING, ServerKeyRing

__all__ = [
    "DEFAULT_SERVER_KEYRING",
    "AuthHandshakeError",
    "AuthKeyExchangeResult",
    "DhError",
    "DhParamsCheck",
    "DhResult",
    "HandshakeIntegrityError",
    "HandshakeStep",
    "PqFactorizationError",
    "ServerKeyRing",
    "UntrustedServerKeyError",
    "exchange_auth_key",
    "factorize_pq",
    "initial_server_salt",
    "make_dh_result",
    "new_nonce_hash",
    "tmp_aes_key_iv",
]
