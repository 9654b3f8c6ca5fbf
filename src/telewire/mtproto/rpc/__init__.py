from .errors import (
    DcMigrateError,
    FloodWaitError,
    RpcDecodeError,
    RpcErrorException,
    RpcSenderError,
    RpcTimeoutError,
    parse_flood_wait_seconds,
    parse_migrate_dc,
    rpc_error_from_tl,
)
from .sender import MtprotoEncryptedSender, ReceivedMessage

__all__ = [
    "DcMigrateError",
    "FloodWaitError",
    "MtprotoEncryptedSender",
    "ReceivedMessage",
    "RpcDecodeError",
    "RpcErrorException",
    "RpcSenderError",
    "RpcTimeoutError",
    "parse_flood_wait_seconds",
    "parse_migrate_dc",
    "rpc_error_from_tl",
]
