from __future__ import annotations

import re

from telewire.tl.codec import TLCodecError

_FLOOD_WAIT_RE = re.compile(r"(?:FLOOD_WAIT|FLOOD_PREMIUM_WAIT|SLOWMODE_WAIT)_(\d+)")
_MIGRATE_RE = re.compile(r"(?:PHONE|USER|NETWORK|FILE|STATS)_MIGRATE_(\d+)")


class RpcSenderError(Exception):
    pass


class RpcTimeoutError(RpcSenderError):
    pass


class RpcDecodeError(RpcSenderError, TLCodecError):
    """The server answered, but the result could not be decoded."""


class RpcErrorException(RpcSenderError):
    """rpc_error returned by the server for a request."""

    def __init__(self, *, code: int, message: str) -> None:
        super().__init__(f"RPC_ERROR {code}: {message}")
        self.code = code
        self.message = message


class FloodWaitError(RpcErrorException):
    def __init__(self, *, code: int, message: str, wait_seconds: int) -> None:
        super().__init__(code=code, message=message)
        self.wait_seconds = wait_seconds
        self.args = (f"RPC_ERROR {code}: {message} (wait {wait_seconds}s)",)


class DcMigrateError(RpcErrorException):
    """The request must be replayed on another data center."""

    def __init__(self, *, code: int, message: str, dc_id: int) -> None:
        super().__init__(code=code, message=message)
        self.dc_id = dc_id


def parse_flood_wait_seconds(message: str) -> int | None:
    m = _FLOOD_WAIT_RE.search(message)
    return int(m.group(1)) if m else None


def parse_migrate_dc(message: str) -> int | None:
    m = _MIGRATE_RE.search(message)
    return int(m.group(1)) if m else None


def rpc_error_from_tl(code: int, message: str) -> RpcErrorException:
    """Map a server rpc_error to the most specific exception."""

    if code == 303:
        dc_id = parse_migrate_dc(message)
        if dc_id is not None:
            return DcMigrateError(code=code, message=message, dc_id=dc_id)
    wait = parse_flood_wait_seconds(message)
    if wait is not None:
        return FloodWaitError(code=code, message=message, wait_seconds=wait)
    return RpcErrorException(code=code, message=message)
