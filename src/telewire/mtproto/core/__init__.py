from .auth_key import AUTH_KEY_SIZE, AuthKey, AuthKeyError
from .msg_id import MsgIdGenerator
from .state import MsgKeyMismatchError, MtprotoState, MtprotoStateError
from .unencrypted import UnencryptedMessage, UnencryptedMessageError, unpack_unencrypted

__all__ = [
    "AUTH_KEY_SIZE",
    "AuthKey",
    "AuthKeyError",
    "MsgIdGenerator",
    "MsgKeyMismatchError",
    "MtprotoState",
    "MtprotoStateError",
    "UnencryptedMessage",
    "UnencryptedMessageError",
    "unpack_unencrypted",
]
