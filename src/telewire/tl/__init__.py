from .ast import TLTypeExpr, TypeExprError, parse_type_expr
from .codec import (
    ContainerMessage,
    MsgContainer,
    RpcResult,
    TLCodecError,
    TLReader,
    TLWriter,
    UnknownTypeError,
    dumps,
    loads,
)
from .registry import RegistryError, TypeRegistry
from .runtime import TLObject, TLRequest

__all__ = [
    "ContainerMessage",
    "MsgContainer",
    "RegistryError",
    "RpcResult",
    "TLCodecError",
    "TLObject",
    "TLReader",
    "TLRequest",
    "TLTypeExpr",
    "TLWriter",
    "TypeExprError",
    "TypeRegistry",
    "UnknownTypeError",
    "dumps",
    "loads",
    "parse_type_expr",
]
