from __future__ import annotations

from telewire.tl.registry import TypeRegistry

from . import api, mtproto


def build_registry() -> TypeRegistry:
    """
    Build the frozen constructor registry for every schema module.

    Call once at startup and pass the result to the codec, handshake and sender.
    """

    registry = TypeRegistry()
    registry.register_all(mtproto.ALL)
    registry.register_all(api.ALL)
    return registry.freeze()


__all__ = ["api", "build_registry", "mtproto"]
