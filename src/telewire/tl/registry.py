from __future__ import annotations

from collections.abc import Iterable

from .codec import UnknownTypeError


class RegistryError(Exception):
    pass


class TypeRegistry:
    """
    Constructor id -> TL class mapping used by the decoder.

    Populated once at startup and frozen; lookups never mutate it, so a single
    instance can be shared by every connection.
    """

    __slots__ = ("_by_id", "_frozen")

    def __init__(self) -> None:
        self._by_id: dict[int, type] = {}
        self._frozen = False

    def register(self, cls: type, *, tag: int | None = None) -> None:
        if self._frozen:
            raise RegistryError(f"Registry is frozen; cannot register {cls.__name__}")
        tl_id = tag if tag is not None else getattr(cls, "TL_ID", None)
        if not isinstance(tl_id, int) or not 0 < tl_id < 2**32:
            raise RegistryError(f"{cls.__name__} has no valid TL_ID")
        existing = self._by_id.get(tl_id)
        if existing is not None:
            raise RegistryError(
                f"Duplicate constructor id 0x{tl_id:08x}: "
                f"{existing.__name__} and {cls.__name__}"
            )
        self._by_id[tl_id] = cls

    def register_all(self, classes: Iterable[type]) -> None:
        for cls in classes:
            self.register(cls)

    def freeze(self) -> TypeRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, tag: int) -> type:
        cls = self._by_id.get(tag)
        if cls is None:
            raise UnknownTypeError(tag)
        return cls

    def __contains__(self, tag: object) -> bool:
        return tag in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)
