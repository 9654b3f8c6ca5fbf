from __future__ import annotations

import secrets
from collections.abc import Callable

# Anything that returns `n` random bytes. Injected into the handshake and the
# sender so tests can replay a fixed byte stream.
RandomSource = Callable[[int], bytes]


def random_bytes(n: int) -> bytes:
    if n < 0:
        raise ValueError("n must be >= 0")
    return secrets.token_bytes(n)
