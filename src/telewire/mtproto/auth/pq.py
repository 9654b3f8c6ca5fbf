from __future__ import annotations

import math

# Fixed Miller-Rabin witnesses: deterministic below 3.3e24 and a strong
# probable-prime test above that (used for 2048-bit DH primes as well).
_WITNESSES = (2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47, 53, 59, 61, 67, 71)
_SMALL_PRIMES = _WITNESSES

# Pollard-Brent polynomial constants tried in order; no randomness involved.
_BRENT_CONSTANTS = tuple(range(1, 64))


class PqFactorizationError(Exception):
    pass


def is_probable_prime(n: int) -> bool:
    if n < 2:
        return False
    for p in _SMALL_PRIMES:
        if n == p:
            return True
        if n % p == 0:
            return False

    d = n - 1
    s = 0
    while d % 2 == 0:
        d //= 2
        s += 1

    for a in _WITNESSES:
        x = pow(a, d, n)
        if x == 1 or x == n - 1:
            continue
        for _ in range(s - 1):
            x = x * x % n
            if x == n - 1:
                break
        else:
            return False
    return True


def _pollard_brent(n: int, c: int, *, y0: int = 2, m: int = 128) -> int:
    y, r, q, g = y0, 1, 1, 1
    x = ys = y
    while g == 1:
        x = y
        for _ in range(r):
            y = (y * y + c) % n
        k = 0
        while k < r and g == 1:
            ys = y
            for _ in range(min(m, r - k)):
                y = (y * y + c) % n
                q = q * abs(x - y) % n
            g = math.gcd(q, n)
            k += m
        r *= 2

    if g == n:
        # Batched gcd overshot; walk back one step at a time.
        while True:
            ys = (ys * ys + c) % n
            g = math.gcd(abs(x - ys), n)
            if g > 1:
                break
    return g


def factorize_pq(pq: int) -> tuple[int, int]:
    """
    Split pq into its two prime factors, returned as (p, q) with p < q.

    Trial division for tiny factors, then Pollard-Brent over a fixed list of
    polynomial constants, so the same pq always yields the same answer.
    """

    if pq <= 3:
        raise PqFactorizationError("pq must be > 3")
    if is_probable_prime(pq):
        raise PqFactorizationError("pq is prime (expected composite)")

    factor = next((p for p in _SMALL_PRIMES if pq % p == 0), None)
    if factor is None:
        for c in _BRENT_CONSTANTS:
            d = _pollard_brent(pq, c)
            if 1 < d < pq:
                factor = d
                break
    if factor is None:
        raise PqFactorizationError(f"failed to factorize pq={pq}")

    p, q = sorted((factor, pq // factor))
    if p * q != pq or not (is_probable_prime(p) and is_probable_prime(q)):
        raise PqFactorizationError(f"pq={pq} is not a product of two primes")
    return p, q
