from __future__ import annotations

from dataclasses import dataclass, field

from telewire.core.bytes import be_bytes_to_int, int_to_be_bytes
from telewire.mtproto.core.auth_key import AUTH_KEY_SIZE, AuthKey
from telewire.mtproto.crypto.random import RandomSource, random_bytes

from .pq import is_probable_prime

# The 2048-bit safe prime the production servers hand out; skips the primality tests.
TELEGRAM_DH_PRIME = int(
    "C71CAEB9C6B1C9048E6C522F70F13F73980D40238E3E21C14934D037563D930F"
    "48198A0AA7C14058229493D22530F4DBFA336F6E0AC925139543AED44CCE7C37"
    "20FD51F69458705AC68CD4FE6B6B13ABDC9746512969328454F18FAF8C595F64"
    "2477FE96BB2A941D5BCD1D4AC8CC49880708FA9B378E3C4F3A9060BEE67CF9A4"
    "A4A695811051907E162753B56B0F6B410DBA74D8A84B2A14B3144E0EF1284754"
    "FD17ED950D5965B4B9DD46582DB1178D169C6BC465B0D6FF9CA3928FEF5B9AE4"
    "E418FC15E83EBEA0F87FA9FF5EED70050DED2849F47BF959D956850CE929851F"
    "0D8115F635B105EE2E4E15D04B2454BF6F4FADF034B10403119CD8E3B92FCC5B",
    16,
)

_MAX_B_ATTEMPTS = 16


class DhError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class DhParamsCheck:
    """
    Limits applied to server DH parameters.

    `prime_bits` is the exact bit length dh_prime must have; g_a and g_b must
    lie in `[2**min_value_bits, p - 2**min_value_bits]`.
    """

    prime_bits: int = 2048
    min_value_bits: int = 2048 - 64
    known_primes: frozenset[int] = field(default_factory=lambda: frozenset({TELEGRAM_DH_PRIME}))


def _check_generator(g: int, p: int) -> None:
    # g must generate the subgroup of order (p-1)/2, i.e. be a quadratic residue mod p.
    if g == 2:
        ok = p % 8 == 7
    elif g == 3:
        ok = p % 3 == 2
    elif g == 4:
        ok = True
    elif g == 5:
        ok = p % 5 in (1, 4)
    elif g == 6:
        ok = p % 24 in (19, 23)
    elif g == 7:
        ok = p % 7 in (3, 5, 6)
    else:
        raise DhError(f"unsupported generator g={g}")
    if not ok:
        raise DhError(f"g={g} does not generate the safe-prime subgroup")


def check_dh_params(g: int, dh_prime: bytes, *, check: DhParamsCheck) -> int:
    """Validate (g, dh_prime) and return p as an int."""

    p = be_bytes_to_int(dh_prime)
    if p.bit_length() != check.prime_bits:
        raise DhError(f"dh_prime must be {check.prime_bits} bits, got {p.bit_length()}")
    if p not in check.known_primes:
        if not is_probable_prime(p) or not is_probable_prime((p - 1) // 2):
            raise DhError("dh_prime is not a safe prime")
    _check_generator(g, p)
    return p


def check_dh_value(value: int, p: int, *, check: DhParamsCheck, name: str) -> None:
    bound = 1 << check.min_value_bits
    if not 1 < value < p - 1 or value < bound or value > p - bound:
        raise DhError(f"{name} is out of the safe range")


@dataclass(frozen=True, slots=True)
class DhResult:
    auth_key: AuthKey
    g_b: bytes  # bytes to send in client_DH_inner_data.g_b


def make_dh_result(
    *,
    g: int,
    dh_prime: bytes,
    g_a: bytes,
    check: DhParamsCheck,
    rand: RandomSource = random_bytes,
) -> DhResult:
    """
    Client side of the DH exchange.

    - validate (g, dh_prime) and g_a
    - choose a random 2048-bit b (redrawn while g_b falls outside the safe range)
    - g_b = g^b mod p
    - auth_key = g_a^b mod p, left-padded to 256 bytes
    """

    p = check_dh_params(g, dh_prime, check=check)
    ga = be_bytes_to_int(g_a)
    check_dh_value(ga, p, check=check, name="g_a")

    for _ in range(_MAX_B_ATTEMPTS):
        b = be_bytes_to_int(rand(256))
        gb = pow(g, b, p)
        try:
            check_dh_value(gb, p, check=check, name="g_b")
        except DhError:
            continue
        auth = int_to_be_bytes(pow(ga, b, p), AUTH_KEY_SIZE)
        return DhResult(auth_key=AuthKey(auth), g_b=int_to_be_bytes(gb, len(dh_prime)))
    raise DhError("could not pick b with g_b in the safe range")
