from __future__ import annotations

import itertools
import random
import secrets
import threading
import time

LETTERS = "ABCDEFGHJKMNPQRSTUVWXYZ"
DIGITS = "23456789"
ALPHABET = LETTERS + DIGITS

REFERRAL_CODE_LENGTH = 6
FALLBACK_REFERRAL_CODE_LENGTH = 8

_sequence = itertools.count(1)
_sequence_lock = threading.Lock()


def _next_seed() -> int:
    with _sequence_lock:
        counter = next(_sequence)
    return (counter << 64) ^ time.time_ns() ^ secrets.randbits(64)


def generate_referral_code(length: int = REFERRAL_CODE_LENGTH) -> str:
    """Generates a referral code alternating letters and digits, e.g. ``A3K8M2``.

    Ambiguous glyphs (I, L, O, 0, 1) never appear. The generator is seeded from a
    process-wide counter mixed with wall-clock time and OS entropy, so consecutive
    codes do not reveal how many members exist.
    """
    if length <= 0:
        raise ValueError("length must be positive")
    rng = random.Random(_next_seed())
    return "".join(
        rng.choice(LETTERS) if position % 2 == 0 else rng.choice(DIGITS)
        for position in range(length)
    )


def is_well_formed_referral_code(code: str) -> bool:
    return 3 <= len(code) <= 16 and all(char in ALPHABET for char in code)
