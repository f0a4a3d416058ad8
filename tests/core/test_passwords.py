from __future__ import annotations

import pytest

from loyalty.core.passwords import MAX_PASSWORD_BYTES, hash_password, verify_password

FAST_ROUNDS = 4


def test_hash_password_is_salted_bcrypt() -> None:
    first = hash_password("correct horse", rounds=FAST_ROUNDS)
    second = hash_password("correct horse", rounds=FAST_ROUNDS)

    assert first != second
    assert first.startswith("$2b$04$")


def test_verify_password_matches_only_original_password() -> None:
    stored = hash_password("correct horse", rounds=FAST_ROUNDS)

    assert verify_password("correct horse", stored) is True
    assert verify_password("wrong horse", stored) is False


def test_verify_password_rejects_missing_or_foreign_hashes() -> None:
    assert verify_password("anything", None) is False
    assert verify_password("anything", "") is False
    assert verify_password("anything", "pbkdf2_sha256$1000$salt$digest") is False


def test_passwords_longer_than_bcrypt_input_are_refused() -> None:
    too_long = "x" * (MAX_PASSWORD_BYTES + 1)
    stored = hash_password("correct horse", rounds=FAST_ROUNDS)

    with pytest.raises(ValueError):
        hash_password(too_long, rounds=FAST_ROUNDS)
    assert verify_password(too_long, stored) is False
