from __future__ import annotations

import pytest

from loyalty.core.validation import (
    clean_message,
    mask_account_number,
    normalize_email,
    normalize_phone,
    require_identity,
    require_login_name,
    require_nonzero_delta,
    require_password,
    require_positive_points,
)
from loyalty.economy.errors import InvalidAmountError, ValidationFailedError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0912-345-678", "0912345678"),
        (" +886 912 345 678 ", "+886912345678"),
        ("(02) 2345.6789", "0223456789"),
    ],
)
def test_normalize_phone_strips_separators(raw: str, expected: str) -> None:
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "12345", "09123abc78", "+" + "1" * 16])
def test_normalize_phone_rejects_malformed_numbers(raw: str | None) -> None:
    with pytest.raises(ValidationFailedError):
        normalize_phone(raw)


def test_normalize_email_treats_blank_as_missing() -> None:
    assert normalize_email("   ") is None
    assert normalize_email(" a@b.co ") == "a@b.co"
    with pytest.raises(ValidationFailedError):
        normalize_email("not-an-email")


@pytest.mark.parametrize("points", [0, -1, 100_000_001, True, 1.5, "10"])
def test_require_positive_points_rejects_invalid_amounts(points: object) -> None:
    with pytest.raises(InvalidAmountError):
        require_positive_points(points)  # type: ignore[arg-type]


def test_require_positive_points_accepts_bounds() -> None:
    assert require_positive_points(1) == 1
    assert require_positive_points(100_000_000) == 100_000_000


def test_require_nonzero_delta_accepts_negative_values() -> None:
    assert require_nonzero_delta(-40) == -40
    with pytest.raises(InvalidAmountError):
        require_nonzero_delta(0)


def test_require_identity_trims_and_bounds_length() -> None:
    assert require_identity("  U123 ") == "U123"
    with pytest.raises(ValidationFailedError):
        require_identity(" ")
    with pytest.raises(ValidationFailedError):
        require_identity("x" * 65)


def test_clean_message_limits_length() -> None:
    assert clean_message(None) == ""
    with pytest.raises(ValidationFailedError):
        clean_message("m" * 257)


def test_credentials_validation() -> None:
    assert require_login_name("alice_01") == "alice_01"
    with pytest.raises(ValidationFailedError):
        require_login_name("a b")
    with pytest.raises(ValidationFailedError):
        require_password("short")
    with pytest.raises(ValidationFailedError):
        require_password("\u00e9" * 37)
    assert require_password("x" * 72) == "x" * 72


def test_mask_account_number_keeps_last_four_digits() -> None:
    assert mask_account_number("0012345678") == "****5678"
    assert mask_account_number(None) == ""
