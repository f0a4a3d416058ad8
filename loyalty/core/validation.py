from __future__ import annotations

import re

from loyalty.core.passwords import MAX_PASSWORD_BYTES
from loyalty.economy.errors import InvalidAmountError, ValidationFailedError

PHONE_SEPARATORS_RE = re.compile(r"[\s\-().]")
PHONE_RE = re.compile(r"^\+?[0-9]{8,15}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
LOGIN_NAME_RE = re.compile(r"^[A-Za-z0-9_.@+\-]{3,64}$")

MAX_NAME_LENGTH = 64
MAX_MESSAGE_LENGTH = 256
MAX_IDENTITY_LENGTH = 64
MAX_POINTS = 100_000_000


def normalize_phone(raw_phone: str | None) -> str:
    if raw_phone is None:
        raise ValidationFailedError("phone is required")
    phone = PHONE_SEPARATORS_RE.sub("", raw_phone.strip())
    if PHONE_RE.fullmatch(phone) is None:
        raise ValidationFailedError("phone number is malformed")
    return phone


def normalize_email(raw_email: str | None) -> str | None:
    if raw_email is None:
        return None
    email = raw_email.strip()
    if not email:
        return None
    if EMAIL_RE.fullmatch(email) is None or len(email) > 254:
        raise ValidationFailedError("email address is malformed")
    return email


def require_name(raw_name: str | None, *, field: str = "name") -> str:
    name = (raw_name or "").strip()
    if not name:
        raise ValidationFailedError(f"{field} is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationFailedError(f"{field} is too long")
    return name


def require_identity(raw_identity: str | None, *, field: str = "memberId") -> str:
    identity = (raw_identity or "").strip()
    if not identity:
        raise ValidationFailedError(f"{field} is required")
    if len(identity) > MAX_IDENTITY_LENGTH:
        raise ValidationFailedError(f"{field} is too long")
    return identity


def require_positive_points(points: int) -> int:
    if isinstance(points, bool) or not isinstance(points, int):
        raise InvalidAmountError
    if points < 1 or points > MAX_POINTS:
        raise InvalidAmountError
    return points


def require_nonzero_delta(delta: int) -> int:
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidAmountError("adjustment must be a non-zero integer")
    if abs(delta) > MAX_POINTS:
        raise InvalidAmountError
    return delta


def clean_message(raw_message: str | None) -> str:
    message = (raw_message or "").strip()
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationFailedError("message is too long")
    return message


def require_login_name(raw_login_name: str | None) -> str:
    login_name = (raw_login_name or "").strip()
    if LOGIN_NAME_RE.fullmatch(login_name) is None:
        raise ValidationFailedError("username must be 3-64 characters of letters, digits or _.@+-")
    return login_name


def require_password(raw_password: str | None) -> str:
    password = raw_password or ""
    if len(password) < 8 or len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailedError(
            f"password must be at least 8 characters and at most {MAX_PASSWORD_BYTES} bytes"
        )
    return password


def mask_account_number(account: str | None) -> str:
    if not account:
        return ""
    return f"****{account[-4:]}"
