from __future__ import annotations

from loyalty.core.logging import REDACTED, redact_sensitive_fields


def test_redact_sensitive_fields_masks_credentials_and_bank_accounts() -> None:
    event = {
        "event": "withdrawal_requested",
        "member_id": "U-1",
        "password": "hunter2",
        "bank_account": "0123456789",
        "password_hash": None,
    }

    result = redact_sensitive_fields(None, "info", event)

    assert result["password"] == REDACTED
    assert result["bank_account"] == REDACTED
    assert result["password_hash"] is None
    assert result["member_id"] == "U-1"
    assert result["event"] == "withdrawal_requested"
