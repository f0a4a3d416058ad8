from __future__ import annotations

from types import SimpleNamespace

from loyalty.services.internal_auth import (
    InternalAccessDecision,
    InternalAccessDenial,
    check_internal_access,
    extract_client_ip,
    is_client_ip_allowed,
    is_valid_internal_token,
)


def _request(*, host: str | None, headers: dict[str, str] | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        headers=headers or {},
        client=SimpleNamespace(host=host) if host is not None else None,
    )


def _settings(**overrides) -> SimpleNamespace:
    values = {
        "internal_api_token": "secret",
        "internal_api_allowlist": "127.0.0.1/32,10.0.0.0/8",
        "trusted_proxies": "",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_is_valid_internal_token_requires_exact_match() -> None:
    assert is_valid_internal_token(expected_token="secret", received_token="secret") is True
    assert is_valid_internal_token(expected_token="secret", received_token="wrong") is False
    assert is_valid_internal_token(expected_token="secret", received_token=None) is False
    assert is_valid_internal_token(expected_token="", received_token="") is False


def test_is_client_ip_allowed_supports_exact_ip_and_cidr() -> None:
    allowlist = "127.0.0.1, 10.0.0.0/8, not-a-network"
    assert is_client_ip_allowed(client_ip="127.0.0.1", allowlist=allowlist) is True
    assert is_client_ip_allowed(client_ip="10.12.33.1", allowlist=allowlist) is True
    assert is_client_ip_allowed(client_ip="192.168.1.5", allowlist=allowlist) is False
    assert is_client_ip_allowed(client_ip="testclient", allowlist=allowlist) is False
    assert is_client_ip_allowed(client_ip="127.0.0.1", allowlist="") is False


def test_extract_client_ip_uses_forwarded_header_only_for_trusted_proxy() -> None:
    headers = {"X-Forwarded-For": "10.1.1.8, 127.0.0.1"}

    trusted = _request(host="127.0.0.1", headers=headers)
    untrusted = _request(host="198.51.100.10", headers=headers)

    assert extract_client_ip(trusted, trusted_proxies="127.0.0.1/32") == "10.1.1.8"
    assert extract_client_ip(untrusted, trusted_proxies="127.0.0.1/32") == "198.51.100.10"


def test_extract_client_ip_handles_invalid_and_ipv6_addresses() -> None:
    invalid = _request(host="127.0.0.1", headers={"X-Forwarded-For": "not-an-ip"})
    ipv6 = _request(host="127.0.0.1", headers={"X-Forwarded-For": "2001:db8::10"})

    assert extract_client_ip(invalid, trusted_proxies="127.0.0.1/32") is None
    assert extract_client_ip(ipv6, trusted_proxies="127.0.0.1/32") == "2001:db8::10"
    assert extract_client_ip(_request(host=None)) is None


def test_internal_access_needs_token_and_allowlisted_address() -> None:
    token_headers = {"X-Internal-Token": "secret"}

    allowed = check_internal_access(
        _request(host="10.0.0.5", headers=token_headers),
        settings=_settings(),
    )
    assert allowed == InternalAccessDecision(True, "10.0.0.5")

    missing = check_internal_access(_request(host="10.0.0.5"), settings=_settings())
    assert missing.allowed is False
    assert missing.denial is InternalAccessDenial.TOKEN_MISSING

    wrong = check_internal_access(
        _request(host="10.0.0.5", headers={"X-Internal-Token": "guess"}),
        settings=_settings(),
    )
    assert wrong.denial is InternalAccessDenial.TOKEN_INVALID

    outside = check_internal_access(
        _request(host="203.0.113.4", headers=token_headers),
        settings=_settings(),
    )
    assert outside.denial is InternalAccessDenial.SOURCE_NOT_ALLOWLISTED
    assert outside.client_ip == "203.0.113.4"


def test_internal_access_trusts_forwarded_address_only_behind_proxy() -> None:
    headers = {"X-Internal-Token": "secret", "X-Forwarded-For": "10.2.2.2"}

    proxied = check_internal_access(
        _request(host="127.0.0.1", headers=headers),
        settings=_settings(trusted_proxies="127.0.0.1/32", internal_api_allowlist="10.0.0.0/8"),
    )
    assert proxied.allowed is True
    assert proxied.client_ip == "10.2.2.2"

    direct = check_internal_access(
        _request(host="127.0.0.1", headers=headers),
        settings=_settings(internal_api_allowlist="10.0.0.0/8"),
    )
    assert direct.denial is InternalAccessDenial.SOURCE_NOT_ALLOWLISTED
