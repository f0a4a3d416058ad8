from __future__ import annotations

import ipaddress
import secrets
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from fastapi import Request

from loyalty.core.config import Settings

INTERNAL_TOKEN_HEADER = "X-Internal-Token"
FORWARDED_FOR_HEADER = "X-Forwarded-For"

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


class InternalAccessDenial(str, Enum):
    TOKEN_MISSING = "token_missing"
    TOKEN_INVALID = "token_invalid"
    SOURCE_NOT_ALLOWLISTED = "source_not_allowlisted"


@dataclass(frozen=True, slots=True)
class InternalAccessDecision:
    allowed: bool
    client_ip: str | None
    denial: InternalAccessDenial | None = None


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


@lru_cache(maxsize=32)
def _parse_networks(allowlist: str) -> tuple[IPNetwork, ...]:
    networks: list[IPNetwork] = []
    for entry in filter(None, (part.strip() for part in allowlist.split(","))):
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue
    return tuple(networks)


def _normalize_ip(value: str | None) -> str | None:
    candidate = (value or "").strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def is_client_ip_allowed(*, client_ip: str | None, allowlist: str) -> bool:
    normalized = _normalize_ip(client_ip)
    if normalized is None:
        return False
    address = ipaddress.ip_address(normalized)
    return any(address in network for network in _parse_networks(allowlist))


def extract_client_ip(request: Request, *, trusted_proxies: str = "") -> str | None:
    """Peer address, or the first X-Forwarded-For hop when the peer is a trusted proxy."""
    peer_ip = _normalize_ip(request.client.host if request.client is not None else None)
    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    if forwarded_for and is_client_ip_allowed(client_ip=peer_ip, allowlist=trusted_proxies):
        return _normalize_ip(forwarded_for.split(",", maxsplit=1)[0])
    return peer_ip


def check_internal_access(request: Request, *, settings: Settings) -> InternalAccessDecision:
    """Back-office actions need both the shared token and an allowlisted source address."""
    client_ip = extract_client_ip(request, trusted_proxies=settings.trusted_proxies)
    received_token = request.headers.get(INTERNAL_TOKEN_HEADER)
    if not received_token:
        return InternalAccessDecision(False, client_ip, InternalAccessDenial.TOKEN_MISSING)
    if not is_valid_internal_token(
        expected_token=settings.internal_api_token,
        received_token=received_token,
    ):
        return InternalAccessDecision(False, client_ip, InternalAccessDenial.TOKEN_INVALID)
    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        return InternalAccessDecision(False, client_ip, InternalAccessDenial.SOURCE_NOT_ALLOWLISTED)
    return InternalAccessDecision(True, client_ip)
