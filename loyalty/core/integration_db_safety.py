from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

TEST_DB_NAME_RE = re.compile(r"test", re.IGNORECASE)
LOCAL_DB_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "postgres", "loyalty_postgres"})
EXTRA_HOSTS_ENV = "INTEGRATION_DB_EXTRA_HOSTS"


@dataclass(frozen=True, slots=True)
class IntegrationDbSafetyResult:
    is_safe: bool
    reason: str
    database_name: str
    host: str


Rule = Callable[[URL, frozenset[str]], str | None]


def _postgres_only(url: URL, _hosts: frozenset[str]) -> str | None:
    if url.get_backend_name() != "postgresql":
        return "Integration tests support only PostgreSQL test databases."
    return None


def _named_as_test_db(url: URL, _hosts: frozenset[str]) -> str | None:
    name = (url.database or "").strip()
    if not name:
        return "Database name is empty."
    if TEST_DB_NAME_RE.search(name) is None:
        return "Database name must clearly indicate a test database (contain 'test')."
    return None


def _local_host(url: URL, hosts: frozenset[str]) -> str | None:
    if (url.host or "").strip().lower() not in hosts:
        return "Host is not in allowed local integration-test hosts."
    return None


RULES: tuple[Rule, ...] = (_postgres_only, _named_as_test_db, _local_host)


def _allowed_hosts(extra_hosts: Iterable[str] | None) -> frozenset[str]:
    if extra_hosts is None:
        extra_hosts = os.environ.get(EXTRA_HOSTS_ENV, "").split(",")
    extras = {host.strip().lower() for host in extra_hosts if host.strip()}
    return LOCAL_DB_HOSTS | extras


def assess_integration_db_safety(
    database_url: str,
    *,
    extra_hosts: Iterable[str] | None = None,
) -> IntegrationDbSafetyResult:
    url = make_url(database_url)
    hosts = _allowed_hosts(extra_hosts)
    reason: str | None = None
    for rule in RULES:
        reason = rule(url, hosts)
        if reason is not None:
            break
    return IntegrationDbSafetyResult(
        is_safe=reason is None,
        reason=reason or "ok",
        database_name=(url.database or "").strip(),
        host=(url.host or "").strip().lower(),
    )


def assert_safe_integration_db(database_url: str) -> None:
    """Refuses to let the integration suite truncate anything but a local test database."""
    result = assess_integration_db_safety(database_url)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to run ledger integration tests that truncate tables.\n"
        f"Reason: {result.reason}\n"
        f"Resolved DB: name='{result.database_name}' host='{result.host}'\n"
        f"Required: a dedicated local PostgreSQL test DB, e.g. 'loyalty_test' "
        f"(extra hosts via {EXTRA_HOSTS_ENV})."
    )
