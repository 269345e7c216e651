from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

TEST_DB_NAME_RE = re.compile(r"(^|_)test(_|$)", re.IGNORECASE)
LOCAL_TEST_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "postgres",
        "storefront_postgres",
        "storefront_postgres_test",
    }
)


@dataclass(frozen=True, slots=True)
class TestDatabaseCheck:
    is_safe: bool
    reason: str
    database_name: str
    host: str


def _rejection_reason(parsed: URL, *, database_name: str, host: str) -> str | None:
    if parsed.get_backend_name() != "postgresql":
        return "only PostgreSQL databases can back integration tests"
    if not database_name:
        return "database name is empty"
    if TEST_DB_NAME_RE.search(database_name) is None:
        return "database name must carry a 'test' segment, e.g. 'storefront_test'"
    if host not in LOCAL_TEST_HOSTS:
        return f"host {host!r} is not a local test host"
    return None


def check_test_database(database_url: str) -> TestDatabaseCheck:
    parsed = make_url(database_url)
    database_name = (parsed.database or "").strip()
    host = (parsed.host or "").strip().lower()
    reason = _rejection_reason(parsed, database_name=database_name, host=host)
    return TestDatabaseCheck(
        is_safe=reason is None,
        reason=reason or "ok",
        database_name=database_name,
        host=host,
    )


def assert_test_database(database_url: str) -> None:
    """Refuse to wipe anything that does not look like a disposable local test database."""
    check = check_test_database(database_url)
    if check.is_safe:
        return
    raise RuntimeError(
        "Refusing to truncate storefront tables outside a test database: "
        f"{check.reason} (database={check.database_name!r}, host={check.host!r})"
    )
