from __future__ import annotations

import pytest
from sqlalchemy import text

from app.core.integration_db_safety import assert_test_database
from app.db.session import engine

STOREFRONT_TABLES = (
    "coin_ledger_entries",
    "orders",
    "product_controls",
    "products",
    "promotion_records",
    "account_network_origins",
    "blocked_identifiers",
    "custom_ads",
    "accounts",
)

# TRUNCATE bypasses the row-level append-only triggers.
TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(STOREFRONT_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(scope="session", autouse=True)
def guard_test_database() -> None:
    assert_test_database(str(engine.url))


@pytest.fixture(autouse=True)
async def clean_storefront_tables() -> None:
    # Pooled asyncpg connections are bound to the loop that opened them.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
