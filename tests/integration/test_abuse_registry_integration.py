from __future__ import annotations

import pytest

from app.abuse.errors import BlockAlreadyExistsError, BlockNotFoundError
from app.abuse.registry import AbuseRegistry
from app.abuse.types import VisitorIdentifiers
from app.core.operators import OperatorContext
from app.db.session import SessionLocal
from tests.integration.storefront_fixtures import NOW_UTC

OPERATOR = OperatorContext(operator_id="ops-anna")


async def _add(kind: str, value: str, reason: str) -> int:
    async with SessionLocal.begin() as session:
        block = await AbuseRegistry.add(
            session,
            operator=OPERATOR,
            kind=kind,
            value=value,
            reason=reason,
            now_utc=NOW_UTC,
        )
    return block.id


@pytest.mark.asyncio
async def test_blocked_ip_is_reported_with_reason() -> None:
    await _add("IP", "1.2.3.4", "spam")

    blocked = await AbuseRegistry.is_blocked(VisitorIdentifiers(ip="1.2.3.4"))
    allowed = await AbuseRegistry.is_blocked(VisitorIdentifiers(ip="9.9.9.9"))

    assert blocked.blocked is True
    assert blocked.reason == "spam"
    assert allowed.blocked is False


@pytest.mark.asyncio
async def test_ip_block_takes_precedence_over_other_matches() -> None:
    await _add("ACCOUNT_ID", "1000001", "chargebacks")
    await _add("FINGERPRINT", "fp-1", "multi-accounting")
    await _add("IP", "1.2.3.4", "spam")

    result = await AbuseRegistry.is_blocked(
        VisitorIdentifiers(ip="1.2.3.4", fingerprint="fp-1", account_id="1000001")
    )

    assert result.reason == "spam"
    assert result.kind == "IP"


@pytest.mark.asyncio
async def test_duplicate_value_is_rejected_and_removal_unblocks() -> None:
    block_id = await _add("IP", "1.2.3.4", "spam")

    with pytest.raises(BlockAlreadyExistsError):
        await _add("IP", "1.2.3.4", "spam again")

    async with SessionLocal.begin() as session:
        await AbuseRegistry.remove(session, operator=OPERATOR, block_id=block_id)

    result = await AbuseRegistry.is_blocked(VisitorIdentifiers(ip="1.2.3.4"))
    assert result.blocked is False

    with pytest.raises(BlockNotFoundError):
        async with SessionLocal.begin() as session:
            await AbuseRegistry.remove(session, operator=OPERATOR, block_id=block_id)


@pytest.mark.asyncio
async def test_block_list_search_and_paging() -> None:
    for index in range(12):
        await _add("IP", f"10.0.0.{index}", "scan")
    await _add("FINGERPRINT", "fp-search-me", "bot")

    async with SessionLocal.begin() as session:
        first_page = await AbuseRegistry.list(session, operator=OPERATOR, page=1)
        second_page = await AbuseRegistry.list(session, operator=OPERATOR, page=2)
        searched = await AbuseRegistry.list(session, operator=OPERATOR, search="search-me")

    assert first_page.total == 13
    assert len(first_page.items) == 10
    assert first_page.has_more is True
    assert len(second_page.items) == 3
    assert [item.value for item in searched.items] == ["fp-search-me"]
