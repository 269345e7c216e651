from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from app.core.enforcement import ENFORCEMENT_POLICIES, get_policy, run_with_policy
from app.core.errors import DomainValidationError, InfrastructureError


def test_policy_table_marks_registry_reads_open_and_writes_closed() -> None:
    assert get_policy("abuse.is_blocked").enforce_strict is False
    assert get_policy("ads.artifact_lock").enforce_strict is False
    assert get_policy("identity.logout").enforce_strict is False
    assert get_policy("abuse.add_block").enforce_strict is True
    assert get_policy("coins.transfer").enforce_strict is True
    assert get_policy("purchases.attempt_store").enforce_strict is True
    assert all(policy.operation == name for name, policy in ENFORCEMENT_POLICIES.items())


def test_get_policy_rejects_unknown_operation() -> None:
    with pytest.raises(LookupError):
        get_policy("coins.mint")


@pytest.mark.asyncio
async def test_run_with_policy_returns_call_result() -> None:
    async def _call() -> int:
        return 7

    assert await run_with_policy("abuse.is_blocked", _call, fallback=0) == 7


@pytest.mark.asyncio
async def test_non_strict_operation_fails_open_with_fallback() -> None:
    async def _call() -> str:
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("db down"))

    assert await run_with_policy("abuse.is_blocked", _call, fallback="open") == "open"


@pytest.mark.asyncio
async def test_strict_operation_fails_closed_with_infrastructure_error() -> None:
    async def _call() -> None:
        raise RedisConnectionError("redis down")

    with pytest.raises(InfrastructureError) as exc_info:
        await run_with_policy("purchases.attempt_store", _call, fallback=None)

    assert exc_info.value.code == "E_UNAVAILABLE"
    assert isinstance(exc_info.value.__cause__, RedisConnectionError)


@pytest.mark.asyncio
async def test_domain_errors_propagate_under_any_policy() -> None:
    async def _call() -> None:
        raise DomainValidationError("bad input")

    with pytest.raises(DomainValidationError):
        await run_with_policy("abuse.is_blocked", _call, fallback=None)
