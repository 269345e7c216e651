from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from redis.exceptions import RedisError
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from app.core.errors import InfrastructureError

T = TypeVar("T")

logger = structlog.get_logger(__name__)

STORE_UNAVAILABLE_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    RedisError,
    OSError,
    asyncio.TimeoutError,
)


@dataclass(frozen=True, slots=True)
class EnforcementPolicy:
    operation: str
    enforce_strict: bool


# Non-strict operations fail open: the failure is logged and the caller gets
# the fallback. Strict operations fail closed with a retryable InfrastructureError.
ENFORCEMENT_POLICIES: dict[str, EnforcementPolicy] = {
    policy.operation: policy
    for policy in (
        EnforcementPolicy("abuse.is_blocked", enforce_strict=False),
        EnforcementPolicy("identity.pre_registration_promotion", enforce_strict=False),
        EnforcementPolicy("identity.record_network_origin", enforce_strict=False),
        EnforcementPolicy("identity.logout", enforce_strict=False),
        EnforcementPolicy("ads.artifact_lock", enforce_strict=False),
        EnforcementPolicy("purchases.attempt_store", enforce_strict=True),
        EnforcementPolicy("abuse.add_block", enforce_strict=True),
        EnforcementPolicy("abuse.remove_block", enforce_strict=True),
        EnforcementPolicy("identity.register", enforce_strict=True),
        EnforcementPolicy("purchases.order_handoff", enforce_strict=True),
        EnforcementPolicy("coins.transfer", enforce_strict=True),
        EnforcementPolicy("ads.reward_claim", enforce_strict=True),
    )
}


def get_policy(operation: str) -> EnforcementPolicy:
    try:
        return ENFORCEMENT_POLICIES[operation]
    except KeyError:
        raise LookupError(f"no enforcement policy registered for {operation!r}") from None


async def run_with_policy(
    operation: str,
    call: Callable[[], Awaitable[T]],
    *,
    fallback: T,
) -> T:
    """Run ``call`` under the policy registered for ``operation``.

    Only store-unavailable errors are affected; domain errors always propagate.
    """
    policy = get_policy(operation)
    try:
        return await call()
    except STORE_UNAVAILABLE_ERRORS as exc:
        if policy.enforce_strict:
            logger.error("enforcement_failed_closed", operation=operation, exc_info=exc)
            raise InfrastructureError from exc
        logger.warning("enforcement_failed_open", operation=operation, exc_info=exc)
        return fallback
