from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enforcement import run_with_policy
from app.core.errors import DomainError
from app.core.operators import OperatorContext, require_operator
from app.db.models.accounts import Account
from app.db.repo.accounts_repo import AccountsRepo
from app.identity.errors import (
    AccountNotFoundError,
    IdentifierReservedError,
    VisualIdConflictError,
)
from app.identity.promotion import handle_pre_registration_promotion, promote
from app.identity.types import LogoutResult, RegistrationResult, normalize_identifier

logger = structlog.get_logger(__name__)


async def _get_or_create(
    session: AsyncSession,
    *,
    real_id: str,
    now_utc: datetime,
) -> tuple[Account, bool]:
    # Serializes with visual id assignment, which checks both columns.
    await AccountsRepo.lock_identifier(session, real_id)
    if await AccountsRepo.get_by_visual_id(session, real_id) is not None:
        raise IdentifierReservedError

    existing = await AccountsRepo.get_by_real_id(session, real_id)
    if existing is not None:
        return existing, False

    try:
        async with session.begin_nested():
            created = await AccountsRepo.create(session, real_id=real_id, now_utc=now_utc)
    except IntegrityError as exc:
        loaded = await AccountsRepo.get_by_real_id(session, real_id)
        if loaded is None:
            raise IdentifierReservedError from exc
        return loaded, False
    return created, True


async def register_account(
    session: AsyncSession,
    real_id: str,
    *,
    now_utc: datetime | None = None,
) -> RegistrationResult:
    """Sign in under ``real_id``, creating the account on first use.

    Pre-registration promotion runs first in its own transaction so an
    identifier vacated by it is visible to the lookup that follows.
    """
    normalized = normalize_identifier(real_id)
    promotion = await handle_pre_registration_promotion(normalized)

    account, created = await run_with_policy(
        "identity.register",
        lambda: _get_or_create(
            session,
            real_id=normalized,
            now_utc=now_utc or datetime.now(timezone.utc),
        ),
        fallback=(None, False),
    )
    logger.info(
        "identity_account_registered" if created else "identity_account_signed_in",
        account_id=account.id,
        promoted_account_id=None if promotion is None else promotion.account_id,
    )
    return RegistrationResult(
        account_id=int(account.id),
        real_id=str(account.real_id),
        created=created,
        promotion=promotion,
    )


async def logout(session: AsyncSession, account: Account) -> LogoutResult:
    if not account.visual_id:
        return LogoutResult(account_id=int(account.id), promotion=None)

    try:
        promotion = await promote(session, account, trigger="LOGOUT")
    except DomainError as exc:
        logger.warning(
            "logout_promotion_failed",
            account_id=account.id,
            error_code=exc.code,
        )
        promotion = None
    return LogoutResult(account_id=int(account.id), promotion=promotion)


async def assign_visual_id(
    session: AsyncSession,
    *,
    operator: OperatorContext | None,
    account_id: int,
    visual_id: str,
    now_utc: datetime | None = None,
) -> Account:
    operator = require_operator(operator)
    normalized = normalize_identifier(visual_id)

    account = await AccountsRepo.get_by_id_for_update(session, account_id)
    if account is None:
        raise AccountNotFoundError
    if account.real_id == normalized:
        raise VisualIdConflictError("Visual identifier must differ from the real identifier.")

    await AccountsRepo.lock_identifier(session, normalized)
    holder = await AccountsRepo.find_holding_identifier(session, normalized)
    if holder is not None and holder.id != account.id:
        raise VisualIdConflictError

    previous_visual_id = account.visual_id
    try:
        async with session.begin_nested():
            account.visual_id = normalized
            account.updated_at = now_utc or datetime.now(timezone.utc)
            await session.flush()
    except IntegrityError as exc:
        raise VisualIdConflictError from exc

    logger.info(
        "identity_visual_id_assigned",
        account_id=account.id,
        previous_visual_id=previous_visual_id,
        visual_id=normalized,
        operator_id=operator.operator_id,
    )
    return account


async def resolve_display_id(session: AsyncSession, display_id: str) -> Account | None:
    normalized = (display_id or "").strip()
    if not normalized:
        return None
    return await AccountsRepo.get_by_display_id(session, normalized)
