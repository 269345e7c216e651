from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enforcement import run_with_policy
from app.core.errors import DomainError
from app.core.operators import OperatorContext, require_operator
from app.db.models.accounts import Account
from app.db.models.promotion_records import PromotionRecord
from app.db.repo.accounts_repo import AccountsRepo
from app.db.repo.promotions_repo import PromotionsRepo
from app.db.session import SessionLocal
from app.identity.errors import PromotionConflictError, PromotionPreconditionError
from app.identity.types import (
    PROMOTION_TRIGGERS,
    PromotionRecordPage,
    PromotionRecordView,
    PromotionResult,
)

PROMOTION_PAGE_SIZE = 20
PROMOTION_SORT_ORDERS = ("newest", "oldest")

logger = structlog.get_logger(__name__)


async def promote(
    session: AsyncSession,
    account: Account,
    *,
    trigger: str,
    now_utc: datetime | None = None,
) -> PromotionResult:
    """Replace the account's real identifier with its visual identifier.

    Runs inside a savepoint: either the rename and the audit record are both
    written or nothing is. A lost race or a taken target raises
    PromotionConflictError.
    """
    if trigger not in PROMOTION_TRIGGERS:
        raise ValueError(f"unknown promotion trigger: {trigger}")
    target_id = (account.visual_id or "").strip()
    if not target_id:
        raise PromotionPreconditionError

    promoted_at = now_utc or datetime.now(timezone.utc)
    try:
        async with session.begin_nested():
            locked = await AccountsRepo.get_by_id_for_update(session, account.id)
            if locked is None or locked.visual_id != target_id:
                raise PromotionConflictError("Account changed during promotion.")

            holder = await AccountsRepo.get_by_real_id(session, target_id)
            if holder is not None and holder.id != locked.id:
                raise PromotionConflictError

            old_real_id = locked.real_id
            locked.real_id = target_id
            locked.visual_id = None
            locked.updated_at = promoted_at
            await session.flush()

            await PromotionsRepo.create(
                session,
                record=PromotionRecord(
                    account_id=locked.id,
                    old_real_id=old_real_id,
                    new_real_id=target_id,
                    trigger=trigger,
                    promoted_at=promoted_at,
                ),
            )
    except IntegrityError as exc:
        raise PromotionConflictError from exc

    logger.info(
        "identity_promoted",
        account_id=locked.id,
        old_real_id=old_real_id,
        new_real_id=target_id,
        trigger=trigger,
    )
    return PromotionResult(
        account_id=int(locked.id),
        old_real_id=old_real_id,
        new_real_id=target_id,
        trigger=trigger,
        promoted_at=promoted_at,
    )


async def _promote_candidate(candidate_id: str) -> PromotionResult | None:
    async with SessionLocal.begin() as session:
        account = await AccountsRepo.find_promotion_candidate(session, candidate_id)
        if account is None:
            return None
        return await promote(session, account, trigger="PRE_REGISTRATION")


async def handle_pre_registration_promotion(candidate_id: str) -> PromotionResult | None:
    """Promote whichever account is entangled with ``candidate_id``.

    Never raises. Registration continues with whatever state is left behind.
    """
    candidate_id = (candidate_id or "").strip()
    if not candidate_id:
        return None

    try:
        return await run_with_policy(
            "identity.pre_registration_promotion",
            lambda: _promote_candidate(candidate_id),
            fallback=None,
        )
    except (DomainError, SQLAlchemyError) as exc:
        logger.warning(
            "pre_registration_promotion_failed",
            candidate_id=candidate_id,
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return None


def _as_record_view(record: PromotionRecord) -> PromotionRecordView:
    return PromotionRecordView(
        id=int(record.id),
        account_id=int(record.account_id),
        old_real_id=str(record.old_real_id),
        new_real_id=str(record.new_real_id),
        trigger=str(record.trigger),
        promoted_at=record.promoted_at,
    )


async def list_promotion_records(
    session: AsyncSession,
    *,
    operator: OperatorContext | None,
    page: int = 1,
    search: str | None = None,
    sort: str = "newest",
) -> PromotionRecordPage:
    require_operator(operator)
    if sort not in PROMOTION_SORT_ORDERS:
        raise ValueError(f"unknown sort order: {sort}")

    page = max(1, page)
    items, total = await PromotionsRepo.list_page(
        session,
        search=(search or "").strip() or None,
        newest_first=sort == "newest",
        offset=(page - 1) * PROMOTION_PAGE_SIZE,
        limit=PROMOTION_PAGE_SIZE,
    )
    return PromotionRecordPage(
        items=[_as_record_view(item) for item in items],
        total=total,
        page=page,
        page_size=PROMOTION_PAGE_SIZE,
    )


async def list_promotion_chain(session: AsyncSession, account_id: int) -> list[PromotionRecordView]:
    records = await PromotionsRepo.list_chain_for_account(session, account_id)
    return [_as_record_view(record) for record in records]
