from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.abuse.errors import (
    AccountBlockedError,
    BlockAlreadyExistsError,
    BlockNotFoundError,
    BlockValidationError,
)
from app.abuse.types import (
    BLOCK_KINDS,
    BlockCheckResult,
    BlockEntryView,
    BlockPage,
    VisitorIdentifiers,
)
from app.core.enforcement import run_with_policy
from app.core.operators import OperatorContext, require_operator
from app.db.models.blocked_identifiers import BlockedIdentifier
from app.db.repo.blocks_repo import BlocksRepo
from app.db.session import SessionLocal

BLOCK_PAGE_SIZE = 10
MAX_BLOCK_VALUE_LENGTH = 256
NOT_BLOCKED = BlockCheckResult(blocked=False)

logger = structlog.get_logger(__name__)


def _as_view(block: BlockedIdentifier) -> BlockEntryView:
    return BlockEntryView(
        id=int(block.id),
        kind=str(block.kind),
        value=str(block.value),
        reason=str(block.reason),
        created_by=str(block.created_by),
        created_at=block.created_at,
    )


class AbuseRegistry:
    @staticmethod
    async def _lookup(identifiers: VisitorIdentifiers) -> BlockCheckResult:
        candidates = identifiers.as_candidates()
        if not candidates:
            return NOT_BLOCKED

        async with SessionLocal.begin() as session:
            match = await BlocksRepo.find_first_match(session, candidates=candidates)
        if match is None:
            return NOT_BLOCKED
        return BlockCheckResult(blocked=True, reason=str(match.reason), kind=str(match.kind))

    @staticmethod
    async def is_blocked(identifiers: VisitorIdentifiers) -> BlockCheckResult:
        return await run_with_policy(
            "abuse.is_blocked",
            lambda: AbuseRegistry._lookup(identifiers),
            fallback=NOT_BLOCKED,
        )

    @staticmethod
    async def ensure_not_blocked(identifiers: VisitorIdentifiers) -> None:
        result = await AbuseRegistry.is_blocked(identifiers)
        if result.blocked:
            logger.info("abuse_registry_request_blocked", kind=result.kind)
            raise AccountBlockedError(result.reason)

    @staticmethod
    async def add(
        session: AsyncSession,
        *,
        operator: OperatorContext | None,
        kind: str,
        value: str,
        reason: str,
        now_utc: datetime | None = None,
    ) -> BlockEntryView:
        operator = require_operator(operator)
        normalized_kind = kind.strip().upper()
        normalized_value = value.strip()
        normalized_reason = reason.strip()
        if normalized_kind not in BLOCK_KINDS:
            raise BlockValidationError("Unknown block kind.")
        if not normalized_value or len(normalized_value) > MAX_BLOCK_VALUE_LENGTH:
            raise BlockValidationError("Block value is required.")
        if not normalized_reason:
            raise BlockValidationError("Block reason is required.")

        async def _insert() -> BlockedIdentifier:
            existing = await BlocksRepo.get_by_value(session, normalized_value)
            if existing is not None:
                raise BlockAlreadyExistsError
            try:
                async with session.begin_nested():
                    return await BlocksRepo.create(
                        session,
                        block=BlockedIdentifier(
                            kind=normalized_kind,
                            value=normalized_value,
                            reason=normalized_reason,
                            created_by=operator.operator_id,
                            created_at=now_utc or datetime.now(timezone.utc),
                        ),
                    )
            except IntegrityError as exc:
                raise BlockAlreadyExistsError from exc

        block = await run_with_policy("abuse.add_block", _insert, fallback=None)
        logger.info(
            "abuse_block_added",
            block_id=block.id,
            kind=normalized_kind,
            operator_id=operator.operator_id,
        )
        return _as_view(block)

    @staticmethod
    async def remove(
        session: AsyncSession,
        *,
        operator: OperatorContext | None,
        block_id: int,
    ) -> None:
        operator = require_operator(operator)
        deleted = await run_with_policy(
            "abuse.remove_block",
            lambda: BlocksRepo.delete_by_id(session, block_id),
            fallback=0,
        )
        if deleted == 0:
            raise BlockNotFoundError
        logger.info("abuse_block_removed", block_id=block_id, operator_id=operator.operator_id)

    @staticmethod
    async def list(
        session: AsyncSession,
        *,
        operator: OperatorContext | None,
        page: int = 1,
        search: str | None = None,
    ) -> BlockPage:
        require_operator(operator)
        page = max(1, page)
        items, total = await BlocksRepo.list_page(
            session,
            search=(search or "").strip() or None,
            offset=(page - 1) * BLOCK_PAGE_SIZE,
            limit=BLOCK_PAGE_SIZE,
        )
        return BlockPage(
            items=[_as_view(item) for item in items],
            total=total,
            page=page,
            page_size=BLOCK_PAGE_SIZE,
        )
