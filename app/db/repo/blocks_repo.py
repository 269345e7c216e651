from __future__ import annotations

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.blocked_identifiers import BlockedIdentifier
from app.db.repo.search import LIKE_ESCAPE, contains_pattern

# Lower rank wins when several identifiers of one request are blocked.
KIND_PRECEDENCE = {"IP": 0, "FINGERPRINT": 1, "ACCOUNT_ID": 2}


class BlocksRepo:
    @staticmethod
    async def find_first_match(
        session: AsyncSession,
        *,
        candidates: list[tuple[str, str]],
    ) -> BlockedIdentifier | None:
        if not candidates:
            return None
        precedence = case(KIND_PRECEDENCE, value=BlockedIdentifier.kind, else_=len(KIND_PRECEDENCE))
        stmt = (
            select(BlockedIdentifier)
            .where(
                or_(
                    *(
                        (BlockedIdentifier.kind == kind) & (BlockedIdentifier.value == value)
                        for kind, value in candidates
                    )
                )
            )
            .order_by(precedence.asc(), BlockedIdentifier.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_value(session: AsyncSession, value: str) -> BlockedIdentifier | None:
        stmt = select(BlockedIdentifier).where(BlockedIdentifier.value == value)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, block: BlockedIdentifier) -> BlockedIdentifier:
        session.add(block)
        await session.flush()
        return block

    @staticmethod
    async def delete_by_id(session: AsyncSession, block_id: int) -> int:
        stmt = delete(BlockedIdentifier).where(BlockedIdentifier.id == block_id)
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        search: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[BlockedIdentifier], int]:
        filters = []
        if search:
            filters.append(
                BlockedIdentifier.value.ilike(contains_pattern(search), escape=LIKE_ESCAPE)
            )

        stmt = (
            select(BlockedIdentifier)
            .where(*filters)
            .order_by(BlockedIdentifier.created_at.desc(), BlockedIdentifier.id.desc())
            .offset(offset)
            .limit(limit)
        )
        count_stmt = select(func.count(BlockedIdentifier.id)).where(*filters)
        items = list((await session.execute(stmt)).scalars().all())
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        return items, total
