from __future__ import annotations

import ipaddress
from collections import defaultdict
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enforcement import run_with_policy
from app.core.operators import OperatorContext, require_operator
from app.db.repo.network_origins_repo import NetworkOriginsRepo
from app.db.session import SessionLocal
from app.identity.types import NetworkOriginPage, NetworkOriginView

NETWORK_ORIGIN_PAGE_SIZE = 10

logger = structlog.get_logger(__name__)


def _normalize_ip(raw_ip: str | None) -> str | None:
    candidate = (raw_ip or "").strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


async def _insert_origin(*, account_id: int, ip: str, now_utc: datetime) -> bool:
    async with SessionLocal.begin() as session:
        await NetworkOriginsRepo.create(session, account_id=account_id, ip=ip, recorded_at=now_utc)
    return True


async def record_network_origin(
    *,
    account_id: int,
    ip: str | None,
    now_utc: datetime | None = None,
) -> bool:
    normalized_ip = _normalize_ip(ip)
    if normalized_ip is None:
        return False
    return await run_with_policy(
        "identity.record_network_origin",
        lambda: _insert_origin(
            account_id=account_id,
            ip=normalized_ip,
            now_utc=now_utc or datetime.now(timezone.utc),
        ),
        fallback=False,
    )


async def list_network_origins(
    session: AsyncSession,
    *,
    operator: OperatorContext | None,
    page: int = 1,
    search_real_id: str | None = None,
    search_ip: str | None = None,
) -> NetworkOriginPage:
    require_operator(operator)
    page = max(1, page)
    rows, total = await NetworkOriginsRepo.list_accounts_page(
        session,
        search_real_id=(search_real_id or "").strip() or None,
        search_ip=(search_ip or "").strip() or None,
        offset=(page - 1) * NETWORK_ORIGIN_PAGE_SIZE,
        limit=NETWORK_ORIGIN_PAGE_SIZE,
    )
    origins = await NetworkOriginsRepo.list_for_accounts(
        session,
        [account_id for account_id, _, _ in rows],
    )
    ips_by_account: dict[int, list[str]] = defaultdict(list)
    for origin in origins:
        account_ips = ips_by_account[int(origin.account_id)]
        if origin.ip not in account_ips:
            account_ips.append(str(origin.ip))

    return NetworkOriginPage(
        items=[
            NetworkOriginView(
                account_id=account_id,
                real_id=real_id,
                last_seen_at=last_seen_at,
                ips=ips_by_account.get(account_id, []),
            )
            for account_id, real_id, last_seen_at in rows
        ],
        total=total,
        page=page,
        page_size=NETWORK_ORIGIN_PAGE_SIZE,
    )


async def find_accounts_by_ip(
    session: AsyncSession,
    *,
    operator: OperatorContext | None,
    ip: str,
) -> list[str]:
    require_operator(operator)
    normalized_ip = _normalize_ip(ip)
    if normalized_ip is None:
        return []
    return await NetworkOriginsRepo.list_real_ids_by_ip(session, normalized_ip)
