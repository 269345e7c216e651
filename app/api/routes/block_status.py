from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from app.abuse.registry import AbuseRegistry
from app.abuse.types import BlockCheckResult, VisitorIdentifiers
from app.api.routes.route_helpers import client_ip, session_account_id
from app.core.enforcement import run_with_policy
from app.db.repo.accounts_repo import AccountsRepo
from app.db.session import SessionLocal

router = APIRouter(tags=["abuse"])


class FingerprintCheckRequest(BaseModel):
    fingerprint: str = Field(min_length=1, max_length=256)


class BlockStatusResponse(BaseModel):
    blocked: bool
    reason: str | None = None


def _as_response(result: BlockCheckResult) -> BlockStatusResponse:
    return BlockStatusResponse(blocked=result.blocked, reason=result.reason)


async def _load_real_id(account_id: int) -> str | None:
    async with SessionLocal.begin() as session:
        account = await AccountsRepo.get_by_id(session, account_id)
    return None if account is None else account.real_id


async def _session_real_id(request: Request) -> str | None:
    account_id = session_account_id(request)
    if account_id is None:
        return None
    return await run_with_policy(
        "abuse.is_blocked",
        lambda: _load_real_id(account_id),
        fallback=None,
    )


@router.get("/block-status", response_model=BlockStatusResponse)
async def get_block_status(request: Request) -> BlockStatusResponse:
    result = await AbuseRegistry.is_blocked(
        VisitorIdentifiers(ip=client_ip(request), account_id=await _session_real_id(request))
    )
    return _as_response(result)


@router.post("/block-status/fingerprint", response_model=BlockStatusResponse)
async def check_fingerprint(payload: FingerprintCheckRequest) -> BlockStatusResponse:
    result = await AbuseRegistry.is_blocked(VisitorIdentifiers(fingerprint=payload.fingerprint))
    return _as_response(result)
