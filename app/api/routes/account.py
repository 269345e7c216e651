from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from app.abuse.registry import AbuseRegistry
from app.abuse.types import VisitorIdentifiers
from app.api.routes.route_helpers import (
    client_ip,
    raise_http_error,
    require_account_id,
    session_account_id,
    set_account_session_cookie,
)
from app.core.enforcement import run_with_policy
from app.core.errors import DomainError
from app.db.repo.accounts_repo import AccountsRepo
from app.db.repo.coin_ledger_repo import CoinLedgerRepo
from app.db.session import SessionLocal
from app.economy.coins.service import CoinService
from app.identity.network_origins import record_network_origin
from app.identity.registration import logout, register_account
from app.identity.types import display_id
from app.services.visitor_session import ACCOUNT_SESSION_COOKIE

router = APIRouter(tags=["account"])
logger = structlog.get_logger(__name__)


class RegisterRequest(BaseModel):
    real_id: str = Field(min_length=1, max_length=32)
    fingerprint: str | None = Field(default=None, max_length=256)


class RegisterResponse(BaseModel):
    account_id: int
    display_id: str
    created: bool
    promoted_account_id: int | None = None


class LogoutResponse(BaseModel):
    logged_out: bool
    promoted: bool


class CoinEntryResponse(BaseModel):
    entry_type: str
    direction: str
    amount: int
    balance_after: int
    created_at: datetime


class AccountResponse(BaseModel):
    account_id: int
    display_id: str
    coin_balance: int
    redeem_enabled: bool
    recent_coin_entries: list[CoinEntryResponse]


class TransferRequest(BaseModel):
    to_display_id: str = Field(min_length=1, max_length=32)
    amount: int


class TransferResponse(BaseModel):
    transfer_id: str
    amount: int
    balance_after: int


@router.post("/account/register", response_model=RegisterResponse)
async def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
) -> RegisterResponse:
    ip = client_ip(request)
    try:
        await AbuseRegistry.ensure_not_blocked(
            VisitorIdentifiers(ip=ip, fingerprint=payload.fingerprint, account_id=payload.real_id)
        )
        async with SessionLocal.begin() as session:
            result = await register_account(session, payload.real_id)
            account = await AccountsRepo.get_by_id(session, result.account_id)
    except DomainError as exc:
        raise_http_error(exc)

    await record_network_origin(account_id=result.account_id, ip=ip)
    set_account_session_cookie(response, result.account_id)
    return RegisterResponse(
        account_id=result.account_id,
        display_id=display_id(account),
        created=result.created,
        promoted_account_id=None if result.promotion is None else result.promotion.account_id,
    )


@router.post("/account/logout", response_model=LogoutResponse)
async def logout_account(request: Request, response: Response) -> LogoutResponse:
    account_id = session_account_id(request)
    response.delete_cookie(key=ACCOUNT_SESSION_COOKIE)
    if account_id is None:
        return LogoutResponse(logged_out=True, promoted=False)

    async def _logout_promotion() -> bool:
        async with SessionLocal.begin() as session:
            account = await AccountsRepo.get_by_id(session, account_id)
            if account is None:
                return False
            result = await logout(session, account)
        return result.promotion is not None

    # The session cookie is already cleared; a store outage only skips promotion.
    try:
        promoted = await run_with_policy("identity.logout", _logout_promotion, fallback=False)
    except DomainError as exc:
        raise_http_error(exc)
    return LogoutResponse(logged_out=True, promoted=promoted)


@router.get("/account/me", response_model=AccountResponse)
async def get_me(request: Request) -> AccountResponse:
    account_id = require_account_id(request)
    async with SessionLocal.begin() as session:
        account = await AccountsRepo.get_by_id(session, account_id)
        if account is None:
            raise HTTPException(status_code=401, detail={"code": "E_UNAUTHORIZED"})
        entries = await CoinLedgerRepo.list_recent_for_account(session, account_id=account_id)

    return AccountResponse(
        account_id=int(account.id),
        display_id=display_id(account),
        coin_balance=int(account.coin_balance),
        redeem_enabled=not account.is_redeem_disabled,
        recent_coin_entries=[
            CoinEntryResponse(
                entry_type=entry.entry_type,
                direction=entry.direction,
                amount=entry.amount,
                balance_after=entry.balance_after,
                created_at=entry.created_at,
            )
            for entry in entries
        ],
    )


@router.post("/account/coins/transfer", response_model=TransferResponse)
async def transfer_coins(payload: TransferRequest, request: Request) -> TransferResponse:
    account_id = require_account_id(request)
    try:
        async with SessionLocal.begin() as session:
            result = await CoinService.transfer(
                session,
                from_account_id=account_id,
                to_display_id=payload.to_display_id,
                amount=payload.amount,
            )
    except DomainError as exc:
        raise_http_error(exc)
    return TransferResponse(
        transfer_id=result.transfer_id,
        amount=result.amount,
        balance_after=result.from_balance_after,
    )
