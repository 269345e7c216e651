from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from app.api.routes.route_helpers import assert_internal_access, raise_http_error
from app.core.errors import DomainError
from app.db.session import SessionLocal
from app.identity.network_origins import find_accounts_by_ip, list_network_origins
from app.identity.promotion import list_promotion_chain, list_promotion_records
from app.identity.registration import assign_visual_id
from app.identity.types import PromotionRecordView

router = APIRouter(tags=["internal", "identity"])


class PromotionRecordResponse(BaseModel):
    id: int
    account_id: int
    old_real_id: str
    new_real_id: str
    trigger: str
    promoted_at: datetime


class PromotionRecordListResponse(BaseModel):
    items: list[PromotionRecordResponse]
    total: int
    page: int
    has_more: bool


class VisualIdAssignRequest(BaseModel):
    visual_id: str = Field(min_length=1, max_length=32)


class AccountIdentityResponse(BaseModel):
    account_id: int
    real_id: str
    visual_id: str | None = None
    promotions: list[PromotionRecordResponse]


class NetworkOriginResponse(BaseModel):
    account_id: int
    real_id: str
    last_seen_at: datetime
    ips: list[str]


class NetworkOriginListResponse(BaseModel):
    items: list[NetworkOriginResponse]
    total: int
    page: int
    has_more: bool


class AccountsByIpResponse(BaseModel):
    ip: str
    real_ids: list[str]


def _record_as_response(record: PromotionRecordView) -> PromotionRecordResponse:
    return PromotionRecordResponse(
        id=record.id,
        account_id=record.account_id,
        old_real_id=record.old_real_id,
        new_real_id=record.new_real_id,
        trigger=record.trigger,
        promoted_at=record.promoted_at,
    )


@router.get("/internal/promotions", response_model=PromotionRecordListResponse)
async def get_promotion_records(
    request: Request,
    page: int = Query(default=1, ge=1),
    search: str | None = Query(default=None, max_length=32),
    sort: Literal["newest", "oldest"] = Query(default="newest"),
) -> PromotionRecordListResponse:
    operator = assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            result = await list_promotion_records(
                session,
                operator=operator,
                page=page,
                search=search,
                sort=sort,
            )
    except DomainError as exc:
        raise_http_error(exc)
    return PromotionRecordListResponse(
        items=[_record_as_response(item) for item in result.items],
        total=result.total,
        page=result.page,
        has_more=result.has_more,
    )


@router.post(
    "/internal/accounts/{account_id}/visual-id",
    response_model=AccountIdentityResponse,
)
async def set_visual_id(
    account_id: int,
    payload: VisualIdAssignRequest,
    request: Request,
) -> AccountIdentityResponse:
    operator = assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            account = await assign_visual_id(
                session,
                operator=operator,
                account_id=account_id,
                visual_id=payload.visual_id,
            )
            promotions = await list_promotion_chain(session, account.id)
    except DomainError as exc:
        raise_http_error(exc)
    return AccountIdentityResponse(
        account_id=int(account.id),
        real_id=account.real_id,
        visual_id=account.visual_id,
        promotions=[_record_as_response(record) for record in promotions],
    )


@router.get("/internal/network-origins", response_model=NetworkOriginListResponse)
async def get_network_origins(
    request: Request,
    page: int = Query(default=1, ge=1),
    real_id: str | None = Query(default=None, max_length=32),
    ip: str | None = Query(default=None, max_length=45),
) -> NetworkOriginListResponse:
    operator = assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            result = await list_network_origins(
                session,
                operator=operator,
                page=page,
                search_real_id=real_id,
                search_ip=ip,
            )
    except DomainError as exc:
        raise_http_error(exc)
    return NetworkOriginListResponse(
        items=[
            NetworkOriginResponse(
                account_id=item.account_id,
                real_id=item.real_id,
                last_seen_at=item.last_seen_at,
                ips=item.ips,
            )
            for item in result.items
        ],
        total=result.total,
        page=result.page,
        has_more=result.has_more,
    )


@router.get("/internal/network-origins/by-ip", response_model=AccountsByIpResponse)
async def get_accounts_by_ip(
    request: Request,
    ip: str = Query(min_length=1, max_length=45),
) -> AccountsByIpResponse:
    operator = assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            real_ids = await find_accounts_by_ip(session, operator=operator, ip=ip)
    except DomainError as exc:
        raise_http_error(exc)
    return AccountsByIpResponse(ip=ip, real_ids=real_ids)
