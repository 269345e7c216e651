from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from app.abuse.registry import AbuseRegistry
from app.abuse.types import BlockEntryView
from app.api.routes.route_helpers import assert_internal_access, raise_http_error
from app.core.errors import DomainError
from app.db.session import SessionLocal

router = APIRouter(tags=["internal", "abuse"])


class BlockCreateRequest(BaseModel):
    kind: Literal["IP", "FINGERPRINT", "ACCOUNT_ID"]
    value: str = Field(min_length=1, max_length=256)
    reason: str = Field(min_length=1, max_length=512)


class BlockResponse(BaseModel):
    id: int
    kind: str
    value: str
    reason: str
    created_by: str
    created_at: datetime


class BlockListResponse(BaseModel):
    items: list[BlockResponse]
    total: int
    page: int
    has_more: bool


class BlockDeleteResponse(BaseModel):
    id: int
    removed: bool


def _as_response(block: BlockEntryView) -> BlockResponse:
    return BlockResponse(
        id=block.id,
        kind=block.kind,
        value=block.value,
        reason=block.reason,
        created_by=block.created_by,
        created_at=block.created_at,
    )


@router.get("/internal/blocks", response_model=BlockListResponse)
async def list_blocks(
    request: Request,
    page: int = Query(default=1, ge=1),
    search: str | None = Query(default=None, max_length=256),
) -> BlockListResponse:
    operator = assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            result = await AbuseRegistry.list(session, operator=operator, page=page, search=search)
    except DomainError as exc:
        raise_http_error(exc)
    return BlockListResponse(
        items=[_as_response(item) for item in result.items],
        total=result.total,
        page=result.page,
        has_more=result.has_more,
    )


@router.post("/internal/blocks", response_model=BlockResponse, status_code=201)
async def add_block(payload: BlockCreateRequest, request: Request) -> BlockResponse:
    operator = assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            block = await AbuseRegistry.add(
                session,
                operator=operator,
                kind=payload.kind,
                value=payload.value,
                reason=payload.reason,
            )
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(block)


@router.delete("/internal/blocks/{block_id}", response_model=BlockDeleteResponse)
async def remove_block(block_id: int, request: Request) -> BlockDeleteResponse:
    operator = assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            await AbuseRegistry.remove(session, operator=operator, block_id=block_id)
    except DomainError as exc:
        raise_http_error(exc)
    return BlockDeleteResponse(id=block_id, removed=True)
