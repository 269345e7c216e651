from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from app.api.routes.route_helpers import client_ip
from app.core.config import get_settings
from app.services.internal_auth import (
    OPS_SESSION_COOKIE,
    build_ops_session_value,
    is_client_ip_allowed,
    is_valid_internal_token,
    normalize_operator_id,
)

router = APIRouter(tags=["internal"])
logger = structlog.get_logger(__name__)

OPS_SESSION_MAX_AGE_SECONDS = 12 * 60 * 60


class OpsLoginRequest(BaseModel):
    token: str = Field(min_length=1, max_length=256)
    operator_id: str = Field(min_length=1, max_length=64)


class OpsSessionResponse(BaseModel):
    operator_id: str


@router.post("/internal/session", response_model=OpsSessionResponse)
async def login_ops(
    payload: OpsLoginRequest,
    request: Request,
    response: Response,
) -> OpsSessionResponse:
    settings = get_settings()
    ip = client_ip(request)
    if not is_client_ip_allowed(client_ip=ip, allowlist=settings.internal_api_allowlist):
        logger.warning("ops_login_failed", reason="ip_not_allowed", client_ip=ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})
    if not is_valid_internal_token(
        expected_token=settings.internal_api_token,
        received_token=payload.token,
    ):
        logger.warning("ops_login_failed", reason="invalid_token", client_ip=ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    operator_id = normalize_operator_id(payload.operator_id)
    response.set_cookie(
        key=OPS_SESSION_COOKIE,
        value=build_ops_session_value(token=settings.internal_api_token, operator_id=operator_id),
        max_age=OPS_SESSION_MAX_AGE_SECONDS,
        httponly=True,
        secure=settings.app_env != "dev",
        samesite="strict",
        path="/internal",
    )
    logger.info("ops_login_succeeded", operator_id=operator_id, client_ip=ip)
    return OpsSessionResponse(operator_id=operator_id)


@router.delete("/internal/session", status_code=204)
async def logout_ops() -> Response:
    response = Response(status_code=204)
    response.delete_cookie(key=OPS_SESSION_COOKIE, path="/internal")
    return response
