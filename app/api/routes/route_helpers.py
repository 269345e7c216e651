from __future__ import annotations

from typing import NoReturn

import structlog
from fastapi import HTTPException, Request, Response

from app.abuse.errors import AccountBlockedError
from app.core.config import get_settings
from app.core.errors import (
    ConflictError,
    DomainError,
    DomainValidationError,
    InfrastructureError,
    UnauthorizedError,
)
from app.core.operators import OperatorContext
from app.economy.purchases.types import PurchaseVisitor
from app.services.internal_auth import (
    authenticate_operator,
    extract_client_ip,
    is_client_ip_allowed,
)
from app.services.visitor_session import (
    ACCOUNT_SESSION_COOKIE,
    VISITOR_SESSION_COOKIE,
    build_account_session_value,
    derive_visitor_key,
    new_visitor_token,
    parse_account_session_value,
)

logger = structlog.get_logger(__name__)

VISITOR_COOKIE_MAX_AGE_SECONDS = 30 * 24 * 60 * 60
ACCOUNT_COOKIE_MAX_AGE_SECONDS = 365 * 24 * 60 * 60


def raise_http_error(exc: DomainError) -> NoReturn:
    detail = {"code": exc.code, "message": exc.message}
    if isinstance(exc, AccountBlockedError):
        raise HTTPException(status_code=403, detail=detail) from exc
    if isinstance(exc, UnauthorizedError):
        raise HTTPException(status_code=401, detail=detail) from exc
    if isinstance(exc, DomainValidationError):
        status_code = 404 if exc.code.endswith("_NOT_FOUND") else 422
        raise HTTPException(status_code=status_code, detail=detail) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=409, detail=detail) from exc
    if isinstance(exc, InfrastructureError):
        raise HTTPException(status_code=503, detail=detail) from exc
    raise HTTPException(status_code=400, detail=detail) from exc


def client_ip(request: Request) -> str | None:
    return extract_client_ip(request, trusted_proxies=get_settings().internal_api_trusted_proxies)


def assert_internal_access(request: Request) -> OperatorContext:
    settings = get_settings()
    ip = client_ip(request)
    if not is_client_ip_allowed(client_ip=ip, allowlist=settings.internal_api_allowlist):
        logger.warning(
            "internal_auth_failed",
            reason="ip_not_allowed",
            client_ip=ip,
            path=request.url.path,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    operator = authenticate_operator(request, expected_token=settings.internal_api_token)
    if operator is None:
        logger.warning(
            "internal_auth_failed",
            reason="invalid_credentials",
            client_ip=ip,
            path=request.url.path,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})
    return operator


def session_account_id(request: Request) -> int | None:
    return parse_account_session_value(
        value=request.cookies.get(ACCOUNT_SESSION_COOKIE),
        secret=get_settings().visitor_session_secret,
    )


def require_account_id(request: Request) -> int:
    account_id = session_account_id(request)
    if account_id is None:
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHORIZED"})
    return account_id


def set_account_session_cookie(response: Response, account_id: int) -> None:
    settings = get_settings()
    response.set_cookie(
        key=ACCOUNT_SESSION_COOKIE,
        value=build_account_session_value(
            account_id=account_id,
            secret=settings.visitor_session_secret,
        ),
        max_age=ACCOUNT_COOKIE_MAX_AGE_SECONDS,
        httponly=True,
        secure=settings.app_env != "dev",
        samesite="lax",
    )


def ensure_visitor_key(request: Request, response: Response) -> str:
    token = request.cookies.get(VISITOR_SESSION_COOKIE)
    if not token:
        token = new_visitor_token()
        response.set_cookie(
            key=VISITOR_SESSION_COOKIE,
            value=token,
            max_age=VISITOR_COOKIE_MAX_AGE_SECONDS,
            httponly=True,
            secure=get_settings().app_env != "dev",
            samesite="lax",
        )
    return derive_visitor_key(token=token, secret=get_settings().visitor_session_secret)


def purchase_visitor(
    request: Request,
    response: Response,
    *,
    fingerprint: str | None = None,
) -> PurchaseVisitor:
    return PurchaseVisitor(
        visitor_key=ensure_visitor_key(request, response),
        account_id=session_account_id(request),
        ip=client_ip(request),
        fingerprint=fingerprint or request.headers.get("X-Device-Fingerprint"),
    )
