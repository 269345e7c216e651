from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from app.api.routes.route_helpers import (
    purchase_visitor,
    raise_http_error,
    require_account_id,
    set_account_session_cookie,
)
from app.core.errors import DomainError
from app.db.session import SessionLocal
from app.economy.purchases.service import PurchaseService
from app.economy.purchases.state_machine import PurchaseAttempt
from app.economy.purchases.types import UpiPaymentView

router = APIRouter(tags=["purchases"])


class StartPurchaseRequest(BaseModel):
    product_id: int = Field(gt=0)
    fingerprint: str | None = Field(default=None, max_length=256)


class RegisterForPurchaseRequest(BaseModel):
    real_id: str = Field(min_length=1, max_length=32)


class PaymentMethodRequest(BaseModel):
    method: Literal["UPI", "REDEEM_CODE"]


class PaymentReferenceRequest(BaseModel):
    reference: str = Field(default="", max_length=128)


class UpiPaymentResponse(BaseModel):
    uri: str
    amount: int
    payee_vpa: str
    payment_window_seconds: int
    payment_window_ends_at: datetime


class PurchaseAttemptResponse(BaseModel):
    attempt_id: str
    product_id: int
    step: str
    account_id: int | None = None
    base_price: int | None = None
    coins_applied: int
    final_price: int | None = None
    payment_method: str | None = None
    payment_window_ends_at: datetime | None = None
    order_id: int | None = None
    failure_reason: str | None = None
    upi: UpiPaymentResponse | None = None


class OrderStatusResponse(BaseModel):
    order_id: int
    status: str


def _as_response(
    attempt: PurchaseAttempt,
    *,
    upi_view: UpiPaymentView | None = None,
) -> PurchaseAttemptResponse:
    return PurchaseAttemptResponse(
        attempt_id=attempt.attempt_id,
        product_id=attempt.product_id,
        step=attempt.step,
        account_id=attempt.account_id,
        base_price=attempt.base_price,
        coins_applied=attempt.coins_applied,
        final_price=attempt.final_price,
        payment_method=attempt.payment_method,
        payment_window_ends_at=attempt.payment_window_ends_at,
        order_id=attempt.order_id,
        failure_reason=attempt.failure_reason,
        upi=(
            None
            if upi_view is None
            else UpiPaymentResponse(
                uri=upi_view.uri,
                amount=upi_view.amount,
                payee_vpa=upi_view.payee_vpa,
                payment_window_seconds=upi_view.payment_window_seconds,
                payment_window_ends_at=upi_view.payment_window_ends_at,
            )
        ),
    )


@router.post("/purchases", response_model=PurchaseAttemptResponse)
async def start_purchase(
    payload: StartPurchaseRequest,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    visitor = purchase_visitor(request, response, fingerprint=payload.fingerprint)
    try:
        attempt = await PurchaseService.start_attempt(visitor, payload.product_id)
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt)


@router.get("/purchases/{attempt_id}", response_model=PurchaseAttemptResponse)
async def get_purchase(
    attempt_id: str,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt = await PurchaseService.get_attempt(purchase_visitor(request, response), attempt_id)
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt)


@router.post("/purchases/{attempt_id}/verify", response_model=PurchaseAttemptResponse)
async def verify_purchase(
    attempt_id: str,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt = await PurchaseService.verify(purchase_visitor(request, response), attempt_id)
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt)


@router.post("/purchases/{attempt_id}/register", response_model=PurchaseAttemptResponse)
async def register_for_purchase(
    attempt_id: str,
    payload: RegisterForPurchaseRequest,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt, registration = await PurchaseService.register(
            purchase_visitor(request, response),
            attempt_id,
            payload.real_id,
        )
    except DomainError as exc:
        raise_http_error(exc)

    set_account_session_cookie(response, registration.account_id)
    return _as_response(attempt)


@router.post("/purchases/{attempt_id}/payment-method", response_model=PurchaseAttemptResponse)
async def choose_payment_method(
    attempt_id: str,
    payload: PaymentMethodRequest,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt, upi_view = await PurchaseService.choose_payment_method(
            purchase_visitor(request, response),
            attempt_id,
            payload.method,
        )
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt, upi_view=upi_view)


@router.post("/purchases/{attempt_id}/upi-reference", response_model=PurchaseAttemptResponse)
async def submit_upi_reference(
    attempt_id: str,
    payload: PaymentReferenceRequest,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt = await PurchaseService.submit_upi_reference(
            purchase_visitor(request, response),
            attempt_id,
            payload.reference,
        )
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt)


@router.post("/purchases/{attempt_id}/redeem-code", response_model=PurchaseAttemptResponse)
async def submit_redeem_code(
    attempt_id: str,
    payload: PaymentReferenceRequest,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt = await PurchaseService.submit_redeem_code(
            purchase_visitor(request, response),
            attempt_id,
            payload.reference,
        )
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt)


@router.post("/purchases/{attempt_id}/refresh", response_model=PurchaseAttemptResponse)
async def refresh_purchase(
    attempt_id: str,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt = await PurchaseService.refresh(purchase_visitor(request, response), attempt_id)
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt)


@router.post("/purchases/{attempt_id}/cancel", response_model=PurchaseAttemptResponse)
async def cancel_purchase(
    attempt_id: str,
    request: Request,
    response: Response,
) -> PurchaseAttemptResponse:
    try:
        attempt = await PurchaseService.cancel(purchase_visitor(request, response), attempt_id)
    except DomainError as exc:
        raise_http_error(exc)
    return _as_response(attempt)


@router.get("/orders/{order_id}", response_model=OrderStatusResponse)
async def get_order_status(order_id: int, request: Request) -> OrderStatusResponse:
    account_id = require_account_id(request)
    async with SessionLocal.begin() as session:
        status = await PurchaseService.get_order_status(
            session,
            account_id=account_id,
            order_id=order_id,
        )
    if status is None:
        raise HTTPException(status_code=404, detail={"code": "E_ORDER_NOT_FOUND"})
    return OrderStatusResponse(order_id=order_id, status=status)
