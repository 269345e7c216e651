from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

STEP_VERIFYING = "VERIFYING"
STEP_REGISTERING = "REGISTERING"
STEP_DETAILS_CONFIRMATION = "DETAILS_CONFIRMATION"
STEP_AWAITING_PAYMENT = "AWAITING_PAYMENT"
STEP_PROCESSING = "PROCESSING"
STEP_COMPLETED = "COMPLETED"
STEP_FAILED = "FAILED"
STEP_ABANDONED = "ABANDONED"

PURCHASE_STEPS = (
    STEP_VERIFYING,
    STEP_REGISTERING,
    STEP_DETAILS_CONFIRMATION,
    STEP_AWAITING_PAYMENT,
    STEP_PROCESSING,
    STEP_COMPLETED,
    STEP_FAILED,
    STEP_ABANDONED,
)
TERMINAL_STEPS = frozenset({STEP_COMPLETED, STEP_FAILED, STEP_ABANDONED})

PAYMENT_METHOD_UPI = "UPI"
PAYMENT_METHOD_REDEEM_CODE = "REDEEM_CODE"
PAYMENT_METHODS = (PAYMENT_METHOD_UPI, PAYMENT_METHOD_REDEEM_CODE)

ORDER_STATUS_PROCESSING = "PROCESSING"
ORDER_STATUS_COMPLETED = "COMPLETED"
ORDER_STATUS_FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class PriceQuote:
    base_price: int
    coins_applied: int
    final_price: int


@dataclass(frozen=True, slots=True)
class EligibilityResult:
    eligible: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class UpiPaymentView:
    uri: str
    amount: int
    payee_vpa: str
    payment_window_seconds: int
    payment_window_ends_at: datetime


@dataclass(frozen=True, slots=True)
class PurchaseVisitor:
    visitor_key: str
    account_id: int | None = None
    ip: str | None = None
    fingerprint: str | None = None


@dataclass(frozen=True, slots=True)
class OrderHandoff:
    order_id: int
    payment_reference: str
    replayed: bool = False
