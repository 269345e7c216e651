from __future__ import annotations

import json
from dataclasses import asdict, dataclass, replace
from datetime import datetime

from app.economy.purchases.errors import InvalidTransitionError
from app.economy.purchases.types import (
    PAYMENT_METHOD_REDEEM_CODE,
    PAYMENT_METHOD_UPI,
    PURCHASE_STEPS,
    STEP_ABANDONED,
    STEP_AWAITING_PAYMENT,
    STEP_COMPLETED,
    STEP_DETAILS_CONFIRMATION,
    STEP_FAILED,
    STEP_PROCESSING,
    STEP_REGISTERING,
    STEP_VERIFYING,
)

# Every path into DETAILS_CONFIRMATION goes through VERIFYING, except the
# re-quote that sends an attempt back from AWAITING_PAYMENT.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STEP_VERIFYING: frozenset({STEP_REGISTERING, STEP_DETAILS_CONFIRMATION, STEP_ABANDONED}),
    STEP_REGISTERING: frozenset({STEP_VERIFYING, STEP_ABANDONED}),
    STEP_DETAILS_CONFIRMATION: frozenset({STEP_AWAITING_PAYMENT, STEP_VERIFYING, STEP_ABANDONED}),
    STEP_AWAITING_PAYMENT: frozenset(
        {STEP_PROCESSING, STEP_DETAILS_CONFIRMATION, STEP_AWAITING_PAYMENT, STEP_ABANDONED}
    ),
    STEP_PROCESSING: frozenset({STEP_COMPLETED, STEP_FAILED}),
    STEP_COMPLETED: frozenset(),
    STEP_FAILED: frozenset(),
    STEP_ABANDONED: frozenset(),
}

_DATETIME_FIELDS = ("created_at", "updated_at", "payment_window_ends_at")


@dataclass(frozen=True, slots=True)
class PurchaseAttempt:
    attempt_id: str
    visitor_key: str
    product_id: int
    step: str
    created_at: datetime
    updated_at: datetime
    account_id: int | None = None
    base_price: int | None = None
    coins_applied: int = 0
    final_price: int | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    payment_window_ends_at: datetime | None = None
    order_id: int | None = None
    failure_reason: str | None = None

    def to_json(self) -> str:
        payload = asdict(self)
        for field_name in _DATETIME_FIELDS:
            value = payload[field_name]
            payload[field_name] = None if value is None else value.isoformat()
        return json.dumps(payload, separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_json(cls, raw_value: str) -> PurchaseAttempt:
        payload = json.loads(raw_value)
        for field_name in _DATETIME_FIELDS:
            value = payload.get(field_name)
            payload[field_name] = None if value is None else datetime.fromisoformat(value)
        return cls(**payload)


def can_transition(current_step: str, target_step: str) -> bool:
    return target_step in ALLOWED_TRANSITIONS.get(current_step, frozenset())


def advance(
    attempt: PurchaseAttempt,
    target_step: str,
    *,
    now_utc: datetime,
    **changes: object,
) -> PurchaseAttempt:
    if target_step not in PURCHASE_STEPS or not can_transition(attempt.step, target_step):
        raise InvalidTransitionError(attempt.step, target_step)
    return replace(attempt, step=target_step, updated_at=now_utc, **changes)


def require_step(attempt: PurchaseAttempt, *expected_steps: str) -> None:
    if attempt.step not in expected_steps:
        raise InvalidTransitionError(attempt.step, "/".join(expected_steps))


def allowed_payment_methods(*, only_upi: bool, redeem_disabled: bool) -> tuple[str, ...]:
    if only_upi or redeem_disabled:
        return (PAYMENT_METHOD_UPI,)
    return (PAYMENT_METHOD_UPI, PAYMENT_METHOD_REDEEM_CODE)
