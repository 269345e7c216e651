from __future__ import annotations

from app.core.errors import ConflictError, DomainValidationError
from app.economy.purchases.types import PriceQuote

ELIGIBILITY_MESSAGES = {
    "PRODUCT_INACTIVE": "This product is not available right now.",
    "PRODUCT_HIDDEN": "This product is not available for your account.",
    "PURCHASE_LIMIT_REACHED": "You have reached the purchase limit for this product.",
}


class ProductNotFoundError(DomainValidationError):
    code = "E_PRODUCT_NOT_FOUND"
    default_message = "Product not found."


class PurchaseAttemptNotFoundError(DomainValidationError):
    code = "E_ATTEMPT_NOT_FOUND"
    default_message = "Purchase session expired, please start again."


class PurchaseNotEligibleError(ConflictError):
    code = "E_NOT_ELIGIBLE"

    def __init__(self, reason: str) -> None:
        super().__init__(ELIGIBILITY_MESSAGES.get(reason, "This product cannot be purchased."))
        self.reason = reason


class InvalidTransitionError(ConflictError):
    code = "E_INVALID_STEP"

    def __init__(self, current_step: str, target_step: str) -> None:
        super().__init__(f"Cannot move from {current_step} to {target_step}.")
        self.current_step = current_step
        self.target_step = target_step


class PaymentMethodNotAllowedError(ConflictError):
    code = "E_PAYMENT_METHOD_NOT_ALLOWED"
    default_message = "This payment method is not available for this purchase."


class PaymentReferenceRequiredError(DomainValidationError):
    default_message = "Payment reference is required."


class PriceChangedError(ConflictError):
    code = "E_PRICE_CHANGED"
    default_message = "The price changed, please review the details again."

    def __init__(self, quote: PriceQuote) -> None:
        super().__init__()
        self.quote = quote


class OrderRejectedError(ConflictError):
    code = "E_ORDER_REJECTED"
    default_message = "This payment reference was already used."
