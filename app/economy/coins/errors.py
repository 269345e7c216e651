from __future__ import annotations

from app.core.errors import ConflictError, DomainValidationError


class CoinAmountInvalidError(DomainValidationError):
    default_message = "Amount must be a whole number of at least 1."


class SelfTransferError(DomainValidationError):
    default_message = "You cannot transfer coins to yourself."


class RecipientNotFoundError(DomainValidationError):
    code = "E_RECIPIENT_NOT_FOUND"
    default_message = "Recipient account not found."


class CoinAccountNotFoundError(DomainValidationError):
    code = "E_ACCOUNT_NOT_FOUND"
    default_message = "Account not found."


class InsufficientCoinsError(ConflictError):
    code = "E_INSUFFICIENT_COINS"
    default_message = "Not enough coins."


class CoinIdempotencyConflictError(ConflictError):
    pass
