from __future__ import annotations

from app.core.errors import ConflictError, DomainValidationError


class IdentifierValidationError(DomainValidationError):
    default_message = "Identifier must be 5 to 20 digits."


class AccountNotFoundError(DomainValidationError):
    code = "E_ACCOUNT_NOT_FOUND"
    default_message = "Account not found."


class PromotionPreconditionError(DomainValidationError):
    default_message = "Account holds no visual identifier."


class PromotionConflictError(ConflictError):
    default_message = "Target identifier is already taken."


class IdentifierReservedError(ConflictError):
    default_message = "This identifier is not available right now, please retry."


class VisualIdConflictError(ConflictError):
    default_message = "Visual identifier is already in use."
