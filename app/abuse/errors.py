from __future__ import annotations

from app.core.errors import ConflictError, DomainValidationError, UnauthorizedError


class BlockValidationError(DomainValidationError):
    pass


class BlockAlreadyExistsError(ConflictError):
    default_message = "This value is already blocked."


class BlockNotFoundError(DomainValidationError):
    code = "E_BLOCK_NOT_FOUND"
    default_message = "Block entry not found."


class AccountBlockedError(UnauthorizedError):
    code = "E_BLOCKED"

    def __init__(self, reason: str | None) -> None:
        super().__init__(reason or "Access blocked.")
        self.reason = reason
