from __future__ import annotations


class DomainError(Exception):
    code = "E_DOMAIN"
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(DomainError):
    code = "E_UNAUTHORIZED"
    default_message = "Unauthorized"


class DomainValidationError(DomainError):
    code = "E_VALIDATION"
    default_message = "Invalid input."


class ConflictError(DomainError):
    code = "E_CONFLICT"
    default_message = "The request conflicts with the current state."


class InfrastructureError(DomainError):
    code = "E_UNAVAILABLE"
    default_message = "Service temporarily unavailable, please retry."


class OperatorRequiredError(UnauthorizedError):
    default_message = "Operator session required."
