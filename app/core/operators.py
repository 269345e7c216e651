from __future__ import annotations

from dataclasses import dataclass

from app.core.errors import OperatorRequiredError


@dataclass(frozen=True, slots=True)
class OperatorContext:
    operator_id: str


def require_operator(operator: OperatorContext | None) -> OperatorContext:
    if operator is None or not operator.operator_id.strip():
        raise OperatorRequiredError
    return operator
