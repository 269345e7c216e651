from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from app.identity.errors import IdentifierValidationError

PROMOTION_TRIGGERS = ("LOGOUT", "PRE_REGISTRATION")
_IDENTIFIER_PATTERN = re.compile(r"^\d{5,20}$")


def normalize_identifier(raw_identifier: str | None) -> str:
    normalized = (raw_identifier or "").strip()
    if not _IDENTIFIER_PATTERN.fullmatch(normalized):
        raise IdentifierValidationError
    return normalized


def display_id(account: object) -> str:
    visual_id = getattr(account, "visual_id", None)
    if visual_id:
        return str(visual_id)
    return str(getattr(account, "real_id"))


@dataclass(frozen=True, slots=True)
class PromotionResult:
    account_id: int
    old_real_id: str
    new_real_id: str
    trigger: str
    promoted_at: datetime


@dataclass(frozen=True, slots=True)
class RegistrationResult:
    account_id: int
    real_id: str
    created: bool
    promotion: PromotionResult | None = None


@dataclass(frozen=True, slots=True)
class LogoutResult:
    account_id: int
    promotion: PromotionResult | None


@dataclass(frozen=True, slots=True)
class PromotionRecordView:
    id: int
    account_id: int
    old_real_id: str
    new_real_id: str
    trigger: str
    promoted_at: datetime


@dataclass(frozen=True, slots=True)
class PromotionRecordPage:
    items: list[PromotionRecordView]
    total: int
    page: int
    page_size: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total


@dataclass(frozen=True, slots=True)
class NetworkOriginView:
    account_id: int
    real_id: str
    last_seen_at: datetime
    ips: list[str]


@dataclass(frozen=True, slots=True)
class NetworkOriginPage:
    items: list[NetworkOriginView]
    total: int
    page: int
    page_size: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total
