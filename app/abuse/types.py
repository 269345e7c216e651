from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

BLOCK_KINDS = ("IP", "FINGERPRINT", "ACCOUNT_ID")


@dataclass(frozen=True, slots=True)
class VisitorIdentifiers:
    ip: str | None = None
    fingerprint: str | None = None
    account_id: str | None = None

    def as_candidates(self) -> list[tuple[str, str]]:
        candidates: list[tuple[str, str]] = []
        for kind, value in (
            ("IP", self.ip),
            ("FINGERPRINT", self.fingerprint),
            ("ACCOUNT_ID", self.account_id),
        ):
            normalized = (value or "").strip()
            if normalized:
                candidates.append((kind, normalized))
        return candidates


@dataclass(frozen=True, slots=True)
class BlockCheckResult:
    blocked: bool
    reason: str | None = None
    kind: str | None = None


@dataclass(frozen=True, slots=True)
class BlockEntryView:
    id: int
    kind: str
    value: str
    reason: str
    created_by: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class BlockPage:
    items: list[BlockEntryView]
    total: int
    page: int
    page_size: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total
