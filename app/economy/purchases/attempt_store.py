from __future__ import annotations

from app.core.enforcement import run_with_policy
from app.economy.purchases.errors import PurchaseAttemptNotFoundError
from app.economy.purchases.state_machine import PurchaseAttempt
from app.services.ephemeral_store import ExpiringStore

_ATTEMPT_KEY_PREFIX = "purchase-attempt"


class PurchaseAttemptStore:
    def __init__(self, store: ExpiringStore, *, ttl_seconds: int) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def _key(attempt_id: str) -> str:
        return f"{_ATTEMPT_KEY_PREFIX}:{attempt_id}"

    async def save(self, attempt: PurchaseAttempt) -> None:
        await run_with_policy(
            "purchases.attempt_store",
            lambda: self._store.set(
                self._key(attempt.attempt_id),
                attempt.to_json(),
                ttl_seconds=self._ttl_seconds,
            ),
            fallback=None,
        )

    async def load(self, attempt_id: str, *, visitor_key: str) -> PurchaseAttempt:
        raw_value = await run_with_policy(
            "purchases.attempt_store",
            lambda: self._store.get(self._key(attempt_id)),
            fallback=None,
        )
        if raw_value is None:
            raise PurchaseAttemptNotFoundError
        attempt = PurchaseAttempt.from_json(raw_value)
        # Attempts are only visible to the visitor session that started them.
        if attempt.visitor_key != visitor_key:
            raise PurchaseAttemptNotFoundError
        return attempt

    async def discard(self, attempt_id: str) -> None:
        await run_with_policy(
            "purchases.attempt_store",
            lambda: self._store.delete(self._key(attempt_id)),
            fallback=None,
        )
