from __future__ import annotations

from datetime import datetime

import structlog

from app.ads.types import AdArtifact, AdView
from app.services.ephemeral_store import ExpiringStore

logger = structlog.get_logger(__name__)

_LOCK_KEY_PREFIX = "ad-lock"
_VIEW_KEY_PREFIX = "ad-view"

# A finished view stays claimable this long after the video ends.
VIEW_CLAIM_GRACE_SECONDS = 300


class ArtifactLockCache:
    """Pins one artifact per visitor key until the lock expires.

    The latest serving is also remembered as an ``AdView`` so a watch reward
    can be checked against when the ad was actually handed out.
    """

    def __init__(self, store: ExpiringStore) -> None:
        self._store = store

    @staticmethod
    def _key(visitor_key: str) -> str:
        return f"{_LOCK_KEY_PREFIX}:{visitor_key}"

    @staticmethod
    def _view_key(visitor_key: str) -> str:
        return f"{_VIEW_KEY_PREFIX}:{visitor_key}"

    async def get_locked(self, visitor_key: str) -> AdArtifact | None:
        raw_value = await self._store.get(self._key(visitor_key))
        if raw_value is None:
            return None
        try:
            return AdArtifact.from_json(raw_value)
        except (ValueError, KeyError, TypeError):
            logger.warning("ad_lock_payload_invalid", visitor_key=visitor_key[:12])
            await self._store.delete(self._key(visitor_key))
            return None

    async def set_lock(self, visitor_key: str, artifact: AdArtifact, *, ttl_seconds: int) -> None:
        await self._store.set(self._key(visitor_key), artifact.to_json(), ttl_seconds=ttl_seconds)

    async def start_view(
        self,
        visitor_key: str,
        artifact: AdArtifact,
        *,
        served_at: datetime,
    ) -> AdView:
        view = AdView(
            ad_id=artifact.ad_id,
            served_at=served_at,
            reward_after_sec=artifact.reward_after_sec,
        )
        await self._store.set(
            self._view_key(visitor_key),
            view.to_json(),
            ttl_seconds=artifact.total_duration_sec + VIEW_CLAIM_GRACE_SECONDS,
        )
        return view

    async def get_view(self, visitor_key: str) -> AdView | None:
        raw_value = await self._store.get(self._view_key(visitor_key))
        if raw_value is None:
            return None
        try:
            return AdView.from_json(raw_value)
        except (ValueError, KeyError, TypeError):
            logger.warning("ad_view_payload_invalid", visitor_key=visitor_key[:12])
            await self._store.delete(self._view_key(visitor_key))
            return None
