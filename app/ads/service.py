from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from app.ads.errors import AdRewardNotEarnedError
from app.ads.lock_cache import ArtifactLockCache
from app.ads.types import AdArtifact, AdView
from app.core.config import get_settings
from app.core.enforcement import run_with_policy
from app.db.models.custom_ads import CustomAd
from app.db.repo.ads_repo import AdsRepo
from app.db.session import SessionLocal
from app.economy.coins.service import CoinService
from app.economy.coins.types import CoinMovementResult
from app.services.ephemeral_store import get_expiring_store

logger = structlog.get_logger(__name__)

AD_REWARD_ENTRY_TYPE = "AD_REWARD"


def _as_artifact(ad: CustomAd) -> AdArtifact:
    return AdArtifact(
        ad_id=int(ad.id),
        video_url=str(ad.video_url),
        cta_text=str(ad.cta_text),
        cta_link=str(ad.cta_link),
        total_duration_sec=int(ad.total_duration_sec),
        reward_time_sec=None if ad.reward_time_sec is None else int(ad.reward_time_sec),
        hide_cta_button=bool(ad.hide_cta_button),
    )


def _reward_idempotency_key(visitor_key: str, view: AdView) -> str:
    served_ms = int(view.served_at.timestamp() * 1000)
    return f"ad_reward:{visitor_key[:24]}:{view.ad_id}:{served_ms}"


class AdService:
    @staticmethod
    def _lock_cache() -> ArtifactLockCache:
        return ArtifactLockCache(get_expiring_store())

    @staticmethod
    async def _sample_artifact() -> AdArtifact | None:
        async with SessionLocal.begin() as session:
            ad = await AdsRepo.sample_one(session)
        return None if ad is None else _as_artifact(ad)

    @staticmethod
    async def get_random_ad(
        visitor_key: str,
        *,
        now_utc: datetime | None = None,
    ) -> AdArtifact | None:
        lock_cache = AdService._lock_cache()
        locked = await run_with_policy(
            "ads.artifact_lock",
            lambda: lock_cache.get_locked(visitor_key),
            fallback=None,
        )
        if locked is not None:
            return locked

        artifact = await AdService._sample_artifact()
        if artifact is None:
            return None

        ttl_seconds = get_settings().ad_lock_ttl_seconds
        served_at = now_utc or datetime.now(timezone.utc)

        async def _lock() -> bool:
            await lock_cache.set_lock(visitor_key, artifact, ttl_seconds=ttl_seconds)
            await lock_cache.start_view(visitor_key, artifact, served_at=served_at)
            return True

        locked_now = await run_with_policy("ads.artifact_lock", _lock, fallback=False)
        if not locked_now:
            logger.info("ad_served_unlocked", ad_id=artifact.ad_id)
        return artifact

    @staticmethod
    async def _credit_view(
        *,
        account_id: int,
        visitor_key: str,
        view: AdView,
        now_utc: datetime,
    ) -> CoinMovementResult:
        async with SessionLocal.begin() as session:
            return await CoinService.credit(
                session,
                account_id=account_id,
                amount=get_settings().ad_reward_coins,
                entry_type=AD_REWARD_ENTRY_TYPE,
                idempotency_key=_reward_idempotency_key(visitor_key, view),
                now_utc=now_utc,
                metadata={"ad_id": view.ad_id},
            )

    @staticmethod
    async def claim_reward(
        visitor_key: str,
        *,
        account_id: int,
        ad_id: int,
        now_utc: datetime | None = None,
    ) -> CoinMovementResult:
        """Credit the watch reward for the ad last served to ``visitor_key``.

        Claiming the same serving twice replays the first credit.
        """
        now_utc = now_utc or datetime.now(timezone.utc)
        lock_cache = AdService._lock_cache()
        view = await run_with_policy(
            "ads.reward_claim",
            lambda: lock_cache.get_view(visitor_key),
            fallback=None,
        )
        if view is None or view.ad_id != ad_id:
            raise AdRewardNotEarnedError("This ad was not served to you recently.")
        if now_utc < view.served_at + timedelta(seconds=view.reward_after_sec):
            raise AdRewardNotEarnedError

        result = await run_with_policy(
            "ads.reward_claim",
            lambda: AdService._credit_view(
                account_id=account_id,
                visitor_key=visitor_key,
                view=view,
                now_utc=now_utc,
            ),
            fallback=None,
        )
        logger.info(
            "ad_reward_credited",
            account_id=account_id,
            ad_id=ad_id,
            amount=result.amount,
            replayed=result.idempotent_replay,
        )
        return result
