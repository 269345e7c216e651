from __future__ import annotations

from app.core.errors import ConflictError


class AdRewardNotEarnedError(ConflictError):
    code = "E_AD_REWARD_NOT_EARNED"
    default_message = "Watch the whole ad to earn coins."
