from __future__ import annotations

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from app.ads.service import AdService
from app.api.routes.route_helpers import ensure_visitor_key, raise_http_error, require_account_id
from app.core.errors import DomainError

router = APIRouter(tags=["ads"])


class AdResponse(BaseModel):
    ad_id: int
    video_url: str
    cta_text: str
    cta_link: str
    total_duration_sec: int
    reward_time_sec: int | None = None
    hide_cta_button: bool


class RandomAdResponse(BaseModel):
    ad: AdResponse | None = None


class AdRewardResponse(BaseModel):
    ad_id: int
    amount: int
    balance_after: int
    replayed: bool


@router.get("/ads/random", response_model=RandomAdResponse)
async def get_random_ad(request: Request, response: Response) -> RandomAdResponse:
    artifact = await AdService.get_random_ad(ensure_visitor_key(request, response))
    if artifact is None:
        return RandomAdResponse(ad=None)
    return RandomAdResponse(
        ad=AdResponse(
            ad_id=artifact.ad_id,
            video_url=artifact.video_url,
            cta_text=artifact.cta_text,
            cta_link=artifact.cta_link,
            total_duration_sec=artifact.total_duration_sec,
            reward_time_sec=artifact.reward_time_sec,
            hide_cta_button=artifact.hide_cta_button,
        )
    )


@router.post("/ads/{ad_id}/reward", response_model=AdRewardResponse)
async def claim_ad_reward(ad_id: int, request: Request, response: Response) -> AdRewardResponse:
    account_id = require_account_id(request)
    try:
        result = await AdService.claim_reward(
            ensure_visitor_key(request, response),
            account_id=account_id,
            ad_id=ad_id,
        )
    except DomainError as exc:
        raise_http_error(exc)
    return AdRewardResponse(
        ad_id=ad_id,
        amount=result.amount,
        balance_after=result.balance_after,
        replayed=result.idempotent_replay,
    )
