from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class AdArtifact:
    ad_id: int
    video_url: str
    cta_text: str
    cta_link: str
    total_duration_sec: int
    reward_time_sec: int | None
    hide_cta_button: bool

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_json(cls, raw_value: str) -> AdArtifact:
        payload = json.loads(raw_value)
        return cls(
            ad_id=int(payload["ad_id"]),
            video_url=str(payload["video_url"]),
            cta_text=str(payload["cta_text"]),
            cta_link=str(payload["cta_link"]),
            total_duration_sec=int(payload["total_duration_sec"]),
            reward_time_sec=(
                None if payload.get("reward_time_sec") is None else int(payload["reward_time_sec"])
            ),
            hide_cta_button=bool(payload.get("hide_cta_button", False)),
        )

    @property
    def reward_after_sec(self) -> int:
        return self.reward_time_sec or self.total_duration_sec


@dataclass(frozen=True, slots=True)
class AdView:
    """The latest ad served to a visitor, kept until its reward can no longer be claimed."""

    ad_id: int
    served_at: datetime
    reward_after_sec: int

    def to_json(self) -> str:
        return json.dumps(
            {
                "ad_id": self.ad_id,
                "served_at": self.served_at.isoformat(),
                "reward_after_sec": self.reward_after_sec,
            },
            separators=(",", ":"),
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw_value: str) -> AdView:
        payload = json.loads(raw_value)
        return cls(
            ad_id=int(payload["ad_id"]),
            served_at=datetime.fromisoformat(payload["served_at"]),
            reward_after_sec=int(payload["reward_after_sec"]),
        )
