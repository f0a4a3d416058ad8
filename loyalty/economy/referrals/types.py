from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class BindResult:
    referral_id: int
    referral_code: str
    referrer_id: str
    referrer_name: str
    referee_id: str
    referee_name: str
    created_at: datetime


@dataclass(slots=True)
class ReferrerInfo:
    referrer_id: str
    referrer_name: str
    referral_code: str


@dataclass(slots=True)
class RefereeSummary:
    referee_id: str
    referee_name: str
    bound_at: datetime
    total_reward: int


@dataclass(slots=True)
class ReferralOverview:
    member_id: str
    referral_code: str
    referred_by: ReferrerInfo | None
    referees: list[RefereeSummary]
    referee_count: int
    total_reward: int


@dataclass(slots=True)
class ReferrerRanking:
    referrer_id: str
    referrer_name: str
    referral_code: str
    referee_count: int
    total_reward: int


@dataclass(slots=True)
class RecentReferral:
    referrer_id: str
    referrer_name: str
    referee_id: str
    referee_name: str
    bound_at: datetime


@dataclass(slots=True)
class ReferralProgramStats:
    total_referrals: int
    active_referrers: int
    average_referrals: float
    total_rewards: int
    top_referrers: list[ReferrerRanking]
    recent_referrals: list[RecentReferral]
