from __future__ import annotations

from .binding import bind
from .overview import get_overview, get_program_stats, get_referrer, verify_referral_code
from .rewards import compute_referral_reward, get_referrer_id, reward


class ReferralService:
    bind = staticmethod(bind)
    reward = staticmethod(reward)
    compute_referral_reward = staticmethod(compute_referral_reward)
    get_referrer = staticmethod(get_referrer)
    get_referrer_id = staticmethod(get_referrer_id)
    get_overview = staticmethod(get_overview)
    get_program_stats = staticmethod(get_program_stats)
    verify_referral_code = staticmethod(verify_referral_code)


__all__ = ["ReferralService"]
