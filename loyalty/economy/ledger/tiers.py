from __future__ import annotations

from collections.abc import Sequence

from loyalty.core.config import TierThreshold


def compute_tier(balance: int, thresholds: Sequence[TierThreshold]) -> str:
    """Returns the name of the highest threshold whose minimum the balance reaches.

    Balances below the lowest threshold (possible only when negative balances are
    allowed) fall back to the lowest tier.
    """
    if not thresholds:
        raise ValueError("tier thresholds must not be empty")

    tier = thresholds[0].name
    for threshold in thresholds:
        if balance < threshold.min_points:
            break
        tier = threshold.name
    return tier
