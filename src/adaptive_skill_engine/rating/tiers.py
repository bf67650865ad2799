"""Named rating tiers for display and diagnostics."""

from pydantic import BaseModel


class RankTier(BaseModel):
    """A named rating band, lower bound inclusive."""

    label: str
    min_value: int
    max_value: int


RANK_TIERS: list[RankTier] = [
    RankTier(label="Novice", min_value=400, max_value=800),
    RankTier(label="Bronze", min_value=800, max_value=1000),
    RankTier(label="Silver", min_value=1000, max_value=1200),
    RankTier(label="Gold", min_value=1200, max_value=1400),
    RankTier(label="Platinum", min_value=1400, max_value=1600),
    RankTier(label="Diamond", min_value=1600, max_value=1800),
    RankTier(label="Master", min_value=1800, max_value=2000),
    RankTier(label="Grandmaster", min_value=2000, max_value=3000),
]


def tier_for(value: int) -> RankTier:
    """Return the tier containing a rating value."""
    if value < RANK_TIERS[0].min_value:
        return RANK_TIERS[0]
    for tier in RANK_TIERS:
        if tier.min_value <= value < tier.max_value:
            return tier
    return RANK_TIERS[-1]


def progress_to_next_tier(value: int) -> dict[str, str | int | float | None]:
    """Get progress through the current tier toward the next one.

    Args:
        value: Rating value.

    Returns:
        Dict with tier, next_tier, progress (0-100) and points_needed.
    """
    tier = tier_for(value)
    index = RANK_TIERS.index(tier)
    if index == len(RANK_TIERS) - 1:
        return {"tier": tier.label, "next_tier": None, "progress": 100.0, "points_needed": 0}

    next_tier = RANK_TIERS[index + 1]
    span = next_tier.min_value - tier.min_value
    progress = (value - tier.min_value) / span * 100
    return {
        "tier": tier.label,
        "next_tier": next_tier.label,
        "progress": round(min(100.0, max(0.0, progress)), 1),
        "points_needed": max(0, next_tier.min_value - value),
    }
