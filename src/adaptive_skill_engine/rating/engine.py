"""Logistic (Elo-style) rating updates driven by performance samples."""

import structlog

from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.models.performance import (
    Difficulty,
    InvalidSampleError,
    PerformanceSample,
    validate_sample,
)
from adaptive_skill_engine.models.rating import Rating, RatingChange

logger = structlog.get_logger()


def expected_score(player: float, opponent: float) -> float:
    """Logistic probability that a player beats an opponent rating.

    Args:
        player: Player rating.
        opponent: Opponent (difficulty reference) rating.

    Returns:
        Expected score in (0, 1).
    """
    return 1.0 / (1.0 + 10 ** ((opponent - player) / 400.0))


class RatingEngine:
    """Computes rating deltas for completed questions.

    Each difficulty acts as a fixed opponent rating. The K-factor shrinks as
    games accumulate so early samples move a rating faster than later ones.

    Args:
        settings: Engine settings (defaults to the cached singleton).
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def k_factor(self, games_played: int) -> float:
        """K-factor for a rating with the given number of games."""
        if games_played < self.settings.provisional_games:
            return self.settings.k_factor_provisional
        if games_played < self.settings.veteran_games:
            return self.settings.k_factor_established
        return self.settings.k_factor_veteran

    def opponent_rating(self, difficulty: Difficulty) -> int:
        return self.settings.opponent_ratings[difficulty.value]

    def clamp(self, value: float) -> int:
        return int(max(self.settings.rating_min, min(self.settings.rating_max, value)))

    def compute_change(self, sample: PerformanceSample, prior: Rating) -> RatingChange:
        """Compute the full rating update for a sample.

        Args:
            sample: The completed-question sample.
            prior: Rating the sample applies to.

        Returns:
            RatingChange carrying the new Rating.

        Raises:
            InvalidSampleError: Category mismatch, unknown category or invalid skip.
        """
        if prior.category != sample.category:
            raise InvalidSampleError(
                f"Sample category {sample.category!r} does not match rating "
                f"category {prior.category!r}"
            )
        validate_sample(sample, self.settings.categories)

        expected = expected_score(prior.value, self.opponent_rating(sample.difficulty))
        actual = 1.0 if sample.correct else 0.0
        k = self.k_factor(prior.games_played)
        raw_delta = k * (actual - expected)

        new_value = self.clamp(prior.value + round(raw_delta))
        rating = Rating(
            category=prior.category,
            value=new_value,
            games_played=prior.games_played + 1,
            last_updated=sample.timestamp,
            peak_value=max(prior.peak_value or prior.value, new_value),
        )

        logger.debug(
            "rating_updated",
            category=prior.category,
            old_value=prior.value,
            new_value=new_value,
            expected=round(expected, 3),
            k_factor=k,
        )

        return RatingChange(
            expected=expected,
            actual=actual,
            k_factor=k,
            raw_delta=raw_delta,
            delta=new_value - prior.value,
            rating=rating,
        )

    def update(self, sample: PerformanceSample, prior: Rating) -> Rating:
        """Return the rating after applying one sample. Persisting it is the caller's job."""
        return self.compute_change(sample, prior).rating
