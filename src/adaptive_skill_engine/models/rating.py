"""Skill rating models."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from adaptive_skill_engine.models.performance import Difficulty


class Rating(BaseModel):
    """Skill rating for one user in one category."""

    category: str
    value: int = 1000
    games_played: int = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=datetime.now)
    peak_value: int | None = None

    @model_validator(mode="after")
    def _default_peak(self) -> "Rating":
        if self.peak_value is None or self.peak_value < self.value:
            self.peak_value = self.value
        return self


class RatingChange(BaseModel):
    """Breakdown of a single rating update."""

    expected: float  # E, logistic success probability
    actual: float  # S, 1.0 correct / 0.0 incorrect or skip
    k_factor: float
    raw_delta: float  # K * (S - E) before rounding and clamping
    delta: int  # applied change after clamping
    rating: Rating


class OverallRating(BaseModel):
    """Unweighted mean over the categories a user has actually played."""

    value: int
    categories_played: int = 0


class RatingHistoryEntry(BaseModel):
    """One applied rating update, kept for progress charts."""

    category: str
    rating: int  # value after the update
    change: int
    correct: bool
    difficulty: Difficulty
    timestamp: datetime


class PlayerStats(BaseModel):
    """Win/loss tallies across all categories. A correct answer is a win."""

    wins: int = Field(default=0, ge=0)
    losses: int = Field(default=0, ge=0)
    win_streak: int = Field(default=0, ge=0)
    best_win_streak: int = Field(default=0, ge=0)

    @property
    def games(self) -> int:
        return self.wins + self.losses

    def after(self, correct: bool) -> "PlayerStats":
        """Tallies after one more answer."""
        if correct:
            streak = self.win_streak + 1
            return PlayerStats(
                wins=self.wins + 1,
                losses=self.losses,
                win_streak=streak,
                best_win_streak=max(self.best_win_streak, streak),
            )
        return PlayerStats(
            wins=self.wins,
            losses=self.losses + 1,
            win_streak=0,
            best_win_streak=self.best_win_streak,
        )
