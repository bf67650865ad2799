"""Performance sample models produced once per answered or skipped question."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# Skips carry this response time together with correct=False.
SKIP_RESPONSE_TIME_MS = 0


class InvalidSampleError(ValueError):
    """A performance sample was rejected at the engine boundary."""


class Difficulty(StrEnum):
    """Question difficulty levels, ordered easiest first."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        return list(Difficulty).index(self)

    def step_up(self) -> "Difficulty":
        """Next harder level (stays at HARD)."""
        levels = list(Difficulty)
        return levels[min(self.rank + 1, len(levels) - 1)]

    def step_down(self) -> "Difficulty":
        """Next easier level (stays at EASY)."""
        return list(Difficulty)[max(self.rank - 1, 0)]


class Trend(StrEnum):
    """Direction of recent rating movement."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class PerformanceSample(BaseModel):
    """Outcome of a single answered or skipped question."""

    model_config = ConfigDict(frozen=True)

    category: str
    difficulty: Difficulty
    correct: bool
    response_time_ms: int = Field(ge=0)
    streak_at_answer: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)
    mode: str | None = None  # game mode, e.g. "classic" or "true_false"
    question_id: str | None = None

    @classmethod
    def skip(
        cls,
        category: str,
        difficulty: Difficulty,
        timestamp: datetime | None = None,
        **extra,
    ) -> "PerformanceSample":
        """Build a sample for an explicitly skipped question."""
        return cls(
            category=category,
            difficulty=difficulty,
            correct=False,
            response_time_ms=SKIP_RESPONSE_TIME_MS,
            streak_at_answer=0,
            timestamp=timestamp or datetime.now(),
            **extra,
        )

    @property
    def is_skip(self) -> bool:
        return self.response_time_ms == SKIP_RESPONSE_TIME_MS


def validate_sample(sample: PerformanceSample, categories: list[str]) -> PerformanceSample:
    """Reject samples the rating and flow math cannot accept.

    Args:
        sample: Incoming sample.
        categories: Known category ids.

    Returns:
        The same sample, unchanged.

    Raises:
        InvalidSampleError: Unknown category or a skip marked correct.
    """
    if sample.category not in categories:
        raise InvalidSampleError(f"Unknown category: {sample.category!r}")
    if sample.is_skip and sample.correct:
        raise InvalidSampleError("A skipped question cannot be marked correct")
    return sample
