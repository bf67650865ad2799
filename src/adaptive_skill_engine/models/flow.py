"""Flow and difficulty state models."""

from datetime import datetime

from pydantic import BaseModel, Field

from adaptive_skill_engine.models.performance import Difficulty


class FlowState(BaseModel):
    """Derived engagement state over the trailing sample window."""

    flow_score: float = Field(default=0.0, ge=0.0, le=100.0)
    in_flow: bool = False
    updated_at: datetime = Field(default_factory=datetime.now)
    sample_count: int = 0
    # Normalized sub-scores (0-1)
    accuracy: float = 0.0
    speed: float = 0.0
    streak: float = 0.0


class DifficultyLevel(BaseModel):
    """Current difficulty for a user/category plus its dwell-time lock."""

    level: Difficulty = Difficulty.MEDIUM
    cooldown_until: datetime | None = None

    def in_cooldown(self, now: datetime) -> bool:
        return self.cooldown_until is not None and now <= self.cooldown_until
