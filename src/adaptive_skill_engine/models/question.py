"""Question bank, drawn question and bias audit models."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from adaptive_skill_engine.models.performance import Difficulty


class Question(BaseModel):
    """A multiple-choice question as stored in the bank."""

    id: str
    category: str
    difficulty: Difficulty
    prompt: str = ""
    options: list[str] = Field(min_length=2)
    correct_index: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_correct_index(self) -> "Question":
        if self.correct_index >= len(self.options):
            raise ValueError(
                f"correct_index {self.correct_index} out of range for {len(self.options)} options"
            )
        return self


class QuestionRecord(BaseModel):
    """A question as served, with options in display order."""

    id: str
    category: str
    difficulty: Difficulty
    requested_difficulty: Difficulty
    prompt: str = ""
    options: list[str]
    correct_slot: int
    original_slot: int
    pool_exhausted: bool = False  # served from a fallback pool
    drawn_at: datetime = Field(default_factory=datetime.now)

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_slot]


class BiasAudit(BaseModel):
    """Correct-answer slot distribution over the current audit window."""

    slot_counts: list[int]
    sample_size: int = 0
    chi_square: float = 0.0
    max_share: float = 0.0
    bias_detected: bool = False
    window_started_at: datetime = Field(default_factory=datetime.now)

    @property
    def frequencies(self) -> list[float]:
        if self.sample_size == 0:
            return [0.0 for _ in self.slot_counts]
        return [count / self.sample_size for count in self.slot_counts]


class LengthBiasReport(BaseModel):
    """How often a bank's correct answer is its longest or shortest option."""

    question_count: int = 0
    longest_count: int = 0
    shortest_count: int = 0
    longest_share: float = 0.0
    shortest_share: float = 0.0
    mean_bias_score: float = 0.0  # 0-100, averaged over questions
    severe_count: int = 0  # questions scoring above 70
    bias_detected: bool = False
