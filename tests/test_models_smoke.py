"""Smoke tests for Pydantic models and the question bank loader."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from adaptive_skill_engine.config import Settings
from adaptive_skill_engine.delivery.bank import load_question_bank
from adaptive_skill_engine.models.flow import DifficultyLevel, FlowState
from adaptive_skill_engine.models.performance import (
    SKIP_RESPONSE_TIME_MS,
    Difficulty,
    InvalidSampleError,
    PerformanceSample,
    validate_sample,
)
from adaptive_skill_engine.models.question import BiasAudit, Question
from adaptive_skill_engine.models.rating import PlayerStats, Rating


class TestPerformanceSample:
    def test_frozen(self):
        sample = PerformanceSample(
            category="tech", difficulty="easy", correct=True, response_time_ms=1200
        )
        with pytest.raises(ValidationError):
            sample.correct = False

    def test_skip_builder(self):
        stamp = datetime(2026, 1, 1)
        skip = PerformanceSample.skip("tech", Difficulty.HARD, timestamp=stamp, mode="classic")
        assert skip.is_skip
        assert not skip.correct
        assert skip.response_time_ms == SKIP_RESPONSE_TIME_MS
        assert skip.timestamp == stamp
        assert skip.mode == "classic"

    def test_validate_sample(self):
        categories = ["tech"]
        sample = PerformanceSample(
            category="tech", difficulty="medium", correct=False, response_time_ms=0
        )
        assert validate_sample(sample, categories) is sample
        with pytest.raises(InvalidSampleError):
            validate_sample(sample.model_copy(update={"category": "art"}), categories)

    def test_invalid_sample_is_value_error(self):
        assert issubclass(InvalidSampleError, ValueError)


class TestRating:
    def test_peak_defaults_to_value(self):
        assert Rating(category="tech", value=1234).peak_value == 1234

    def test_peak_never_below_value(self):
        assert Rating(category="tech", value=1234, peak_value=1100).peak_value == 1234

    def test_negative_games_rejected(self):
        with pytest.raises(ValidationError):
            Rating(category="tech", games_played=-1)


class TestPlayerStats:
    def test_win_extends_streak(self):
        stats = PlayerStats(wins=2, losses=1, win_streak=2, best_win_streak=2).after(True)
        assert stats == PlayerStats(wins=3, losses=1, win_streak=3, best_win_streak=3)

    def test_loss_resets_streak_keeps_best(self):
        stats = PlayerStats(wins=3, losses=0, win_streak=3, best_win_streak=3).after(False)
        assert stats == PlayerStats(wins=3, losses=1, win_streak=0, best_win_streak=3)
        assert stats.games == 4


class TestFlowModels:
    def test_flow_defaults(self):
        state = FlowState()
        assert state.flow_score == 0.0
        assert not state.in_flow

    def test_flow_score_bounded(self):
        with pytest.raises(ValidationError):
            FlowState(flow_score=101)

    def test_difficulty_level_cooldown(self):
        level = DifficultyLevel(cooldown_until=datetime(2026, 1, 1, 12, 0))
        assert level.in_cooldown(datetime(2026, 1, 1, 11, 59))
        assert not level.in_cooldown(datetime(2026, 1, 1, 12, 1))
        assert not DifficultyLevel().in_cooldown(datetime(2026, 1, 1))


class TestQuestion:
    def test_correct_index_in_range(self):
        with pytest.raises(ValidationError):
            Question(id="q", category="tech", difficulty="easy", options=["a", "b"], correct_index=2)

    def test_needs_two_options(self):
        with pytest.raises(ValidationError):
            Question(id="q", category="tech", difficulty="easy", options=["a"], correct_index=0)

    def test_bias_audit_frequencies(self):
        audit = BiasAudit(slot_counts=[1, 1, 2, 0], sample_size=4)
        assert audit.frequencies == [0.25, 0.25, 0.5, 0.0]


class TestQuestionBank:
    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "bank.yaml"
        path.write_text(
            "questions:\n"
            "  - id: q1\n"
            "    category: tech\n"
            "    difficulty: hard\n"
            "    prompt: What does CPU stand for?\n"
            "    options: [Central Processing Unit, Core Power Unit]\n"
            "    correct_index: 0\n"
        )
        [question] = load_question_bank(path)
        assert question.id == "q1"
        assert question.difficulty == Difficulty.HARD

    def test_empty_file(self, tmp_path):
        path = tmp_path / "bank.yaml"
        path.write_text("")
        assert load_question_bank(path) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_question_bank(tmp_path / "missing.yaml")

    def test_shipped_bank(self):
        questions = load_question_bank(Settings().resolved_question_bank_path)
        assert len(questions) == 30
        assert {q.category for q in questions} == set(Settings().categories)
