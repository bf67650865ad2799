"""End-to-end tests for the answer-submitted pipeline."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from adaptive_skill_engine.config import Settings
from adaptive_skill_engine.delivery.bias import BiasAuditor
from adaptive_skill_engine.delivery.pool import PoolExhausted, QuestionPool
from adaptive_skill_engine.engine import AdaptiveEngine
from adaptive_skill_engine.models.flow import DifficultyLevel
from adaptive_skill_engine.models.performance import (
    Difficulty,
    InvalidSampleError,
    PerformanceSample,
)
from adaptive_skill_engine.models.question import Question
from adaptive_skill_engine.models.rating import PlayerStats, Rating

START = datetime(2026, 6, 1, 18, 0, 0)


def make_bank(categories=("tech", "finance"), difficulties=tuple(Difficulty), per_pool=4):
    return [
        Question(
            id=f"{category}-{difficulty.value}-{i}",
            category=category,
            difficulty=difficulty,
            prompt=f"{category} question {i}",
            options=["A", "B", "C", "D"],
            correct_index=i % 4,
        )
        for category in categories
        for difficulty in difficulties
        for i in range(per_pool)
    ]


def make_engine(questions=None, settings=None):
    settings = settings or Settings()
    auditor = BiasAuditor(settings)
    pool = QuestionPool(
        make_bank() if questions is None else questions,
        settings=settings,
        auditor=auditor,
        seed=42,
    )
    return AdaptiveEngine(pool, settings=settings, auditor=auditor)


def answer(category="tech", correct=True, streak=1, seconds=0, response_time_ms=2000,
           difficulty=Difficulty.MEDIUM):
    return PerformanceSample(
        category=category,
        difficulty=difficulty,
        correct=correct,
        response_time_ms=response_time_ms,
        streak_at_answer=streak,
        timestamp=START + timedelta(seconds=seconds),
    )


class TestImprovingPlayer:
    def test_five_correct_medium_answers(self):
        engine = make_engine()
        outcomes = [
            engine.submit("alice", answer(streak=i, seconds=5 * i)) for i in range(1, 6)
        ]

        values = [outcome.rating.value for outcome in outcomes]
        assert values[0] == 1026
        assert all(later > earlier for earlier, later in zip(values, values[1:]))
        assert [o.rating.games_played for o in outcomes] == [1, 2, 3, 4, 5]

        assert not outcomes[0].flow.in_flow
        assert outcomes[-1].flow.in_flow

        assert outcomes[0].difficulty.level == Difficulty.MEDIUM
        assert outcomes[-1].difficulty.level == Difficulty.HARD
        assert outcomes[-1].next_question.difficulty == Difficulty.HARD

    def test_step_up_sets_cooldown(self):
        engine = make_engine()
        outcomes = [
            engine.submit("alice", answer(streak=i, seconds=5 * i)) for i in range(1, 4)
        ]
        changed = outcomes[-1]
        assert changed.difficulty.level == Difficulty.HARD
        assert changed.difficulty.cooldown_until == START + timedelta(seconds=15 + 60)

    def test_overall_tracks_played_categories(self):
        engine = make_engine()
        outcome = engine.submit("alice", answer())
        assert outcome.overall.categories_played == 1
        assert outcome.overall.value == outcome.rating.value


class TestStrugglingPlayer:
    def test_steps_down_from_hard(self):
        engine = make_engine()
        engine.restore(
            "bob",
            Rating(category="tech", value=1000),
            DifficultyLevel(level=Difficulty.HARD),
        )
        outcomes = [
            engine.submit(
                "bob",
                answer(correct=False, streak=0, seconds=5 * i, response_time_ms=25000,
                       difficulty=Difficulty.HARD),
            )
            for i in range(1, 6)
        ]
        assert all(not o.flow.in_flow for o in outcomes)
        assert outcomes[0].difficulty.level == Difficulty.HARD
        assert outcomes[-1].difficulty.level == Difficulty.MEDIUM
        assert outcomes[-1].difficulty.cooldown_until is not None

    def test_skips_lower_rating(self):
        engine = make_engine()
        outcome = engine.submit(
            "bob", PerformanceSample.skip("tech", Difficulty.MEDIUM, timestamp=START)
        )
        assert outcome.rating.value < 1000
        assert outcome.change.actual == 0.0
        assert outcome.flow.speed == 0.0


class TestPoolFallbackThroughEngine:
    def test_finance_hard_served_from_medium(self):
        questions = make_bank(categories=("tech",)) + make_bank(
            categories=("finance",), difficulties=(Difficulty.EASY, Difficulty.MEDIUM)
        )
        engine = make_engine(questions)
        engine.restore(
            "carol",
            Rating(category="finance", value=1500, games_played=40),
            DifficultyLevel(level=Difficulty.HARD),
        )
        record = engine.next_question("carol", "finance")
        assert record.category == "finance"
        assert record.difficulty == Difficulty.MEDIUM
        assert record.requested_difficulty == Difficulty.HARD
        assert record.pool_exhausted


class TestRejectedSamples:
    def test_unknown_category_changes_nothing(self):
        engine = make_engine()
        with pytest.raises(InvalidSampleError):
            engine.submit("dave", answer(category="astrology"))
        assert engine.ratings.ratings("dave") == {}
        assert engine.bias_report().sample_size == 0

    def test_correct_skip_changes_nothing(self):
        engine = make_engine()
        engine.submit("dave", answer(streak=1, seconds=0))
        before = engine.snapshot("dave", "tech")

        with pytest.raises(InvalidSampleError):
            engine.submit("dave", answer(correct=True, response_time_ms=0, seconds=5))

        after = engine.snapshot("dave", "tech")
        assert after.rating == before.rating
        assert after.flow.sample_count == before.flow.sample_count
        assert after.difficulty == before.difficulty
        assert engine.ratings.recent_deltas("dave", "tech") == [26]
        assert engine.bias_report().sample_size == 1


class TestSnapshot:
    def test_unknown_player_defaults(self):
        engine = make_engine()
        snapshot = engine.snapshot("erin", "tech")
        assert snapshot.rating.value == 1000
        assert snapshot.flow.flow_score == 0.0
        assert not snapshot.flow.in_flow
        assert snapshot.difficulty.level == Difficulty.MEDIUM

    def test_unknown_category(self):
        engine = make_engine()
        with pytest.raises(KeyError):
            engine.snapshot("erin", "astrology")

    def test_polling_is_idempotent(self):
        engine = make_engine()
        last = None
        for i in range(1, 4):
            last = engine.submit("erin", answer(streak=i, seconds=5 * i))

        snapshots = [engine.snapshot("erin", "tech") for _ in range(5)]
        for snapshot in snapshots:
            assert snapshot.rating == last.rating
            assert snapshot.flow.flow_score == last.flow.flow_score
            assert snapshot.flow.in_flow == last.flow.in_flow
            assert snapshot.difficulty == last.difficulty
            assert snapshot.trend == last.trend
        assert engine.bias_report().sample_size == 3

        following = engine.submit("erin", answer(streak=4, seconds=20))
        assert following.rating.games_played == 4


class TestRestore:
    def test_restore_seeds_rating_and_difficulty(self):
        engine = make_engine()
        engine.restore(
            "frank",
            Rating(category="tech", value=1600, games_played=150),
            DifficultyLevel(level=Difficulty.EASY),
        )
        snapshot = engine.snapshot("frank", "tech")
        assert snapshot.rating.value == 1600
        assert snapshot.difficulty.level == Difficulty.EASY

        outcome = engine.submit("frank", answer(correct=False, streak=0, difficulty=Difficulty.EASY))
        assert outcome.change.k_factor == 16
        assert outcome.rating.games_played == 151


class TestConcurrency:
    def test_parallel_submissions_serialize_per_player(self):
        engine = make_engine()

        def play(user_id):
            for i in range(25):
                engine.submit(user_id, answer(correct=i % 2 == 0, streak=i % 3, seconds=i))

        users = ["u1", "u1", "u2", "u3"]
        with ThreadPoolExecutor(max_workers=4) as executor:
            list(executor.map(play, users))

        assert engine.ratings.get("u1", "tech").games_played == 50
        assert engine.ratings.get("u2", "tech").games_played == 25
        assert engine.bias_report().sample_size == 100


class TestFailedDraw:
    def test_exhausted_pool_commits_nothing(self):
        settings = Settings(pool_category_fallback=False)
        engine = make_engine(make_bank(categories=("tech",)), settings=settings)
        with pytest.raises(PoolExhausted):
            engine.submit("gina", answer(category="finance"))

        assert engine.ratings.ratings("gina") == {}
        assert engine.ratings.history("gina") == []
        assert engine.ratings.stats("gina").games == 0
        snapshot = engine.snapshot("gina", "finance")
        assert snapshot.flow.sample_count == 0
        assert snapshot.difficulty == DifficultyLevel()

    def test_later_answers_unaffected_by_failed_draw(self):
        settings = Settings(pool_category_fallback=False)
        engine = make_engine(make_bank(categories=("tech",)), settings=settings)
        with pytest.raises(PoolExhausted):
            engine.submit("gina", answer(category="finance"))
        engine.pool.add(make_bank(categories=("finance",)))
        outcome = engine.submit("gina", answer(category="finance"))
        assert outcome.rating.value == 1026
        assert outcome.rating.games_played == 1


class TestAuditorWiring:
    def test_explicit_auditor_observes_draws(self):
        settings = Settings()
        pool_auditor = BiasAuditor(settings)
        engine_auditor = BiasAuditor(settings)
        pool = QuestionPool(make_bank(), settings=settings, auditor=pool_auditor, seed=1)
        engine = AdaptiveEngine(pool, settings=settings, auditor=engine_auditor)
        for _ in range(30):
            engine.next_question("hank", "tech")
        assert engine.bias_report().sample_size == 30
        assert pool.auditor is engine_auditor

    def test_pool_auditor_reused(self):
        settings = Settings()
        auditor = BiasAuditor(settings)
        pool = QuestionPool(make_bank(), settings=settings, auditor=auditor, seed=1)
        engine = AdaptiveEngine(pool, settings=settings)
        engine.next_question("hank", "tech")
        assert engine.auditor is auditor
        assert engine.bias_report().sample_size == 1


class TestRestoreBounds:
    def test_out_of_range_restore_clamped(self):
        engine = make_engine()
        engine.restore("ivy", Rating(category="tech", value=9999, games_played=10))
        snapshot = engine.snapshot("ivy", "tech")
        assert snapshot.rating.value == 3000
        assert snapshot.overall.value == 3000

    def test_restore_seeds_stats(self):
        engine = make_engine()
        engine.restore(
            "ivy",
            Rating(category="tech", value=1200, games_played=10),
            stats=PlayerStats(wins=7, losses=3, win_streak=2, best_win_streak=4),
        )
        outcome = engine.submit("ivy", answer())
        assert outcome.stats.wins == 8
        assert outcome.stats.win_streak == 3


class TestOutcomeStats:
    def test_stats_and_history_follow_answers(self):
        engine = make_engine()
        results = [True, True, False, True]
        for i, correct in enumerate(results, start=1):
            outcome = engine.submit(
                "jill", answer(correct=correct, streak=1 if correct else 0, seconds=5 * i)
            )
        assert outcome.stats == PlayerStats(wins=3, losses=1, win_streak=1, best_win_streak=2)
        history = engine.history("jill", "tech")
        assert [entry.correct for entry in history] == results
        assert history[-1].rating == outcome.rating.value


class TestForget:
    def test_forget_drops_player_state(self):
        engine = make_engine()
        engine.restore("kim", Rating(category="tech", value=1500), DifficultyLevel(level=Difficulty.HARD))
        engine.submit("kim", answer(difficulty=Difficulty.HARD))
        engine.submit("lee", answer())

        engine.forget("kim")

        snapshot = engine.snapshot("kim", "tech")
        assert snapshot.rating.value == 1000
        assert snapshot.difficulty.level == Difficulty.MEDIUM
        assert snapshot.flow.sample_count == 0
        assert engine.ratings.history("kim") == []
        assert engine.ratings.get("lee", "tech").games_played == 1
