"""Answer-submitted pipeline tying rating, flow, difficulty and delivery together."""

import threading
from collections import deque
from datetime import datetime

import structlog
from pydantic import BaseModel

from adaptive_skill_engine.adaptation.difficulty import DifficultyAdapter
from adaptive_skill_engine.adaptation.flow import FlowDetector
from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.delivery.bias import BiasAuditor
from adaptive_skill_engine.delivery.pool import QuestionPool
from adaptive_skill_engine.models.flow import DifficultyLevel, FlowState
from adaptive_skill_engine.models.performance import (
    PerformanceSample,
    Trend,
    validate_sample,
)
from adaptive_skill_engine.models.question import BiasAudit, LengthBiasReport, QuestionRecord
from adaptive_skill_engine.models.rating import (
    OverallRating,
    PlayerStats,
    Rating,
    RatingChange,
    RatingHistoryEntry,
)
from adaptive_skill_engine.rating.engine import RatingEngine
from adaptive_skill_engine.rating.store import RatingStore

logger = structlog.get_logger()

PlayerKey = tuple[str, str]


class AnswerOutcome(BaseModel):
    """Everything the host needs after one answer or skip."""

    rating: Rating
    change: RatingChange
    overall: OverallRating
    stats: PlayerStats
    flow: FlowState
    trend: Trend
    difficulty: DifficultyLevel
    next_question: QuestionRecord


class PlayerSnapshot(BaseModel):
    """Read-only view of a user/category for display polling."""

    user_id: str
    category: str
    rating: Rating
    overall: OverallRating
    flow: FlowState
    trend: Trend
    difficulty: DifficultyLevel


class _PlayerState:
    """Mutable per-(user, category) bundle, guarded by its own lock."""

    def __init__(self, window_size: int):
        self.lock = threading.Lock()
        self.window: deque[PerformanceSample] = deque(maxlen=window_size)
        self.flow: FlowState | None = None
        self.difficulty = DifficultyLevel()

class AdaptiveEngine:
    """Runs the fixed per-answer pipeline for any number of users.

    Order per sample: validate, rating update, flow update, difficulty
    decision, next draw (observed by the bias auditor). Every step is
    computed before anything is stored, so a rejected sample or a failed
    draw leaves every piece of state untouched.

    Args:
        pool: Question pool to draw from.
        settings: Engine settings (defaults to the cached singleton).
        rating_store: Keyed rating collection (a new one by default).
        auditor: Bias auditor; replaces the pool's own when given.
    """

    def __init__(
        self,
        pool: QuestionPool,
        settings: Settings | None = None,
        rating_store: RatingStore | None = None,
        auditor: BiasAuditor | None = None,
    ):
        self.settings = settings or get_settings()
        self.auditor = auditor or pool.auditor or BiasAuditor(self.settings)
        # The report must come from the auditor that sees the draws
        pool.auditor = self.auditor
        self.pool = pool
        self.ratings = rating_store or RatingStore(self.settings)
        self.rating_engine = RatingEngine(self.settings)
        self.flow_detector = FlowDetector(self.settings)
        self.difficulty_adapter = DifficultyAdapter(self.settings)
        self._players: dict[PlayerKey, _PlayerState] = {}
        self._players_lock = threading.Lock()

    def _state(self, user_id: str, category: str) -> _PlayerState:
        with self._players_lock:
            state = self._players.get((user_id, category))
            if state is None:
                state = _PlayerState(self.flow_detector.window_size)
                self._players[(user_id, category)] = state
            return state

    def restore(
        self,
        user_id: str,
        rating: Rating,
        difficulty: DifficultyLevel | None = None,
        stats: PlayerStats | None = None,
    ) -> None:
        """Seed persisted state for a user/category.

        Out-of-range rating values are clamped to the configured bounds.
        """
        state = self._state(user_id, rating.category)
        with state.lock:
            self.ratings.load(user_id, [rating], stats=stats)
            if difficulty is not None:
                state.difficulty = difficulty

    def forget(self, user_id: str) -> None:
        """Drop every bundle and rating held for a user, e.g. on logout."""
        with self._players_lock:
            keys = [key for key in self._players if key[0] == user_id]
            for key in keys:
                del self._players[key]
        self.ratings.forget(user_id)
        logger.info("player_forgotten", user_id=user_id, categories=len(keys))

    def submit(
        self,
        user_id: str,
        sample: PerformanceSample,
        now: datetime | None = None,
    ) -> AnswerOutcome:
        """Process one answered or skipped question.

        Args:
            user_id: Player id.
            sample: The new performance sample.
            now: Decision time for the difficulty cooldown (defaults to
                the sample timestamp).

        Returns:
            AnswerOutcome with the updated rating and difficulty for the
            storage collaborator, plus the next question.

        Raises:
            InvalidSampleError: The sample was rejected; nothing changed.
            PoolExhausted: No question at all could be drawn; nothing changed.
        """
        validate_sample(sample, self.settings.categories)
        now = now or sample.timestamp
        state = self._state(user_id, sample.category)

        with state.lock:
            prior = self.ratings.get(user_id, sample.category)
            change = self.rating_engine.compute_change(sample, prior)

            window = deque(state.window, maxlen=state.window.maxlen)
            window.append(sample)
            flow = self.flow_detector.update(window, previous=state.flow, now=now)

            trend = self.ratings.trend(user_id, sample.category, pending_delta=change.delta)
            difficulty = self.difficulty_adapter.next(state.difficulty, flow, trend, now=now)

            next_question = self.pool.next(sample.category, difficulty.level)

            stats = self.ratings.record(user_id, sample, change)
            state.window = window
            state.flow = flow
            state.difficulty = difficulty

        logger.debug(
            "answer_processed",
            user_id=user_id,
            category=sample.category,
            correct=sample.correct,
            rating=change.rating.value,
            flow_score=flow.flow_score,
            difficulty=difficulty.level.value,
        )

        return AnswerOutcome(
            rating=change.rating,
            change=change,
            overall=self.ratings.overall(user_id),
            stats=stats,
            flow=flow,
            trend=trend,
            difficulty=difficulty,
            next_question=next_question,
        )

    def next_question(self, user_id: str, category: str) -> QuestionRecord:
        """Draw a question at the player's current difficulty, e.g. to start a session."""
        state = self._state(user_id, category)
        with state.lock:
            level = state.difficulty.level
        return self.pool.next(category, level)

    def snapshot(self, user_id: str, category: str) -> PlayerSnapshot:
        """Re-derive display state without advancing anything.

        Safe to call from a periodic poll: the flow score is recomputed
        from the stored window, the in-flow flag is the one set by the last
        submitted sample, and nothing is written back.
        """
        if category not in self.settings.categories:
            raise KeyError(category)
        with self._players_lock:
            state = self._players.get((user_id, category))
        if state is None:
            flow, difficulty = FlowState(), DifficultyLevel()
        else:
            with state.lock:
                in_flow = state.flow.in_flow if state.flow is not None else False
                window = list(state.window)
                difficulty = state.difficulty
            flow_score, accuracy, speed, streak = self.flow_detector.score(window)
            flow = FlowState(
                flow_score=flow_score,
                in_flow=in_flow,
                sample_count=len(window),
                accuracy=round(accuracy, 3),
                speed=round(speed, 3),
                streak=round(streak, 3),
            )

        return PlayerSnapshot(
            user_id=user_id,
            category=category,
            rating=self.ratings.get(user_id, category),
            overall=self.ratings.overall(user_id),
            flow=flow,
            trend=self.ratings.trend(user_id, category),
            difficulty=difficulty,
        )

    def history(self, user_id: str, category: str | None = None) -> list[RatingHistoryEntry]:
        return self.ratings.history(user_id, category)

    def bias_report(self) -> BiasAudit:
        return self.auditor.report()

    def length_bias_report(self) -> LengthBiasReport:
        return self.pool.length_bias()
