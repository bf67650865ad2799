"""Question pool with no-repeat rotation and answer-slot randomization."""

import threading
from collections import deque
from collections.abc import Iterable
from datetime import datetime

import numpy as np
import structlog

from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.delivery.bias import BiasAuditor, analyze_length_bias
from adaptive_skill_engine.models.performance import Difficulty
from adaptive_skill_engine.models.question import LengthBiasReport, Question, QuestionRecord

logger = structlog.get_logger()

PoolKey = tuple[str, Difficulty]


class PoolExhausted(LookupError):
    """No question is available for a request, even after fallback."""


class QuestionPool:
    """Serves questions per (category, difficulty) in shuffled rotation.

    Each key keeps a shuffled working list holding the rest of the current
    cycle. A draw takes the first id in it that is not among the last
    P - K - 1 served ids, so any P - K consecutive draws are distinct while
    every cycle still serves the whole pool once. Every draw re-randomizes
    the option order, so the correct answer's slot is uniform regardless of
    where the bank stores it.

    Args:
        questions: Initial question bank.
        settings: Engine settings (defaults to the cached singleton).
        auditor: Optional observer notified of every drawn slot.
        seed: RNG seed for reproducible draws (defaults to settings.pool_seed).
    """

    def __init__(
        self,
        questions: Iterable[Question] = (),
        settings: Settings | None = None,
        auditor: BiasAuditor | None = None,
        seed: int | None = None,
    ):
        self.settings = settings or get_settings()
        self.auditor = auditor
        self._rng = np.random.default_rng(seed if seed is not None else self.settings.pool_seed)
        self._lock = threading.RLock()
        self._questions: dict[PoolKey, dict[str, Question]] = {}
        self._working: dict[PoolKey, list[str]] = {}
        self._history: dict[PoolKey, deque[str]] = {}
        self.add(questions)

    def add(self, questions: Iterable[Question]) -> None:
        """Add questions to the bank. Re-adding an id replaces the question."""
        with self._lock:
            for question in questions:
                key = (question.category, question.difficulty)
                self._questions.setdefault(key, {})[question.id] = question
                self._working.setdefault(key, [])
                self._history.setdefault(key, deque())

    def retire(self, question_id: str) -> bool:
        """Remove a question from the bank and from any rotation state."""
        with self._lock:
            for key, bank in self._questions.items():
                if question_id in bank:
                    del bank[question_id]
                    self._working[key] = [q for q in self._working[key] if q != question_id]
                    self._history[key] = deque(q for q in self._history[key] if q != question_id)
                    logger.info("question_retired", question_id=question_id, category=key[0])
                    return True
        return False

    def reset(self) -> None:
        """Forget rotation state; the next draws start fresh cycles."""
        with self._lock:
            for key in self._questions:
                self._working[key].clear()
                self._history[key].clear()

    def size(self, category: str, difficulty: Difficulty | str) -> int:
        with self._lock:
            return len(self._questions.get((category, Difficulty(difficulty)), {}))

    def history_size(self, key: PoolKey) -> int:
        """K, the share of the pool that may come back before a full rotation."""
        with self._lock:
            pool_size = len(self._questions.get(key, {}))
        if pool_size <= 1:
            return 0
        return min(int(pool_size * self.settings.pool_history_fraction), pool_size - 1)

    def repeat_gap(self, key: PoolKey) -> int:
        """P - K, the minimum number of draws between two serves of one id."""
        with self._lock:
            pool_size = len(self._questions.get(key, {}))
        return max(pool_size - self.history_size(key), 1)

    @property
    def categories(self) -> list[str]:
        known = list(self.settings.categories)
        with self._lock:
            known.extend(c for c, _ in self._questions if c not in known)
        return known

    def stats(self) -> list[dict[str, str | int]]:
        """Per-pool totals for diagnostics."""
        with self._lock:
            return [
                {
                    "category": category,
                    "difficulty": difficulty.value,
                    "total": len(bank),
                    "remaining_in_cycle": len(self._working[(category, difficulty)]),
                    "recent": len(self._history[(category, difficulty)]),
                }
                for (category, difficulty), bank in self._questions.items()
            ]

    def length_bias(self) -> LengthBiasReport:
        """Audit the bank for correct answers that stand out by length."""
        with self._lock:
            questions = [q for bank in self._questions.values() for q in bank.values()]
        return analyze_length_bias(questions, self.settings)

    def _shuffled(self, ids: list[str]) -> list[str]:
        return [ids[i] for i in self._rng.permutation(len(ids))]

    def _pick(self, key: PoolKey) -> str | None:
        recent = set(self._history[key])
        for index, question_id in enumerate(self._working[key]):
            if question_id not in recent:
                return self._working[key].pop(index)
        return None

    def _trim_history(self, key: PoolKey) -> None:
        history = self._history[key]
        while len(history) > self.repeat_gap(key) - 1:
            history.popleft()

    def _draw(self, key: PoolKey) -> Question:
        # The pool may have shrunk since the last draw
        self._trim_history(key)
        question_id = self._pick(key)
        if question_id is None:
            # Cycle complete; the history still holds back the last P - K - 1 ids
            self._working[key] = self._shuffled(list(self._questions[key]))
            question_id = self._pick(key)

        self._history[key].append(question_id)
        self._trim_history(key)
        return self._questions[key][question_id]

    def _fallback_order(self, category: str, difficulty: Difficulty) -> list[PoolKey]:
        """Keys to try, nearest difficulty first (ties prefer easier)."""
        by_distance = sorted(
            Difficulty,
            key=lambda d: (abs(d.rank - difficulty.rank), d.rank),
        )
        order = [(category, d) for d in by_distance]
        if self.settings.pool_category_fallback:
            others = [c for c in self.categories if c != category]
            order.extend((c, d) for d in by_distance for c in others)
        return order

    def _randomize(
        self,
        question: Question,
        requested: Difficulty,
        exhausted: bool,
    ) -> QuestionRecord:
        permutation = self._rng.permutation(len(question.options))
        options = [question.options[i] for i in permutation]
        correct_slot = int(np.flatnonzero(permutation == question.correct_index)[0])
        return QuestionRecord(
            id=question.id,
            category=question.category,
            difficulty=question.difficulty,
            requested_difficulty=requested,
            prompt=question.prompt,
            options=options,
            correct_slot=correct_slot,
            original_slot=question.correct_index,
            pool_exhausted=exhausted,
            drawn_at=datetime.now(),
        )

    def next(self, category: str, difficulty: Difficulty | str) -> QuestionRecord:
        """Draw the next question for a category and difficulty.

        Args:
            category: Category id.
            difficulty: Requested difficulty.

        Returns:
            QuestionRecord; ``pool_exhausted`` is set when it came from a
            fallback pool.

        Raises:
            ValueError: Unknown category or difficulty.
            PoolExhausted: Nothing available even after fallback.
        """
        difficulty = Difficulty(difficulty)
        if category not in self.categories:
            raise ValueError(f"Unknown category: {category!r}")

        with self._lock:
            for key in self._fallback_order(category, difficulty):
                if not self._questions.get(key):
                    continue
                exhausted = key != (category, difficulty)
                if exhausted:
                    logger.warning(
                        "pool_exhausted",
                        category=category,
                        difficulty=difficulty.value,
                        fallback_category=key[0],
                        fallback_difficulty=key[1].value,
                    )
                record = self._randomize(self._draw(key), difficulty, exhausted)
                if self.auditor is not None and len(record.options) == self.auditor.slot_count:
                    self.auditor.observe(record.correct_slot)
                return record

        raise PoolExhausted(
            f"No questions available for {category}/{difficulty.value} or any fallback"
        )
