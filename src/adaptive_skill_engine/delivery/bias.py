"""Correct-answer slot and length bias auditing."""

from collections.abc import Sequence
from datetime import datetime

import numpy as np
import structlog

from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.models.question import BiasAudit, LengthBiasReport, Question

logger = structlog.get_logger()


class BiasAuditor:
    """Counts correct-answer slots and tests them against a uniform distribution.

    The window is cumulative: it covers every draw since construction or
    the last ``reset()``. Purely observational, never changes what the pool
    serves.

    Args:
        settings: Engine settings (defaults to the cached singleton).
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.slot_count = self.settings.bias_slot_count
        self._counts = np.zeros(self.slot_count, dtype=np.int64)
        self._window_started_at = datetime.now()
        self._bias_reported = False

    def observe(self, slot: int) -> None:
        """Record the display slot of one drawn question's correct answer."""
        if not 0 <= slot < self.slot_count:
            raise ValueError(f"Slot {slot} outside 0..{self.slot_count - 1}")
        self._counts[slot] += 1

    def reset(self) -> None:
        """Start a new audit window."""
        self._counts[:] = 0
        self._window_started_at = datetime.now()
        self._bias_reported = False
        logger.info("bias_audit_window_reset")

    def chi_square(self) -> float:
        """Pearson chi-square statistic against a uniform slot distribution."""
        total = int(self._counts.sum())
        if total == 0:
            return 0.0
        expected = total / self.slot_count
        return float(np.sum((self._counts - expected) ** 2 / expected))

    def report(self) -> BiasAudit:
        """Summarize the current window.

        Bias is only flagged once the sample size reaches the configured
        minimum, so small windows never produce false positives.
        """
        total = int(self._counts.sum())
        chi_square = self.chi_square()
        max_share = float(self._counts.max() / total) if total else 0.0
        bias_detected = (
            total >= self.settings.bias_min_samples
            and chi_square > self.settings.bias_critical_value
        )

        if bias_detected and not self._bias_reported:
            logger.warning(
                "slot_bias_detected",
                slot_counts=self._counts.tolist(),
                chi_square=round(chi_square, 2),
            )
        self._bias_reported = bias_detected

        return BiasAudit(
            slot_counts=self._counts.tolist(),
            sample_size=total,
            chi_square=round(chi_square, 4),
            max_share=round(max_share, 4),
            bias_detected=bias_detected,
            window_started_at=self._window_started_at,
        )


def length_bias_score(question: Question) -> int:
    """Score (0-100) how much the correct option stands out by length.

    A correct answer that is the longest option is the strongest tell (100),
    the shortest is next (80), then second longest (60), third (40) and
    anything else (20). Options of identical length carry no signal (0).
    """
    lengths = np.array([len(option) for option in question.options])
    correct = lengths[question.correct_index]
    if lengths.max() == lengths.min():
        return 0
    if correct == lengths.max():
        return 100
    if correct == lengths.min():
        return 80
    position = int(np.sum(lengths > correct))
    return {1: 60, 2: 40}.get(position, 20)


def analyze_length_bias(
    questions: Sequence[Question],
    settings: Settings | None = None,
) -> LengthBiasReport:
    """Check a question bank for correct answers that are predictably long or short.

    Args:
        questions: Bank to audit.
        settings: Engine settings (defaults to the cached singleton).

    Returns:
        LengthBiasReport; bias is flagged once the bank is large enough and
        the correct answer is the longest (or shortest) option too often.
    """
    settings = settings or get_settings()
    total = len(questions)
    if total == 0:
        return LengthBiasReport()

    scores = np.array([length_bias_score(q) for q in questions])
    longest = int(np.sum(scores == 100))
    shortest = int(np.sum(scores == 80))
    longest_share = longest / total
    shortest_share = shortest / total
    bias_detected = (
        total >= settings.length_bias_min_questions
        and max(longest_share, shortest_share) > settings.length_bias_max_share
    )
    if bias_detected:
        logger.warning(
            "length_bias_detected",
            question_count=total,
            longest_share=round(longest_share, 3),
            shortest_share=round(shortest_share, 3),
        )

    return LengthBiasReport(
        question_count=total,
        longest_count=longest,
        shortest_count=shortest,
        longest_share=round(longest_share, 4),
        shortest_share=round(shortest_share, 4),
        mean_bias_score=round(float(scores.mean()), 2),
        severe_count=int(np.sum(scores > 70)),
        bias_detected=bias_detected,
    )
