"""Flow-state detection over a trailing window of performance samples."""

from collections.abc import Sequence
from datetime import datetime

import numpy as np
import structlog

from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.models.flow import FlowState
from adaptive_skill_engine.models.performance import PerformanceSample

logger = structlog.get_logger()


class FlowDetector:
    """Derives a 0-100 flow score and a hysteretic in-flow flag.

    The score blends accuracy, pacing and streak over the last N samples.
    Entering flow needs score >= enter threshold and a minimum number of
    samples; leaving it needs score < exit threshold. Anything in between
    keeps the previous classification.

    Args:
        settings: Engine settings (defaults to the cached singleton).
        window_size: Trailing sample count, overrides settings.flow_window.
    """

    def __init__(self, settings: Settings | None = None, window_size: int | None = None):
        self.settings = settings or get_settings()
        self.window_size = window_size or self.settings.flow_window

    def speed_scores(self, samples: Sequence[PerformanceSample]) -> np.ndarray:
        """Per-sample pacing score (0-1).

        Too-fast answers (button mashing) and too-slow answers both score
        low; anything inside the target band scores 1. Skips score 0.
        """
        s = self.settings
        times = np.array([sample.response_time_ms for sample in samples], dtype=float)
        scores = np.interp(
            times,
            [s.too_fast_ms, s.target_min_ms, s.target_max_ms, s.slow_limit_ms],
            [0.0, 1.0, 1.0, 0.0],
        )
        skipped = np.array([sample.is_skip for sample in samples], dtype=bool)
        scores[skipped] = 0.0
        return scores

    def score(self, window: Sequence[PerformanceSample]) -> tuple[float, float, float, float]:
        """Compute the flow score and its normalized parts.

        Args:
            window: Samples, oldest first. Only the trailing N are used.

        Returns:
            (flow_score, accuracy, speed, streak).
        """
        samples = list(window)[-self.window_size:]
        if not samples:
            return 0.0, 0.0, 0.0, 0.0

        s = self.settings
        accuracy = float(np.mean([sample.correct for sample in samples]))
        speed = float(np.mean(self.speed_scores(samples)))
        streak = min(samples[-1].streak_at_answer, s.streak_cap) / s.streak_cap

        flow_score = 100.0 * (
            s.flow_weight_accuracy * accuracy
            + s.flow_weight_speed * speed
            + s.flow_weight_streak * streak
        )
        return round(min(100.0, max(0.0, flow_score)), 1), accuracy, speed, streak

    def classify(self, flow_score: float, was_in_flow: bool, sample_count: int) -> bool:
        """Apply enter/exit hysteresis to a score."""
        s = self.settings
        if flow_score >= s.flow_enter_threshold and sample_count >= s.flow_min_samples:
            return True
        if flow_score < s.flow_exit_threshold:
            return False
        return was_in_flow

    def update(
        self,
        window: Sequence[PerformanceSample],
        previous: FlowState | None = None,
        now: datetime | None = None,
    ) -> FlowState:
        """Recompute flow state from the trailing window.

        Args:
            window: Recent samples, oldest first.
            previous: Prior state, used only for hysteresis.
            now: Timestamp for the new state.

        Returns:
            New FlowState.
        """
        samples = list(window)[-self.window_size:]
        flow_score, accuracy, speed, streak = self.score(samples)
        was_in_flow = previous.in_flow if previous is not None else False
        in_flow = self.classify(flow_score, was_in_flow, len(samples))

        if in_flow != was_in_flow:
            logger.info(
                "flow_state_changed",
                in_flow=in_flow,
                flow_score=flow_score,
                sample_count=len(samples),
            )

        return FlowState(
            flow_score=flow_score,
            in_flow=in_flow,
            updated_at=now or datetime.now(),
            sample_count=len(samples),
            accuracy=round(accuracy, 3),
            speed=round(speed, 3),
            streak=round(streak, 3),
        )
