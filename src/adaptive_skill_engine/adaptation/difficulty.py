"""Difficulty adaptation from flow state and rating trend."""

from datetime import datetime, timedelta

import structlog

from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.models.flow import DifficultyLevel, FlowState
from adaptive_skill_engine.models.performance import Trend

logger = structlog.get_logger()


def derive_trend(deltas: list[int], window: int = 3, threshold: float = 10.0) -> Trend:
    """Classify the net movement of the last few rating deltas.

    Args:
        deltas: Rating deltas, oldest first.
        window: Number of trailing deltas considered.
        threshold: Net change needed to call a direction.

    Returns:
        Trend; STABLE when fewer than two deltas are available.
    """
    recent = deltas[-window:]
    if len(recent) < 2:
        return Trend.STABLE
    net = sum(recent)
    if net >= threshold:
        return Trend.IMPROVING
    if net <= -threshold:
        return Trend.DECLINING
    return Trend.STABLE


class DifficultyAdapter:
    """Moves difficulty one step at a time on converging evidence.

    A step up needs in-flow plus an improving rating; a step down needs a
    flow score below the exit threshold plus a declining rating. After any
    change the level is locked for a cooldown period to avoid thrashing.

    Args:
        settings: Engine settings (defaults to the cached singleton).
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.cooldown = timedelta(seconds=self.settings.difficulty_cooldown_seconds)

    def next(
        self,
        current: DifficultyLevel,
        flow: FlowState,
        trend: Trend,
        now: datetime | None = None,
    ) -> DifficultyLevel:
        """Decide the difficulty for the next question.

        Args:
            current: Current level and cooldown.
            flow: Latest flow state.
            trend: Rating trend for the same user/category.
            now: Decision time (defaults to the current time).

        Returns:
            The new DifficultyLevel, or ``current`` when nothing changes.
        """
        now = now or datetime.now()

        if current.in_cooldown(now):
            return current

        if flow.in_flow and trend == Trend.IMPROVING:
            target = current.level.step_up()
        elif (
            not flow.in_flow
            and flow.flow_score < self.settings.flow_exit_threshold
            and trend == Trend.DECLINING
        ):
            target = current.level.step_down()
        else:
            return current

        # Already at the boundary
        if target == current.level:
            return current

        logger.info(
            "difficulty_changed",
            old_level=current.level.value,
            new_level=target.value,
            flow_score=flow.flow_score,
            trend=trend.value,
        )
        return DifficultyLevel(level=target, cooldown_until=now + self.cooldown)
