"""In-memory keyed rating collection owned by the host."""

import threading
from collections import defaultdict, deque

import structlog

from adaptive_skill_engine.adaptation.difficulty import derive_trend
from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.models.performance import PerformanceSample, Trend
from adaptive_skill_engine.models.rating import (
    OverallRating,
    PlayerStats,
    Rating,
    RatingChange,
    RatingHistoryEntry,
)

logger = structlog.get_logger()


class RatingStore:
    """Holds one Rating per (user, category), recent deltas, a per-user
    rating log and win/loss tallies.

    Ratings coming in from outside (``put``/``load``) are clamped to the
    configured bounds.

    Args:
        settings: Engine settings (defaults to the cached singleton).
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._lock = threading.Lock()
        self._ratings: dict[tuple[str, str], Rating] = {}
        self._deltas: dict[tuple[str, str], deque[int]] = defaultdict(
            lambda: deque(maxlen=self.settings.rating_history_size)
        )
        self._log: dict[str, deque[RatingHistoryEntry]] = defaultdict(
            lambda: deque(maxlen=self.settings.rating_log_size)
        )
        self._stats: dict[str, PlayerStats] = {}

    def _clamped(self, rating: Rating) -> Rating:
        low, high = self.settings.rating_min, self.settings.rating_max
        if low <= rating.value <= high and (rating.peak_value or 0) <= high:
            return rating
        value = max(low, min(high, rating.value))
        logger.warning(
            "rating_clamped",
            category=rating.category,
            value=rating.value,
            clamped=value,
        )
        return Rating(
            category=rating.category,
            value=value,
            games_played=rating.games_played,
            last_updated=rating.last_updated,
            peak_value=max(value, min(high, rating.peak_value or value)),
        )

    def get(self, user_id: str, category: str) -> Rating:
        """Stored rating, or a fresh default that is not stored yet."""
        rating = self._ratings.get((user_id, category))
        if rating is None:
            return Rating(category=category, value=self.settings.rating_default)
        return rating

    def put(self, user_id: str, rating: Rating) -> Rating:
        """Store a rating from outside the engine, clamped to bounds."""
        rating = self._clamped(rating)
        with self._lock:
            self._ratings[(user_id, rating.category)] = rating
        return rating

    def load(
        self,
        user_id: str,
        ratings: list[Rating],
        stats: PlayerStats | None = None,
    ) -> None:
        """Seed a user's ratings (and tallies) from the profile-storage collaborator."""
        ratings = [self._clamped(rating) for rating in ratings]
        with self._lock:
            for rating in ratings:
                self._ratings[(user_id, rating.category)] = rating
            if stats is not None:
                self._stats[user_id] = stats

    def record(self, user_id: str, sample: PerformanceSample, change: RatingChange) -> PlayerStats:
        """Commit one applied update: rating, delta, log entry and tallies.

        Returns:
            The user's tallies after this answer.
        """
        rating = change.rating
        entry = RatingHistoryEntry(
            category=rating.category,
            rating=rating.value,
            change=change.delta,
            correct=sample.correct,
            difficulty=sample.difficulty,
            timestamp=sample.timestamp,
        )
        with self._lock:
            self._ratings[(user_id, rating.category)] = rating
            self._deltas[(user_id, rating.category)].append(change.delta)
            self._log[user_id].append(entry)
            stats = self._stats.get(user_id, PlayerStats()).after(sample.correct)
            self._stats[user_id] = stats
        return stats

    def forget(self, user_id: str) -> None:
        """Drop everything held for a user."""
        with self._lock:
            for key in [k for k in self._ratings if k[0] == user_id]:
                del self._ratings[key]
            for key in [k for k in self._deltas if k[0] == user_id]:
                del self._deltas[key]
            self._log.pop(user_id, None)
            self._stats.pop(user_id, None)

    def ratings(self, user_id: str) -> dict[str, Rating]:
        with self._lock:
            return {
                category: rating
                for (uid, category), rating in self._ratings.items()
                if uid == user_id
            }

    def overall(self, user_id: str) -> OverallRating:
        """Mean of played category ratings; unplayed categories are excluded."""
        played = [r.value for r in self.ratings(user_id).values() if r.games_played > 0]
        if not played:
            return OverallRating(value=self.settings.rating_default, categories_played=0)
        return OverallRating(
            value=round(sum(played) / len(played)),
            categories_played=len(played),
        )

    def stats(self, user_id: str) -> PlayerStats:
        with self._lock:
            return self._stats.get(user_id, PlayerStats())

    def history(self, user_id: str, category: str | None = None) -> list[RatingHistoryEntry]:
        """Rating log, oldest first, optionally for one category."""
        with self._lock:
            entries = list(self._log.get(user_id, ()))
        if category is not None:
            entries = [e for e in entries if e.category == category]
        return entries

    def recent_deltas(self, user_id: str, category: str) -> list[int]:
        key = (user_id, category)
        with self._lock:
            if key not in self._deltas:
                return []
            return list(self._deltas[key])

    def trend(self, user_id: str, category: str, pending_delta: int | None = None) -> Trend:
        """Rating trend, optionally as if ``pending_delta`` were already recorded."""
        deltas = self.recent_deltas(user_id, category)
        if pending_delta is not None:
            deltas = (deltas + [pending_delta])[-self.settings.rating_history_size:]
        return derive_trend(
            deltas,
            window=self.settings.trend_window,
            threshold=self.settings.trend_threshold,
        )
