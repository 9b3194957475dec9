"""
Statistics over completed games.
"""
import logging
from typing import Any, Dict, Optional

from .models import ChangeNotifier, GameResult, StatsAggregate

logger = logging.getLogger(__name__)


class StatsRecorder(ChangeNotifier):
    """Records game results and derives aggregates from the history."""

    def __init__(self, aggregate: Optional[StatsAggregate] = None):
        super().__init__()
        self._aggregate = aggregate or StatsAggregate()

    @property
    def high_score(self) -> int:
        return self._aggregate.high_score

    @property
    def games_played(self) -> int:
        return self._aggregate.games_played

    @property
    def history(self) -> tuple:
        return tuple(self._aggregate.history)

    def record_game(self, score: int, difficulty: str) -> GameResult:
        """
        Append a result stamped with the current time.

        Args:
            score: Final score of the game
            difficulty: Difficulty the game was played at

        Returns:
            The recorded GameResult
        """
        result = GameResult.create(score, difficulty)
        self._aggregate.history.append(result)
        self._aggregate.games_played += 1
        self._aggregate.high_score = max(self._aggregate.high_score, score)
        logger.info(f"Recorded game: score={score}, difficulty={difficulty}, games played={self.games_played}")
        self._notify(self)
        return result

    def clear_stats(self) -> None:
        """Reset all statistics."""
        self._aggregate = StatsAggregate()
        logger.info("Statistics cleared")
        self._notify(self)

    @property
    def average_score(self) -> int:
        """Rounded mean score, 0 when no games have been played."""
        if not self._aggregate.history:
            return 0
        total = sum(result.score for result in self._aggregate.history)
        return round(total / len(self._aggregate.history))

    @property
    def best_game(self) -> Optional[GameResult]:
        """Highest scoring game (earliest on ties), or None with no history."""
        best = None
        for result in self._aggregate.history:
            if best is None or result.score > best.score:
                best = result
        return best

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            'high_score': self._aggregate.high_score,
            'games_played': self._aggregate.games_played,
            'history': [result.to_dict() for result in self._aggregate.history],
        }

    @classmethod
    def from_snapshot(cls, data: Any) -> "StatsRecorder":
        """
        Rebuild a recorder from a persisted snapshot.

        Unknown keys are ignored and malformed history entries are skipped.
        """
        aggregate = StatsAggregate()
        if not isinstance(data, dict):
            return cls(aggregate)

        for entry in data.get('history', []) if isinstance(data.get('history'), list) else []:
            if (isinstance(entry, dict)
                    and isinstance(entry.get('score'), int)
                    and isinstance(entry.get('difficulty'), str)
                    and isinstance(entry.get('timestamp'), str)):
                aggregate.history.append(GameResult(
                    score=entry['score'],
                    difficulty=entry['difficulty'],
                    timestamp=entry['timestamp'],
                ))
            else:
                logger.warning(f"Skipping malformed history entry: {entry!r}")

        games_played = data.get('games_played')
        aggregate.games_played = max(
            games_played if isinstance(games_played, int) else 0,
            len(aggregate.history)
        )
        high_score = data.get('high_score')
        history_best = max((r.score for r in aggregate.history), default=0)
        aggregate.high_score = max(high_score if isinstance(high_score, int) else 0, history_best)
        return cls(aggregate)
