"""
Core data models for the trivia game.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Difficulty(str, Enum):
    """Question difficulty as understood by the question provider."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def parse(cls, value: Any) -> Optional["Difficulty"]:
        """Return the matching difficulty, or None for anything unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None


class GameStatus(str, Enum):
    """Lifecycle states of a game session."""
    IDLE = "idle"
    PLAYING = "playing"
    ENDED = "ended"


class AnswerState(str, Enum):
    """Whether the current question has been resolved."""
    UNANSWERED = "unanswered"
    ANSWERED = "answered"


@dataclass(frozen=True)
class Question:
    """A single multiple-choice question with its options fixed at ingestion."""
    text: str
    correct_answer: str
    options: Tuple[str, ...]
    category: Optional[str] = None
    difficulty: Optional[str] = None


QuestionBatch = Tuple[Question, ...]


@dataclass(frozen=True)
class GameResult:
    """Outcome of one completed game."""
    score: int
    difficulty: str
    timestamp: str

    @classmethod
    def create(cls, score: int, difficulty: str) -> "GameResult":
        return cls(
            score=score,
            difficulty=difficulty,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'difficulty': self.difficulty,
            'timestamp': self.timestamp,
        }


DEFAULT_DIFFICULTY = Difficulty.MEDIUM

# Per-difficulty policy table
DEFAULT_TIMER_SECONDS: Dict[Difficulty, int] = {
    Difficulty.EASY: 8,
    Difficulty.MEDIUM: 6,
    Difficulty.HARD: 4,
}

DEFAULT_SCORE_MULTIPLIERS: Dict[Difficulty, float] = {
    Difficulty.EASY: 1.0,
    Difficulty.MEDIUM: 1.5,
    Difficulty.HARD: 2.0,
}


@dataclass
class SettingsParameters:
    """User-adjustable game settings."""
    difficulty: Difficulty = DEFAULT_DIFFICULTY
    sound_enabled: bool = True
    timer_seconds_by_difficulty: Dict[Difficulty, int] = field(
        default_factory=lambda: dict(DEFAULT_TIMER_SECONDS)
    )
    score_multiplier_by_difficulty: Dict[Difficulty, float] = field(
        default_factory=lambda: dict(DEFAULT_SCORE_MULTIPLIERS)
    )


@dataclass
class StatsAggregate:
    """Persistent statistics over all completed games."""
    high_score: int = 0
    games_played: int = 0
    history: List[GameResult] = field(default_factory=list)


class ChangeNotifier:
    """Mixin that lets observers react after a committed mutation."""

    def __init__(self) -> None:
        self._listeners: List[Callable[..., Any]] = []

    def add_listener(self, callback: Callable[..., Any]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[..., Any]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, *args: Any) -> None:
        for callback in list(self._listeners):
            try:
                callback(*args)
            except Exception:
                # Observers must never break the state they observe
                logger.exception(f"Listener {callback!r} failed on {type(self).__name__} change")
