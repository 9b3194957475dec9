"""
Settings and application configuration for the trivia game.
"""
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ConfigError
from .models import (
    DEFAULT_DIFFICULTY,
    ChangeNotifier,
    Difficulty,
    SettingsParameters,
)


class Settings(ChangeNotifier):
    """
    Holds the player's difficulty and sound preferences.

    Every mutation is synchronous and never raises; listeners registered with
    add_listener() are called with the Settings instance after each change.
    """

    def __init__(self, parameters: Optional[SettingsParameters] = None):
        """Initialize Settings with the given parameters or the defaults."""
        super().__init__()
        self.logger = logging.getLogger(__name__)
        self._parameters = parameters or SettingsParameters()

    @property
    def difficulty(self) -> Difficulty:
        return self._parameters.difficulty

    @property
    def sound_enabled(self) -> bool:
        return self._parameters.sound_enabled

    @property
    def parameters(self) -> SettingsParameters:
        return self._parameters

    def set_difficulty(self, difficulty: Any) -> Dict[str, Any]:
        """
        Set the difficulty for the next games.

        Args:
            difficulty: A Difficulty or one of "easy", "medium", "hard"

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        parsed = Difficulty.parse(difficulty)
        if parsed is None:
            error_msg = f"Unknown difficulty: {difficulty!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Difficulty must be one of: easy, medium, hard"
            }

        self._parameters.difficulty = parsed
        self.logger.info(f"Difficulty set to {parsed.value}")
        self._notify(self)
        return {
            'success': True,
            'message': f"Difficulty set to {parsed.value}",
            'user_message': (
                f"✅ Difficulty set to **{parsed.value}** "
                f"({self.timer_seconds(parsed)}s per question, ×{self.score_multiplier(parsed):g} points)"
            )
        }

    def toggle_sound(self) -> Dict[str, Any]:
        """
        Toggle sound effects.

        Returns:
            Dictionary with success status, new value, and user-friendly message
        """
        self._parameters.sound_enabled = not self._parameters.sound_enabled
        state = "on" if self._parameters.sound_enabled else "off"
        self.logger.info(f"Sound turned {state}")
        self._notify(self)
        return {
            'success': True,
            'new_value': self._parameters.sound_enabled,
            'message': f"Sound turned {state}",
            'user_message': f"{'🔊' if self._parameters.sound_enabled else '🔇'} Sound turned {state}"
        }

    def reset_to_defaults(self) -> None:
        """Reset difficulty and sound to their default values."""
        self._parameters.difficulty = DEFAULT_DIFFICULTY
        self._parameters.sound_enabled = True
        self.logger.info("Settings reset to default values")
        self._notify(self)

    def timer_seconds(self, difficulty: Optional[Difficulty] = None) -> int:
        """Seconds allowed per question at the given (or current) difficulty."""
        key = Difficulty.parse(difficulty) or self._parameters.difficulty
        return self._parameters.timer_seconds_by_difficulty[key]

    def score_multiplier(self, difficulty: Optional[Difficulty] = None) -> float:
        """Score multiplier at the given (or current) difficulty."""
        key = Difficulty.parse(difficulty) or self._parameters.difficulty
        return self._parameters.score_multiplier_by_difficulty[key]

    def to_snapshot(self) -> Dict[str, Any]:
        """Key-value snapshot suitable for persistence."""
        return {
            'difficulty': self._parameters.difficulty.value,
            'sound_enabled': self._parameters.sound_enabled,
        }

    @classmethod
    def from_snapshot(cls, data: Any) -> "Settings":
        """
        Rebuild Settings from a persisted snapshot.

        Unknown keys are ignored; missing or invalid keys take their defaults.
        """
        parameters = SettingsParameters()
        if isinstance(data, dict):
            difficulty = Difficulty.parse(data.get('difficulty'))
            if difficulty is not None:
                parameters.difficulty = difficulty
            if isinstance(data.get('sound_enabled'), bool):
                parameters.sound_enabled = data['sound_enabled']
        return cls(parameters)

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        difficulty = self._parameters.difficulty
        return (
            f"Game Settings:\n"
            f"• Difficulty: {difficulty.value}\n"
            f"• Timer: {self.timer_seconds(difficulty)} seconds\n"
            f"• Points multiplier: ×{self.score_multiplier(difficulty):g}\n"
            f"• Sound: {'on' if self._parameters.sound_enabled else 'off'}"
        )


@dataclass
class AppConfig:
    """Application configuration loaded from config.json."""
    token: Optional[str] = None
    command_prefix: str = "!"
    log_level: str = "INFO"
    log_directory: str = "./logs/"
    api_url: str = "https://opentdb.com/api.php"
    questions_per_game: int = 8
    request_timeout: float = 10.0
    tick_interval: float = 1.0
    answer_feedback_delay: float = 1.5
    expiry_feedback_delay: float = 2.0
    use_fallback_questions: bool = False
    data_directory: str = "./data/"

    # Validation limits
    MIN_QUESTIONS = 1
    MAX_QUESTIONS = 50

    @staticmethod
    def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"{name} must be a JSON object, got {type(section).__name__}")
        return section

    @staticmethod
    def _seconds(section: Dict[str, Any], key: str, default: float) -> float:
        value = section.get(key, default)
        if isinstance(value, bool):
            raise ConfigError(f"quiz.{key} must be a number of seconds, got {value!r}")
        try:
            seconds = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"quiz.{key} must be a number of seconds, got {value!r}") from e
        if seconds < 0:
            raise ConfigError(f"quiz.{key} must not be negative, got {value!r}")
        return seconds

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Build a config from parsed JSON; missing keys take their defaults."""
        defaults = cls()
        bot = cls._section(data, 'bot')
        log = cls._section(data, 'logging')
        quiz = cls._section(data, 'quiz')

        questions = quiz.get('questions_per_game', defaults.questions_per_game)
        if not isinstance(questions, int) or not cls.MIN_QUESTIONS <= questions <= cls.MAX_QUESTIONS:
            raise ConfigError(
                f"quiz.questions_per_game must be an integer between "
                f"{cls.MIN_QUESTIONS} and {cls.MAX_QUESTIONS}, got {questions!r}"
            )

        token = bot.get('token')
        if token == "YOUR_DISCORD_BOT_TOKEN_HERE":
            token = None

        return cls(
            token=token,
            command_prefix=bot.get('command_prefix', defaults.command_prefix),
            log_level=str(log.get('level', defaults.log_level)).upper(),
            log_directory=log.get('log_directory', defaults.log_directory),
            api_url=quiz.get('api_url', defaults.api_url),
            questions_per_game=questions,
            request_timeout=cls._seconds(quiz, 'request_timeout', defaults.request_timeout),
            tick_interval=cls._seconds(quiz, 'tick_interval', defaults.tick_interval),
            answer_feedback_delay=cls._seconds(quiz, 'answer_feedback_delay', defaults.answer_feedback_delay),
            expiry_feedback_delay=cls._seconds(quiz, 'expiry_feedback_delay', defaults.expiry_feedback_delay),
            use_fallback_questions=bool(quiz.get('use_fallback_questions', defaults.use_fallback_questions)),
            data_directory=quiz.get('data_directory', defaults.data_directory),
        )


def load_app_config(path: str = "config.json") -> AppConfig:
    """
    Load configuration from a JSON file.

    The DISCORD_BOT_TOKEN environment variable takes precedence over the
    token stored in the file.

    Raises:
        ConfigError: If the file is missing, unreadable or not valid JSON
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"{config_path} not found")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    config = AppConfig.from_dict(data)
    env_token = os.getenv('DISCORD_BOT_TOKEN')
    if env_token:
        config.token = env_token
    return config
