"""
Game session engine for the trivia game.

One GameSession drives one player's game: it fetches a batch, presents the
questions one at a time under a countdown, scores answers and reports the
final score to the stats recorder.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from .config_manager import Settings
from .exceptions import FetchError, InvalidSessionStateError, NoQuestionsError
from .models import (
    AnswerState,
    ChangeNotifier,
    Difficulty,
    GameResult,
    GameStatus,
    Question,
    QuestionBatch,
)
from .question_source import QuestionSource
from .quiz_engine import (
    DEFAULT_BASE_POINTS,
    DEFAULT_TIME_BONUS_FACTOR,
    CountdownTimer,
    DelayedCall,
    TimerLifecycleLogger,
    calculate_points,
)
from .stats_recorder import StatsRecorder

DEFAULT_QUESTION_COUNT = 8
DEFAULT_ANSWER_FEEDBACK_DELAY = 1.5
DEFAULT_EXPIRY_FEEDBACK_DELAY = 2.0

# Events passed to listeners
SESSION_STARTED = "session_started"
QUESTION_STARTED = "question_started"
TICK = "tick"
ANSWERED = "answered"
EXPIRED = "expired"
SESSION_ENDED = "session_ended"
SESSION_ABANDONED = "session_abandoned"
SESSION_RESET = "session_reset"


@dataclass
class SessionState:
    """Mutable per-session state owned by a single GameSession."""
    status: GameStatus = GameStatus.IDLE
    questions: QuestionBatch = field(default_factory=tuple)
    difficulty: Optional[Difficulty] = None
    current_index: int = 0
    time_left: int = 0
    score: int = 0
    answer_state: AnswerState = AnswerState.UNANSWERED
    selected_answer: Optional[str] = None
    revealed_correct_answer: Optional[str] = None


@dataclass(frozen=True)
class SessionView:
    """Read-only projection of a session for the presentation layer."""
    status: GameStatus
    difficulty: Optional[str]
    question_text: Optional[str]
    options: Tuple[str, ...]
    question_number: int
    total_questions: int
    time_left: int
    timer_seconds: int
    answer_state: AnswerState
    selected_answer: Optional[str]
    revealed_correct_answer: Optional[str]
    score: int
    progress: float
    is_loading: bool
    last_result: Optional[GameResult] = None
    question_key: Optional[Tuple[int, int]] = None

    @property
    def is_correct(self) -> Optional[bool]:
        """Whether the resolved question was answered correctly, None while unanswered."""
        if self.answer_state is not AnswerState.ANSWERED:
            return None
        return self.selected_answer is not None and self.selected_answer == self.revealed_correct_answer


class GameSession(ChangeNotifier):
    """
    Drives a single player's game through idle -> playing -> ended.

    Listeners added with add_listener() are called as callback(event, view)
    after every committed transition.
    """

    def __init__(
        self,
        question_source: QuestionSource,
        settings: Settings,
        stats_recorder: Optional[StatsRecorder] = None,
        *,
        question_count: int = DEFAULT_QUESTION_COUNT,
        tick_interval: float = 1.0,
        answer_feedback_delay: float = DEFAULT_ANSWER_FEEDBACK_DELAY,
        expiry_feedback_delay: float = DEFAULT_EXPIRY_FEEDBACK_DELAY,
        base_points: int = DEFAULT_BASE_POINTS,
        time_bonus_factor: int = DEFAULT_TIME_BONUS_FACTOR,
        apply_multiplier: bool = True,
        session_id: str = "session"
    ):
        """
        Initialize the session engine.

        Args:
            question_source: Where question batches come from
            settings: Supplies timer seconds and score multiplier per difficulty
            stats_recorder: Receives the final score of every completed game
            question_count: Questions requested per game
            tick_interval: Seconds per countdown tick
            answer_feedback_delay: Pause after an answer before advancing
            expiry_feedback_delay: Pause after a timeout before advancing
            base_points: Points for any correct answer
            time_bonus_factor: Extra points per second left
            apply_multiplier: Scale earned points by the difficulty multiplier
            session_id: Label used in logs
        """
        super().__init__()
        self.logger = logging.getLogger(__name__)
        self.question_source = question_source
        self.settings = settings
        self.stats_recorder = stats_recorder
        self.question_count = question_count
        self.answer_feedback_delay = answer_feedback_delay
        self.expiry_feedback_delay = expiry_feedback_delay
        self.base_points = base_points
        self.time_bonus_factor = time_bonus_factor
        self.apply_multiplier = apply_multiplier
        self.session_id = session_id

        self.state = SessionState()
        self.last_result: Optional[GameResult] = None

        self._timer = CountdownTimer(name=f"{session_id}:question_timer", interval=tick_interval)
        self._advance = DelayedCall(name=f"{session_id}:advance_delay")

        # Bumped on every start request, reset and abandon; callbacks and
        # fetches carrying an older generation are ignored
        self._generation = 0
        self._pending_request: Optional[Tuple[int, Difficulty]] = None

    @property
    def tick_interval(self) -> float:
        return self._timer.interval

    @tick_interval.setter
    def tick_interval(self, value: float) -> None:
        self._timer.interval = value

    @property
    def status(self) -> GameStatus:
        return self.state.status

    @property
    def is_loading(self) -> bool:
        return self._pending_request is not None

    @property
    def current_question(self) -> Optional[Question]:
        if not self.state.questions or self.state.status is GameStatus.IDLE:
            return None
        return self.state.questions[self.state.current_index]

    @property
    def question_key(self) -> Optional[Tuple[int, int]]:
        """Identifies the question on screen; changes on every advance, start, reset and abandon."""
        if self.current_question is None:
            return None
        return (self._generation, self.state.current_index)

    @property
    def total_questions(self) -> int:
        return len(self.state.questions)

    @property
    def is_last_question(self) -> bool:
        return bool(self.state.questions) and self.state.current_index == len(self.state.questions) - 1

    @property
    def progress(self) -> float:
        """Percentage of questions passed, 0 with no batch."""
        total = self.total_questions
        return (self.state.current_index / total) * 100 if total else 0.0

    async def start_session(self, difficulty: Any = None) -> bool:
        """
        Fetch a batch and start playing.

        A game still in progress is abandoned first and an ended game is reset.

        Args:
            difficulty: Difficulty to play at; the current setting if None

        Returns:
            True if the game started, False if the fetched batch was discarded
            because a reset or a newer start happened while it was loading

        Raises:
            NoQuestionsError: If the source failed or returned no questions
        """
        if difficulty is None:
            chosen = self.settings.difficulty
        else:
            chosen = Difficulty.parse(difficulty)
            if chosen is None:
                raise ValueError(f"Unknown difficulty: {difficulty!r}")

        if self.state.status is GameStatus.PLAYING:
            self.logger.info(f"Session {self.session_id}: new game requested mid-game, abandoning current game")
            self.abandon()
        elif self.state.status is GameStatus.ENDED:
            self.reset()

        self._generation += 1
        request = (self._generation, chosen)
        self._pending_request = request
        self.logger.info(
            f"Session {self.session_id}: loading {self.question_count} {chosen.value} questions",
            extra={
                'event_type': 'session_loading',
                'session_id': self.session_id,
                'difficulty': chosen.value,
                'timestamp': time.time()
            }
        )

        try:
            batch = await self.question_source.fetch_batch(chosen, self.question_count)
        except FetchError as e:
            if self._pending_request != request:
                self.logger.info(f"Session {self.session_id}: ignoring failure of superseded fetch ({e})")
                return False
            self.logger.warning(f"Session {self.session_id}: could not load questions: {e}")
            raise NoQuestionsError(f"Could not load questions: {e}") from e
        finally:
            if self._pending_request == request:
                self._pending_request = None
            else:
                request = None

        if request is None:
            self.logger.info(
                f"Session {self.session_id}: discarding late question batch",
                extra={
                    'event_type': 'stale_fetch_discarded',
                    'session_id': self.session_id,
                    'timestamp': time.time()
                }
            )
            return False

        if not batch:
            self.logger.warning(f"Session {self.session_id}: question source returned an empty batch")
            raise NoQuestionsError("Question source returned no questions")

        self.state = SessionState(
            status=GameStatus.PLAYING,
            questions=tuple(batch),
            difficulty=chosen,
        )
        self.last_result = None
        self.logger.info(
            f"Session {self.session_id}: started with {len(batch)} questions at {chosen.value}",
            extra={
                'event_type': 'session_started',
                'session_id': self.session_id,
                'question_count': len(batch),
                'difficulty': chosen.value,
                'timestamp': time.time()
            }
        )
        self._notify(SESSION_STARTED, self.view())
        self._start_question()
        return True

    def submit_answer(self, answer: str, question_key: Optional[Tuple[int, int]] = None) -> bool:
        """
        Resolve the current question with the player's answer.

        Args:
            answer: The option the player picked
            question_key: The question_key the answer was given for; an answer
                for any other question is dropped

        Returns:
            True if the answer was accepted, False if the question was
            already resolved or is no longer on screen

        Raises:
            InvalidSessionStateError: If no game is being played
        """
        if self.state.status is not GameStatus.PLAYING:
            raise InvalidSessionStateError(
                f"Cannot submit an answer while the session is {self.state.status.value}"
            )

        if question_key is not None and question_key != self.question_key:
            self.logger.info(
                f"Session {self.session_id}: dropping answer for question {question_key}, "
                f"current question is {self.question_key}"
            )
            return False

        if self.state.answer_state is AnswerState.ANSWERED:
            TimerLifecycleLogger.log_race_condition(
                self._timer.name,
                "answer submitted after the question was resolved, ignoring"
            )
            return False

        self._timer.cancel()
        question = self.current_question
        self.state.answer_state = AnswerState.ANSWERED
        self.state.selected_answer = answer
        self.state.revealed_correct_answer = question.correct_answer

        if answer == question.correct_answer:
            multiplier = self.settings.score_multiplier(self.state.difficulty) if self.apply_multiplier else 1.0
            points = calculate_points(
                self.state.time_left,
                multiplier,
                self.base_points,
                self.time_bonus_factor
            )
            self.state.score += points
            self.logger.debug(
                f"Session {self.session_id}: correct answer with {self.state.time_left}s left, +{points} points"
            )
        else:
            self.logger.debug(f"Session {self.session_id}: incorrect answer")

        self._notify(ANSWERED, self.view())
        self._schedule_advance(self.answer_feedback_delay)
        return True

    def end_session(self) -> Optional[GameResult]:
        """
        Finish the game and report its score.

        Returns:
            The recorded GameResult, or None if no game was being played
        """
        if self.state.status is not GameStatus.PLAYING:
            return None

        self._timer.cancel()
        self._advance.cancel()
        self.state.status = GameStatus.ENDED
        difficulty = self.state.difficulty.value

        if self.stats_recorder is not None:
            self.last_result = self.stats_recorder.record_game(self.state.score, difficulty)
        else:
            self.last_result = GameResult.create(self.state.score, difficulty)

        self.logger.info(
            f"Session {self.session_id}: ended with score {self.state.score}",
            extra={
                'event_type': 'session_ended',
                'session_id': self.session_id,
                'score': self.state.score,
                'difficulty': difficulty,
                'timestamp': time.time()
            }
        )
        self._notify(SESSION_ENDED, self.view())
        return self.last_result

    def abandon(self) -> bool:
        """
        Drop the game in progress without recording it.

        Returns:
            True if a game or a pending fetch was abandoned
        """
        if self.state.status is not GameStatus.PLAYING and self._pending_request is None:
            return False

        self._cancel_pending()
        self.state = SessionState()
        self.logger.info(f"Session {self.session_id}: game abandoned")
        self._notify(SESSION_ABANDONED, self.view())
        return True

    def reset(self) -> None:
        """Return to idle from any state, cancelling everything pending."""
        self._cancel_pending()
        self.state = SessionState()
        self.last_result = None
        self.logger.debug(f"Session {self.session_id}: reset")
        self._notify(SESSION_RESET, self.view())

    def view(self) -> SessionView:
        """Build a read-only projection of the current state."""
        question = self.current_question
        difficulty = self.state.difficulty
        return SessionView(
            status=self.state.status,
            difficulty=difficulty.value if difficulty else None,
            question_text=question.text if question else None,
            options=question.options if question else (),
            question_number=self.state.current_index + 1 if question else 0,
            total_questions=self.total_questions,
            time_left=self.state.time_left,
            timer_seconds=self.settings.timer_seconds(difficulty) if difficulty else 0,
            answer_state=self.state.answer_state,
            selected_answer=self.state.selected_answer,
            revealed_correct_answer=self.state.revealed_correct_answer,
            score=self.state.score,
            progress=self.progress,
            is_loading=self.is_loading,
            last_result=self.last_result,
            question_key=self.question_key,
        )

    def _cancel_pending(self) -> None:
        self._generation += 1
        self._pending_request = None
        timer_cancelled = self._timer.cancel()
        delay_cancelled = self._advance.cancel()
        if timer_cancelled or delay_cancelled:
            TimerLifecycleLogger.log_state_transition(
                self._timer.name,
                "pending",
                "cancelled",
                f"timer cancelled: {timer_cancelled}, delay cancelled: {delay_cancelled}"
            )

    def _start_question(self) -> None:
        self.state.answer_state = AnswerState.UNANSWERED
        self.state.selected_answer = None
        self.state.revealed_correct_answer = None
        self.state.time_left = self.settings.timer_seconds(self.state.difficulty)

        generation = self._generation
        self._timer.start(
            self.state.time_left,
            lambda remaining: self._on_tick(generation, remaining),
            lambda: self._on_expired(generation)
        )
        self._notify(QUESTION_STARTED, self.view())

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation or self.state.status is not GameStatus.PLAYING

    def _on_tick(self, generation: int, remaining: int) -> None:
        if self._is_stale(generation) or self.state.answer_state is AnswerState.ANSWERED:
            return
        self.state.time_left = remaining
        self._notify(TICK, self.view())

    def _on_expired(self, generation: int) -> None:
        if self._is_stale(generation):
            return
        if self.state.answer_state is AnswerState.ANSWERED:
            TimerLifecycleLogger.log_race_condition(
                self._timer.name,
                "timer expired after the question was resolved, ignoring"
            )
            return

        self._timer.cancel()
        self.state.time_left = 0
        self.state.answer_state = AnswerState.ANSWERED
        self.state.selected_answer = None
        self.state.revealed_correct_answer = self.current_question.correct_answer
        self.logger.debug(f"Session {self.session_id}: time expired on question {self.state.current_index + 1}")
        self._notify(EXPIRED, self.view())
        self._schedule_advance(self.expiry_feedback_delay)

    def _schedule_advance(self, delay: float) -> None:
        generation = self._generation
        self._advance.schedule(delay, lambda: self._on_advance(generation))

    def _on_advance(self, generation: int) -> None:
        if self._is_stale(generation):
            return
        if self.is_last_question:
            self.end_session()
            return
        self.state.current_index += 1
        self._start_question()
