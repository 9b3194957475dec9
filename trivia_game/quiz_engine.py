"""
Timing and scoring primitives for the trivia game.
Handles the per-question countdown, the feedback delay and the scoring rule.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

# Set up logger for timer operations
logger = logging.getLogger(__name__)

DEFAULT_BASE_POINTS = 100
DEFAULT_TIME_BONUS_FACTOR = 10


class TimerLifecycleLogger:
    """Structured logging for countdown and delay lifecycle events."""

    @staticmethod
    def _log(level: int, event_type: str, timer_name: str, message: str, **fields: Any) -> None:
        logger.log(
            level,
            f"Timer lifecycle: {timer_name}: {message}",
            extra={'event_type': event_type, 'timer_name': timer_name, 'timestamp': time.time(), **fields}
        )

    @classmethod
    def log_countdown_started(cls, timer_name: str, duration: int, interval: float) -> None:
        cls._log(
            logging.DEBUG, 'timer_countdown_start', timer_name,
            f"countdown of {duration} ticks every {interval}s started",
            duration=duration, interval=interval
        )

    @classmethod
    def log_countdown_finished(cls, timer_name: str, outcome: str, remaining: int, duration: int) -> None:
        """Log how a countdown ended: expired, stopped or cancelled."""
        cls._log(
            logging.DEBUG, 'timer_completed', timer_name,
            f"countdown {outcome} with {remaining}/{duration} ticks left",
            outcome=outcome, remaining=remaining, duration=duration
        )

    @classmethod
    def log_state_transition(cls, timer_name: str, from_state: str, to_state: str, reason: str = None) -> None:
        cls._log(
            logging.DEBUG, 'timer_state_transition', timer_name,
            f"{from_state} -> {to_state}" + (f" ({reason})" if reason else ""),
            from_state=from_state, to_state=to_state, reason=reason
        )

    @classmethod
    def log_callback_error(cls, timer_name: str, operation: str, error: Exception) -> None:
        cls._log(
            logging.ERROR, 'timer_error', timer_name,
            f"{operation} failed with {type(error).__name__}: {error}",
            operation=operation, error_type=type(error).__name__, error_message=str(error)
        )

    @classmethod
    def log_race_condition(cls, timer_name: str, details: str) -> None:
        cls._log(logging.INFO, 'timer_race_condition', timer_name, details, details=details)


def _cancel_task(task: Optional[asyncio.Task]) -> bool:
    """Cancel a task unless it already finished or is the one running now."""
    if task is None or task.done():
        return False
    try:
        current = asyncio.current_task()
    except RuntimeError:
        # Called outside a running loop, e.g. from synchronous shutdown code
        current = None
    if task is current:
        return False
    task.cancel()
    return True


class CountdownTimer:
    """
    A single per-question countdown.

    Ticks are scheduled against absolute deadlines measured from the start of
    the countdown, so a slow callback never shifts later ticks. Every start
    gets its own run token; cancel() drops the token, so a countdown stopped
    from inside its own tick callback never ticks or expires again.
    """

    def __init__(self, name: str = "question_timer", interval: float = 1.0):
        """
        Initialize the timer.

        Args:
            name: Label used in lifecycle logs
            interval: Seconds per tick
        """
        self.name = name
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._run_token: Optional[object] = None
        self._remaining_time = 0
        self._total_duration = 0

    def start(
        self,
        duration: int,
        tick_callback: Callable[[int], Any],
        expiry_callback: Callable[[], Any]
    ) -> None:
        """
        Start a countdown, replacing any countdown still running.

        Args:
            duration: Number of ticks before expiry
            tick_callback: Called after every tick with the remaining ticks
            expiry_callback: Called once when the countdown reaches zero
        """
        if self.cancel():
            TimerLifecycleLogger.log_state_transition(self.name, "running", "replaced", "new countdown started")

        token = object()
        self._run_token = token
        self._remaining_time = duration
        self._total_duration = duration
        self._task = asyncio.get_running_loop().create_task(
            self._run(token, duration, tick_callback, expiry_callback)
        )

    async def _run(
        self,
        token: object,
        duration: int,
        tick_callback: Callable[[int], Any],
        expiry_callback: Callable[[], Any]
    ) -> None:
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        ticks = 0

        TimerLifecycleLogger.log_countdown_started(self.name, duration, self.interval)

        try:
            while self._remaining_time > 0:
                ticks += 1
                deadline = started_at + ticks * self.interval
                await asyncio.sleep(max(0.0, deadline - loop.time()))
                self._remaining_time -= 1
                tick_callback(self._remaining_time)

                if self._run_token is not token:
                    TimerLifecycleLogger.log_countdown_finished(
                        self.name, "stopped", self._remaining_time, duration
                    )
                    return

            TimerLifecycleLogger.log_countdown_finished(self.name, "expired", 0, duration)
            self._run_token = None
            expiry_callback()

        except asyncio.CancelledError:
            TimerLifecycleLogger.log_countdown_finished(self.name, "cancelled", self._remaining_time, duration)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_callback_error(self.name, "countdown", e)
            raise

    def cancel(self) -> bool:
        """
        Stop the countdown, including from inside its own callbacks.

        Returns:
            True if a running countdown was stopped, False otherwise
        """
        was_running = self.is_running
        self._run_token = None
        _cancel_task(self._task)
        return was_running

    @property
    def is_running(self) -> bool:
        return self._run_token is not None and self._task is not None and not self._task.done()

    @property
    def remaining_time(self) -> int:
        """Get remaining ticks."""
        return self._remaining_time


class DelayedCall:
    """A single cancellable callback scheduled after a delay."""

    def __init__(self, name: str = "feedback_delay"):
        self.name = name
        self._task: Optional[asyncio.Task] = None

    def schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        """
        Schedule callback after delay seconds, replacing any pending call.

        Args:
            delay: Seconds to wait
            callback: Called once when the delay elapses
        """
        if self.cancel():
            TimerLifecycleLogger.log_state_transition(self.name, "pending", "replaced", "new delay scheduled")
        self._task = asyncio.get_running_loop().create_task(self._run(delay, callback))

    async def _run(self, delay: float, callback: Callable[[], Any]) -> None:
        await asyncio.sleep(delay)
        try:
            callback()
        except Exception as e:
            TimerLifecycleLogger.log_callback_error(self.name, "delayed callback", e)
            raise

    def cancel(self) -> bool:
        """
        Cancel the pending call.

        Returns:
            True if a pending call was cancelled, False otherwise
        """
        return _cancel_task(self._task)

    @property
    def is_pending(self) -> bool:
        return self._task is not None and not self._task.done()


def calculate_points(
    time_left: int,
    multiplier: float = 1.0,
    base_points: int = DEFAULT_BASE_POINTS,
    time_bonus_factor: int = DEFAULT_TIME_BONUS_FACTOR
) -> int:
    """
    Points earned by a correct answer.

    Args:
        time_left: Seconds remaining when the answer was submitted
        multiplier: Difficulty multiplier
        base_points: Points for any correct answer
        time_bonus_factor: Extra points per remaining second

    Returns:
        Points rounded to an integer
    """
    return int(round((base_points + max(time_left, 0) * time_bonus_factor) * multiplier))
