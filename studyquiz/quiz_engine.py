"""
Timed quiz engine for the Study Quiz Bot.
Drives one question at a time under a countdown, locks in a single answer per
question, scores it and advances to the next question or the final result.
"""
import asyncio
import dataclasses
import inspect
import logging
import time
from typing import Any, Callable, List, Optional, Sequence

from .errors import EmptyQuizError, InvalidOptionError
from .models import (
    NO_ANSWER,
    QuizPhase,
    QuizQuestion,
    QuizResult,
    QuizSettings,
    QuizSnapshot,
    RunState,
)

# Set up logger for timer operations
logger = logging.getLogger(__name__)

Listener = Callable[[QuizSnapshot], Any]


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_countdown_start(session_id: str, duration: int) -> None:
        """Log timer countdown start."""
        logger.debug(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}, Duration {duration}s",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, remaining: int) -> None:
        """Log how a countdown ended (natural_expiry, cancelled, asyncio_cancelled)."""
        logger.debug(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Remaining {remaining}s",
            extra={
                'event_type': 'timer_completion',
                'session_id': session_id,
                'completion_type': completion_type,
                'remaining': remaining,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_delay_scheduled(session_id: str, kind: str, delay: float) -> None:
        """Log a hold or settle delay being scheduled."""
        logger.debug(
            f"Timer lifecycle: DELAY_SCHEDULED - Session {session_id}, {kind} {delay:.2f}s",
            extra={
                'event_type': 'timer_delay_scheduled',
                'session_id': session_id,
                'kind': kind,
                'delay': delay,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_state_transition(session_id: str, from_state: str, to_state: str, reason: str) -> None:
        """Log quiz phase transitions."""
        logger.info(
            f"Quiz lifecycle: {from_state} -> {to_state} - Session {session_id} ({reason})",
            extra={
                'event_type': 'quiz_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(session_id: str, details: str) -> None:
        """Log a stale callback that arrived after its phase ended."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Session {session_id}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'session_id': session_id,
                'details': details,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """Cancellable per-question countdown."""

    def __init__(self, session_id: str = None, tick_interval: float = 1.0):
        """Initialize the timer."""
        self._task: Optional[asyncio.Task] = None
        self._remaining_time = 0
        self._total_duration = 0
        self._is_cancelled = False
        self._session_id = session_id
        self._tick_interval = tick_interval

    def start(
        self,
        duration: int,
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> asyncio.Task:
        """Run the countdown as a background task on the current loop."""
        self._task = asyncio.get_running_loop().create_task(
            self.start_countdown(duration, update_callback, completion_callback)
        )
        return self._task

    async def start_countdown(
        self,
        duration: int,
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> None:
        """
        Count down from duration, one tick at a time.

        Args:
            duration: Seconds to count down from
            update_callback: Called after every tick with the seconds left (while > 0)
            completion_callback: Called once when the countdown reaches zero
        """
        self._remaining_time = duration
        self._total_duration = duration
        self._is_cancelled = False

        TimerLifecycleLogger.log_countdown_start(self._session_id, duration)

        try:
            while self._remaining_time > 0 and not self._is_cancelled:
                await asyncio.sleep(self._tick_interval)
                if self._is_cancelled:
                    break
                self._remaining_time -= 1
                if self._remaining_time > 0:
                    update_callback(self._remaining_time)

            if self._is_cancelled:
                TimerLifecycleLogger.log_timer_completion(
                    self._session_id, "cancelled", self._remaining_time
                )
            else:
                TimerLifecycleLogger.log_timer_completion(
                    self._session_id, "natural_expiry", self._remaining_time
                )
                completion_callback()

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(
                self._session_id, "asyncio_cancelled", self._remaining_time
            )
            raise

    def cancel(self) -> None:
        """Cancel the countdown; callbacks never fire after this returns."""
        self._is_cancelled = True
        if self._task and not self._task.done() and self._task is not _current_task():
            self._task.cancel()

    @property
    def is_cancelled(self) -> bool:
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        """Whether the countdown task is still ticking."""
        return (
            self._task is not None
            and not self._task.done()
            and not self._is_cancelled
        )

    @property
    def remaining_time(self) -> int:
        return self._remaining_time


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class TimedQuizEngine:
    """
    Single-session timed quiz state machine.

    Phases: NOT_STARTED -> RUNNING -> AWAITING_ADVANCE -> RUNNING ... -> FINISHED.
    All delays (countdown ticks, answer hold, settle pause) are engine-owned
    handles that are cancelled on every transition, so at most one transition
    out of RUNNING happens per question and at most one advance is pending.

    Must be driven from inside a running asyncio event loop.
    """

    def __init__(
        self,
        questions: Sequence[QuizQuestion],
        settings: Optional[QuizSettings] = None,
        session_id: Optional[str] = None
    ):
        """
        Initialize the engine.

        Args:
            questions: Ordered, non-empty question set, fixed for the engine's lifetime
            settings: Timing settings, defaults to 15 seconds per question
            session_id: Identifier used in log records

        Raises:
            EmptyQuizError: If no questions are supplied
            ValueError: If seconds_per_question is not a positive integer
        """
        if not questions:
            raise EmptyQuizError("Cannot run a quiz without questions")

        settings = settings or QuizSettings()
        if (not isinstance(settings.seconds_per_question, int)
                or isinstance(settings.seconds_per_question, bool)
                or settings.seconds_per_question <= 0):
            raise ValueError(
                f"seconds_per_question must be a positive integer, got {settings.seconds_per_question!r}"
            )

        self._questions = tuple(questions)
        self._settings = settings
        self._session_id = session_id or f"quiz-{id(self):x}"
        self._state = RunState(remaining_seconds=settings.seconds_per_question)
        self._result: Optional[QuizResult] = None

        self._timer: Optional[QuizTimer] = None
        self._pending: Optional[asyncio.TimerHandle] = None
        self._pending_kind: Optional[str] = None
        self._stopped = False

        self._listeners: List[Listener] = []
        self._listener_tasks: set = set()
        self._finished = asyncio.Event()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def questions(self) -> tuple:
        return self._questions

    @property
    def settings(self) -> QuizSettings:
        return self._settings

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def phase(self) -> QuizPhase:
        return self._state.phase

    @property
    def state(self) -> RunState:
        """Copy of the run state; the engine's own record is never handed out."""
        return dataclasses.replace(self._state)

    @property
    def result(self) -> Optional[QuizResult]:
        """Final score, total and percentage once the quiz has finished."""
        return self._result

    @property
    def current_question(self) -> QuizQuestion:
        return self._questions[self._state.index]

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    @property
    def stopped(self) -> bool:
        """Whether stop() was called since the last start()."""
        return self._stopped

    @property
    def countdown_running(self) -> bool:
        return self._timer is not None and self._timer.is_running

    def snapshot(self) -> QuizSnapshot:
        state = self._state
        return QuizSnapshot(
            phase=state.phase,
            index=state.index,
            total=len(self._questions),
            question=self._questions[state.index],
            remaining_seconds=state.remaining_seconds,
            score=state.score,
            selected_answer=state.selected_answer,
            countdown_running=self.countdown_running,
            result=self._result
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callable that receives a QuizSnapshot after every change.

        Coroutine functions are scheduled on the running loop. Returns a
        function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                outcome = listener(snapshot)
            except Exception as e:
                # Rendering failures must not break the quiz flow
                logger.error(f"Quiz listener failed for session {self._session_id}: {e}", exc_info=True)
                continue
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._listener_tasks.add(task)
                task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Future) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Async quiz listener failed for session {self._session_id}: {task.exception()}"
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def start(self) -> bool:
        """
        Start or restart the quiz from the first question.

        Returns:
            True if a new run started, False if a run is already in progress and was not stopped
        """
        previous = self._state.phase
        if not self._stopped and previous in (QuizPhase.RUNNING, QuizPhase.AWAITING_ADVANCE):
            logger.info(f"start() ignored for session {self._session_id}: quiz already {previous.value}")
            return False

        self._stopped = False
        self._cancel_all()
        self._state = RunState(
            index=0,
            remaining_seconds=self._settings.seconds_per_question,
            score=0,
            answered=0,
            selected_answer=None,
            phase=QuizPhase.RUNNING
        )
        self._result = None
        self._finished.clear()

        TimerLifecycleLogger.log_state_transition(
            self._session_id, previous.value, QuizPhase.RUNNING.value,
            "restart" if previous is QuizPhase.FINISHED else "start"
        )
        self._start_countdown()
        self._notify()
        return True

    def select_answer(self, option: str) -> bool:
        """
        Lock in an answer for the current question.

        Args:
            option: One of the current question's option strings

        Returns:
            True if the answer was recorded, False if the call was a no-op
            (quiz not running or an answer is already locked in)

        Raises:
            InvalidOptionError: If option is not one of the current options
        """
        state = self._state
        if self._stopped or state.phase is not QuizPhase.RUNNING or state.selected_answer is not None:
            logger.debug(
                f"select_answer ignored for session {self._session_id}: "
                f"phase={state.phase.value}, selected={state.selected_answer!r}, stopped={self._stopped}"
            )
            return False

        question = self.current_question
        if option not in question.options:
            raise InvalidOptionError(
                f"{option!r} is not an option for question {state.index + 1}"
            )

        # Freeze the clock before anything else so a racing timeout is a no-op
        self._cancel_all()
        state.selected_answer = option
        state.answered += 1
        if question.is_correct(option):
            state.score += 1

        self._lock_in("answer selected")
        return True

    def stop(self) -> None:
        """
        Cancel every pending timer and freeze the engine in its last state.

        Answers and delayed transitions are refused until start() is called again.
        """
        self._stopped = True
        self._cancel_all()
        logger.info(f"Quiz session {self._session_id} stopped in phase {self._state.phase.value}")

    async def wait_until_finished(self, timeout: Optional[float] = None) -> QuizResult:
        """Wait for the FINISHED phase and return the result."""
        await asyncio.wait_for(self._finished.wait(), timeout=timeout)
        return self._result

    # ------------------------------------------------------------------
    # Countdown and delayed transitions
    # ------------------------------------------------------------------
    def _start_countdown(self) -> None:
        self._cancel_timer()
        timer = QuizTimer(self._session_id, self._settings.tick_interval)
        self._timer = timer
        timer.start(
            self._state.remaining_seconds,
            lambda remaining: self._on_countdown_tick(timer, remaining),
            lambda: self._on_countdown_expired(timer)
        )

    def _on_countdown_tick(self, timer: QuizTimer, remaining: int) -> None:
        if timer is not self._timer or self._state.selected_answer is not None:
            TimerLifecycleLogger.log_race_condition_detected(
                self._session_id, "tick from a superseded countdown ignored"
            )
            return
        self._state.remaining_seconds = remaining
        self._notify()

    def _on_countdown_expired(self, timer: QuizTimer) -> None:
        state = self._state
        if (timer is not self._timer
                or state.phase is not QuizPhase.RUNNING
                or state.selected_answer is not None):
            TimerLifecycleLogger.log_race_condition_detected(
                self._session_id, "timeout arrived after the answer was locked in"
            )
            return

        self._timer = None
        state.remaining_seconds = 0
        state.selected_answer = NO_ANSWER
        state.answered += 1
        self._lock_in("time expired")

    def _lock_in(self, reason: str) -> None:
        self._state.phase = QuizPhase.AWAITING_ADVANCE
        TimerLifecycleLogger.log_state_transition(
            self._session_id, QuizPhase.RUNNING.value, QuizPhase.AWAITING_ADVANCE.value, reason
        )
        self._schedule(self._settings.hold_delay, self._advance, "hold")
        self._notify()

    def _advance(self) -> None:
        state = self._state
        if self._stopped:
            return
        if state.phase is not QuizPhase.AWAITING_ADVANCE:
            TimerLifecycleLogger.log_race_condition_detected(
                self._session_id, f"advance ignored in phase {state.phase.value}"
            )
            return

        if state.index >= len(self._questions) - 1:
            state.phase = QuizPhase.FINISHED
            self._result = QuizResult(score=state.score, total=len(self._questions))
            TimerLifecycleLogger.log_state_transition(
                self._session_id, QuizPhase.AWAITING_ADVANCE.value, QuizPhase.FINISHED.value,
                f"score {self._result.score}/{self._result.total} ({self._result.percentage}%)"
            )
            self._finished.set()
            self._notify()
            return

        state.index += 1
        state.selected_answer = None
        state.remaining_seconds = self._settings.seconds_per_question
        state.phase = QuizPhase.RUNNING
        TimerLifecycleLogger.log_state_transition(
            self._session_id, QuizPhase.AWAITING_ADVANCE.value, QuizPhase.RUNNING.value,
            f"question {state.index + 1}/{len(self._questions)}"
        )
        self._schedule(self._settings.settle_delay, self._resume_countdown, "settle")
        self._notify()

    def _resume_countdown(self) -> None:
        state = self._state
        if self._stopped or state.phase is not QuizPhase.RUNNING or state.selected_answer is not None:
            return
        self._start_countdown()
        self._notify()

    def _schedule(self, delay: float, callback: Callable[[], None], kind: str) -> None:
        self._cancel_pending()
        loop = asyncio.get_running_loop()
        self._pending_kind = kind
        self._pending = loop.call_later(delay, self._fire_pending, callback)
        TimerLifecycleLogger.log_delay_scheduled(self._session_id, kind, delay)

    def _fire_pending(self, callback: Callable[[], None]) -> None:
        self._pending = None
        self._pending_kind = None
        callback()

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            logger.debug(f"Cancelled pending {self._pending_kind} delay for session {self._session_id}")
        self._pending = None
        self._pending_kind = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None

    def _cancel_all(self) -> None:
        self._cancel_timer()
        self._cancel_pending()
