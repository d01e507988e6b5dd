"""
Unit tests for timer lifecycle management in QuizTimer and TimedQuizEngine.
Tests countdown cancellation, stale callback detection and structured logging.
"""
import unittest
import asyncio
import logging
from unittest.mock import Mock

from studyquiz.models import QuizPhase
from studyquiz.quiz_engine import QuizTimer, TimedQuizEngine, TimerLifecycleLogger
from tests.test_fixtures import TestFixtures, AsyncTestHelpers


class TestQuizTimer(unittest.IsolatedAsyncioTestCase):
    """Test cases for the QuizTimer countdown."""

    def setUp(self):
        """Set up test fixtures."""
        self.timer = QuizTimer("timer_session", tick_interval=0.01)
        self.update_callback = Mock()
        self.completion_callback = Mock()

    async def test_countdown_reports_every_tick(self):
        """Test that each tick above zero is reported and completion fires once."""
        await self.timer.start_countdown(3, self.update_callback, self.completion_callback)

        self.assertEqual([c.args[0] for c in self.update_callback.call_args_list], [2, 1])
        self.completion_callback.assert_called_once_with()
        self.assertEqual(self.timer.remaining_time, 0)

    async def test_cancel_before_first_tick(self):
        """Test that a cancelled countdown never completes."""
        task = self.timer.start(3, self.update_callback, self.completion_callback)
        self.timer.cancel()

        await asyncio.sleep(0.05)

        self.assertTrue(self.timer.is_cancelled)
        self.assertTrue(task.done())
        self.assertFalse(self.timer.is_running)
        self.update_callback.assert_not_called()
        self.completion_callback.assert_not_called()

    async def test_cancel_from_inside_update_callback(self):
        """Test that a timer cancelled by its own callback stops without self-cancelling."""
        self.update_callback.side_effect = lambda remaining: self.timer.cancel()
        task = self.timer.start(5, self.update_callback, self.completion_callback)

        await AsyncTestHelpers.run_with_timeout(task, timeout=1.0)

        self.assertFalse(task.cancelled())
        self.update_callback.assert_called_once_with(4)
        self.completion_callback.assert_not_called()

    async def test_asyncio_cancellation_marks_timer_cancelled(self):
        """Test that cancelling the task directly is recorded and propagated."""
        task = self.timer.start(5, self.update_callback, self.completion_callback)
        await asyncio.sleep(0)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertTrue(self.timer.is_cancelled)

    async def test_is_running_while_ticking(self):
        """Test is_running across the timer lifetime."""
        self.assertFalse(self.timer.is_running)
        task = self.timer.start(2, self.update_callback, self.completion_callback)
        self.assertTrue(self.timer.is_running)

        await task
        self.assertFalse(self.timer.is_running)


class TestStaleCallbacks(unittest.IsolatedAsyncioTestCase):
    """Test cases for callbacks that arrive after their phase has ended."""

    async def asyncSetUp(self):
        """Set up test fixtures."""
        self.engine = TimedQuizEngine(
            TestFixtures.create_sample_questions(),
            TestFixtures.create_fast_settings(),
            session_id="race_session"
        )
        self.engine.start()
        self.first_timer = self.engine._timer

    async def asyncTearDown(self):
        self.engine.stop()

    async def test_timeout_after_answer_is_ignored(self):
        """Test that an expiry from the cancelled countdown cannot record a timeout."""
        self.engine.select_answer("4")

        with self.assertLogs('studyquiz.quiz_engine', level=logging.WARNING) as logs:
            self.engine._on_countdown_expired(self.first_timer)

        self.assertIn("RACE_CONDITION", logs.output[0])
        self.assertEqual(self.engine.state.selected_answer, "4")
        self.assertEqual(self.engine.state.score, 1)
        self.assertEqual(self.engine.state.answered, 1)

    async def test_tick_from_superseded_countdown_is_ignored(self):
        """Test that a tick from an old countdown does not touch the clock."""
        self.engine.select_answer("4")
        await AsyncTestHelpers.wait_for(lambda: self.engine.countdown_running)
        remaining = self.engine.state.remaining_seconds

        with self.assertLogs('studyquiz.quiz_engine', level=logging.WARNING):
            self.engine._on_countdown_tick(self.first_timer, 3)

        self.assertEqual(self.engine.state.remaining_seconds, remaining)

    async def test_advance_outside_awaiting_is_ignored(self):
        """Test that a stray advance cannot skip a question."""
        with self.assertLogs('studyquiz.quiz_engine', level=logging.WARNING):
            self.engine._advance()

        self.assertEqual(self.engine.state.index, 0)
        self.assertEqual(self.engine.phase, QuizPhase.RUNNING)

    async def test_single_pending_delay(self):
        """Test that at most one advance is pending per question."""
        self.assertIsNone(self.engine._pending)

        self.engine.select_answer("4")
        first_handle = self.engine._pending
        self.assertIsNotNone(first_handle)
        self.assertEqual(self.engine._pending_kind, "hold")

        self.engine._schedule(10, self.engine._advance, "hold")
        self.assertTrue(first_handle.cancelled())

    async def test_stop_clears_all_handles(self):
        """Test that stop cancels both the countdown and pending delays."""
        self.engine.select_answer("4")
        self.engine.stop()

        self.assertIsNone(self.engine._timer)
        self.assertIsNone(self.engine._pending)

        await asyncio.sleep(0.05)
        self.assertEqual(self.engine.phase, QuizPhase.AWAITING_ADVANCE)


class TestTimerLifecycleLogger(unittest.TestCase):
    """Test cases for structured lifecycle logging."""

    def test_state_transition_logged_with_extra_fields(self):
        """Test that transitions carry structured fields."""
        with self.assertLogs('studyquiz.quiz_engine', level=logging.INFO) as logs:
            TimerLifecycleLogger.log_state_transition("s1", "running", "awaiting_advance", "time expired")

        record = logs.records[0]
        self.assertEqual(record.event_type, 'quiz_state_transition')
        self.assertEqual(record.session_id, "s1")
        self.assertEqual(record.to_state, "awaiting_advance")
        self.assertIn("time expired", record.getMessage())

    def test_race_condition_logged_as_warning(self):
        """Test that race conditions are logged at WARNING level."""
        with self.assertLogs('studyquiz.quiz_engine', level=logging.WARNING) as logs:
            TimerLifecycleLogger.log_race_condition_detected("s1", "late timeout")

        self.assertEqual(logs.records[0].levelno, logging.WARNING)
        self.assertEqual(logs.records[0].event_type, 'timer_race_condition')

    def test_delay_scheduled_logged_at_debug(self):
        """Test that delay scheduling is logged at DEBUG level."""
        with self.assertLogs('studyquiz.quiz_engine', level=logging.DEBUG) as logs:
            TimerLifecycleLogger.log_delay_scheduled("s1", "settle", 0.5)

        self.assertEqual(logs.records[0].kind, "settle")
        self.assertEqual(logs.records[0].delay, 0.5)


if __name__ == '__main__':
    unittest.main()
