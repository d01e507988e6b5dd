"""
Unit tests for the TimedQuizEngine state machine.
"""
import asyncio
import logging
import unittest
from unittest.mock import AsyncMock, Mock

from studyquiz.errors import EmptyQuizError, InvalidOptionError
from studyquiz.models import NO_ANSWER, QuizPhase, QuizQuestion, QuizResult, QuizSettings
from studyquiz.quiz_engine import TimedQuizEngine
from tests.test_fixtures import AsyncTestHelpers, TestFixtures


class TestQuizEngineConstruction(unittest.TestCase):
    """Test cases for engine preconditions."""

    def test_empty_question_set_rejected(self):
        with self.assertRaises(EmptyQuizError):
            TimedQuizEngine([])

    def test_empty_question_set_is_value_error(self):
        with self.assertRaises(ValueError):
            TimedQuizEngine([])

    def test_non_positive_seconds_rejected(self):
        questions = TestFixtures.create_single_question()
        for seconds in (0, -5):
            with self.assertRaises(ValueError):
                TimedQuizEngine(questions, QuizSettings(seconds_per_question=seconds))

    def test_initial_phase_is_not_started(self):
        engine = TimedQuizEngine(TestFixtures.create_sample_questions())
        self.assertEqual(engine.phase, QuizPhase.NOT_STARTED)
        self.assertIsNone(engine.result)
        self.assertEqual(engine.state.remaining_seconds, 15)

    def test_default_seconds_per_question(self):
        engine = TimedQuizEngine(TestFixtures.create_single_question())
        self.assertEqual(engine.settings.seconds_per_question, 15)


class TestQuizResult(unittest.TestCase):
    """Test cases for final percentage rounding."""

    def test_two_of_three_rounds_up(self):
        self.assertEqual(QuizResult(score=2, total=3).percentage, 67)

    def test_half_rounds_up(self):
        self.assertEqual(QuizResult(score=1, total=8).percentage, 13)

    def test_perfect_and_zero(self):
        self.assertEqual(QuizResult(score=4, total=4).percentage, 100)
        self.assertEqual(QuizResult(score=0, total=4).percentage, 0)

    def test_one_of_two(self):
        self.assertEqual(QuizResult(score=1, total=2).percentage, 50)


class TestQuizEngineRun(unittest.IsolatedAsyncioTestCase):
    """Test cases for a full quiz run."""

    def make_engine(self, questions=None, **settings) -> TimedQuizEngine:
        engine = TimedQuizEngine(
            questions or TestFixtures.create_single_question(),
            TestFixtures.create_fast_settings(**settings)
        )
        self.addCleanup(engine.stop)
        return engine

    async def test_start_initializes_run_state(self):
        engine = self.make_engine(seconds_per_question=15)

        self.assertTrue(engine.start())

        state = engine.state
        self.assertEqual(state.phase, QuizPhase.RUNNING)
        self.assertEqual(state.index, 0)
        self.assertEqual(state.score, 0)
        self.assertEqual(state.remaining_seconds, 15)
        self.assertIsNone(state.selected_answer)
        self.assertTrue(engine.countdown_running)

    async def test_start_ignored_while_running(self):
        engine = self.make_engine()
        engine.start()
        engine.select_answer("4")

        self.assertFalse(engine.start())
        self.assertEqual(engine.phase, QuizPhase.AWAITING_ADVANCE)
        self.assertEqual(engine.state.score, 1)

    async def test_correct_answer_scores_and_finishes(self):
        engine = self.make_engine()
        engine.start()

        self.assertTrue(engine.select_answer("4"))
        self.assertEqual(engine.phase, QuizPhase.AWAITING_ADVANCE)
        self.assertEqual(engine.state.score, 1)
        self.assertFalse(engine.countdown_running)

        result = await engine.wait_until_finished(timeout=1)
        self.assertEqual(engine.phase, QuizPhase.FINISHED)
        self.assertEqual(result.score, 1)
        self.assertEqual(result.total, 1)
        self.assertEqual(result.percentage, 100)

    async def test_selecting_twice_has_no_effect(self):
        engine = self.make_engine()
        engine.start()

        self.assertTrue(engine.select_answer("4"))
        self.assertFalse(engine.select_answer("3"))
        self.assertFalse(engine.select_answer("4"))

        self.assertEqual(engine.state.score, 1)
        self.assertEqual(engine.state.selected_answer, "4")

    async def test_foreign_option_rejected(self):
        engine = self.make_engine()
        engine.start()

        with self.assertRaises(InvalidOptionError):
            engine.select_answer("42")
        self.assertEqual(engine.phase, QuizPhase.RUNNING)
        self.assertIsNone(engine.state.selected_answer)

    async def test_select_before_start_is_noop(self):
        engine = self.make_engine()
        self.assertFalse(engine.select_answer("4"))
        self.assertEqual(engine.phase, QuizPhase.NOT_STARTED)

    async def test_timeout_records_no_answer(self):
        engine = self.make_engine(seconds_per_question=2, tick_interval=0.01)
        snapshots = []
        engine.subscribe(snapshots.append)

        engine.start()
        result = await engine.wait_until_finished(timeout=2)

        self.assertEqual(result.score, 0)
        self.assertEqual(result.percentage, 0)
        locked = [s for s in snapshots if s.phase is QuizPhase.AWAITING_ADVANCE]
        self.assertEqual(len(locked), 1)
        self.assertIs(locked[0].selected_answer, NO_ANSWER)
        self.assertTrue(locked[0].timed_out)
        self.assertEqual(locked[0].remaining_seconds, 0)

    async def test_countdown_ticks_update_remaining(self):
        engine = self.make_engine(seconds_per_question=3, tick_interval=0.01)
        seen = []
        engine.subscribe(lambda s: seen.append(s.remaining_seconds) if s.phase is QuizPhase.RUNNING else None)

        engine.start()
        await engine.wait_until_finished(timeout=2)

        self.assertEqual(seen, [3, 2, 1])

    async def test_two_questions_one_right_one_wrong(self):
        questions = [
            QuizQuestion("2+2?", ["3", "4", "5", "6"], "4"),
            QuizQuestion("3+3?", ["5", "6", "7", "8"], "6"),
        ]
        engine = self.make_engine(questions)
        engine.start()

        engine.select_answer("4")
        await AsyncTestHelpers.wait_for(
            lambda: engine.phase is QuizPhase.RUNNING and engine.state.index == 1
        )
        self.assertIsNone(engine.state.selected_answer)
        self.assertEqual(engine.state.remaining_seconds, 15)

        engine.select_answer("7")
        result = await engine.wait_until_finished(timeout=1)

        self.assertEqual(result.score, 1)
        self.assertEqual(result.total, 2)
        self.assertEqual(result.percentage, 50)

    async def test_final_score_counts_exact_matches_only(self):
        questions = [
            QuizQuestion("Capital of France?", ["Paris", "paris", "Rome", "Oslo"], "Paris"),
            QuizQuestion("Capital of Italy?", ["Paris", "Rome", "Oslo", "Bern"], "Rome"),
            QuizQuestion("Unwinnable", ["A", "B", "C", "D"], "Z"),
            QuizQuestion("Two options", ["Yes", "No"], "Yes"),
        ]
        picks = ["paris", "Rome", "A", "Yes"]
        engine = self.make_engine(questions)
        engine.start()

        for index, pick in enumerate(picks):
            await AsyncTestHelpers.wait_for(
                lambda: engine.phase is QuizPhase.RUNNING and engine.state.index == index
            )
            engine.select_answer(pick)

        result = await engine.wait_until_finished(timeout=1)
        expected = sum(1 for q, p in zip(questions, picks) if p == q.correct_answer)
        self.assertEqual(result.score, expected)
        self.assertEqual(result.score, 2)

    async def test_restart_after_finish_resets(self):
        engine = self.make_engine()
        engine.start()
        engine.select_answer("4")
        await engine.wait_until_finished(timeout=1)

        self.assertTrue(engine.start())

        self.assertEqual(engine.phase, QuizPhase.RUNNING)
        self.assertEqual(engine.state.score, 0)
        self.assertEqual(engine.state.index, 0)
        self.assertIsNone(engine.result)

    async def test_answer_during_settle_keeps_countdown_stopped(self):
        questions = TestFixtures.create_sample_questions()[:2]
        engine = TimedQuizEngine(
            questions,
            QuizSettings(seconds_per_question=15, hold_delay=0.01, settle_delay=0.2, tick_interval=1.0)
        )
        self.addCleanup(engine.stop)
        engine.start()
        engine.select_answer("4")
        await AsyncTestHelpers.wait_for(lambda: engine.state.index == 1)

        self.assertEqual(engine.phase, QuizPhase.RUNNING)
        self.assertFalse(engine.countdown_running)

        engine.select_answer("Paris")
        await asyncio.sleep(0.25)

        self.assertFalse(engine.countdown_running)
        self.assertEqual(engine.phase, QuizPhase.FINISHED)
        self.assertEqual(engine.result.score, 2)

    async def test_countdown_resumes_after_settle(self):
        questions = TestFixtures.create_sample_questions()[:2]
        engine = self.make_engine(questions)
        engine.start()
        engine.select_answer("3")

        await AsyncTestHelpers.wait_for(lambda: engine.state.index == 1 and engine.countdown_running)
        self.assertEqual(engine.phase, QuizPhase.RUNNING)

    async def test_stop_cancels_pending_timeout(self):
        engine = self.make_engine(seconds_per_question=1, tick_interval=0.01)
        engine.start()
        engine.stop()

        await asyncio.sleep(0.1)

        self.assertEqual(engine.phase, QuizPhase.RUNNING)
        self.assertIsNone(engine.state.selected_answer)
        self.assertFalse(engine.countdown_running)

    async def test_stopped_engine_refuses_answers(self):
        """Test that a stopped quiz cannot be driven to the end by a late click."""
        engine = self.make_engine(seconds_per_question=15)
        engine.start()
        engine.stop()

        self.assertTrue(engine.stopped)
        self.assertFalse(engine.select_answer("4"))

        await asyncio.sleep(0.05)
        self.assertEqual(engine.phase, QuizPhase.RUNNING)
        self.assertIsNone(engine.state.selected_answer)
        self.assertEqual(engine.state.score, 0)
        self.assertIsNone(engine.result)
        self.assertIsNone(engine._pending)

    async def test_start_after_stop_begins_new_run(self):
        engine = self.make_engine(seconds_per_question=15)
        engine.start()
        engine.stop()

        self.assertTrue(engine.start())

        self.assertFalse(engine.stopped)
        self.assertTrue(engine.countdown_running)
        self.assertTrue(engine.select_answer("4"))
        result = await engine.wait_until_finished(timeout=1)
        self.assertEqual(result.score, 1)

    async def test_state_is_a_copy(self):
        engine = self.make_engine()
        engine.start()

        state = engine.state
        state.score = 99
        state.index = 5

        self.assertEqual(engine.state.score, 0)
        self.assertEqual(engine.state.index, 0)


class TestQuizEngineListeners(unittest.IsolatedAsyncioTestCase):
    """Test cases for change notifications."""

    async def asyncSetUp(self):
        self.engine = TimedQuizEngine(
            TestFixtures.create_single_question(),
            TestFixtures.create_fast_settings()
        )

    async def asyncTearDown(self):
        self.engine.stop()

    async def test_listener_receives_snapshots(self):
        listener = Mock()
        self.engine.subscribe(listener)

        self.engine.start()

        listener.assert_called_once()
        snapshot = listener.call_args.args[0]
        self.assertEqual(snapshot.phase, QuizPhase.RUNNING)
        self.assertEqual(snapshot.total, 1)
        self.assertEqual(snapshot.question.question, "2+2?")

    async def test_async_listener_is_scheduled(self):
        listener = AsyncMock()
        self.engine.subscribe(listener)

        self.engine.start()
        await asyncio.sleep(0)

        listener.assert_awaited_once()

    async def test_unsubscribe_stops_notifications(self):
        listener = Mock()
        unsubscribe = self.engine.subscribe(listener)
        unsubscribe()

        self.engine.start()

        listener.assert_not_called()

    async def test_failing_listener_does_not_break_quiz(self):
        self.engine.subscribe(Mock(side_effect=RuntimeError("render failed")))

        with self.assertLogs('studyquiz.quiz_engine', level=logging.ERROR):
            self.engine.start()
        self.engine.select_answer("4")

        result = await self.engine.wait_until_finished(timeout=1)
        self.assertEqual(result.score, 1)

    async def test_finished_snapshot_carries_result(self):
        snapshots = []
        self.engine.subscribe(snapshots.append)

        self.engine.start()
        self.engine.select_answer("5")
        await self.engine.wait_until_finished(timeout=1)

        final = snapshots[-1]
        self.assertEqual(final.phase, QuizPhase.FINISHED)
        self.assertEqual(final.result.score, 0)
        self.assertEqual(final.result.total, 1)
        self.assertEqual(final.result.percentage, 0)


if __name__ == '__main__':
    unittest.main()
