"""
Study session controller for the Study Quiz Bot.
Keeps the latest study pack and quiz engine for each Discord channel.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .config_manager import ConfigManager
from .errors import StudyBotError
from .models import QuizPhase, StudyResult
from .quiz_engine import TimedQuizEngine


class SessionState(Enum):
    """Enumeration of possible channel session states."""
    NO_DOCUMENT = "no_document"
    READY = "ready"
    QUIZ_ACTIVE = "quiz_active"
    QUIZ_FINISHED = "quiz_finished"


class QuizControllerError(StudyBotError):
    """Base exception for quiz controller errors."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a channel without a study pack."""
    default_user_message = "No document has been studied in this channel yet. Use /study first."


@dataclass
class StudySession:
    """The latest study pack processed in a channel and its quiz, if any."""
    channel_id: int
    study: StudyResult
    created_at: datetime
    engine: Optional[TimedQuizEngine] = None
    quiz_message: Any = None


class QuizController:
    """
    Orchestrates study sessions across Discord channels.

    Each channel holds at most one study pack and one quiz engine. Processing
    a new document or opening a new quiz stops the previous engine first.
    """

    def __init__(self, config_manager: ConfigManager):
        """
        Initialize the quiz controller.

        Args:
            config_manager: Source of quiz timing settings
        """
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager
        self._sessions: Dict[int, StudySession] = {}
        self.logger.info("QuizController initialized")

    def register_study(self, channel_id: int, study: StudyResult) -> StudySession:
        """Store a freshly processed study pack, replacing any previous one."""
        previous = self._sessions.get(channel_id)
        if previous and previous.engine:
            previous.engine.stop()

        session = StudySession(channel_id=channel_id, study=study, created_at=datetime.now())
        self._sessions[channel_id] = session
        self.logger.info(
            f"Registered study pack for channel {channel_id}: "
            f"'{study.source_name}', {len(study.quiz)} questions"
        )
        return session

    def get_session(self, channel_id: int) -> Optional[StudySession]:
        return self._sessions.get(channel_id)

    def has_session(self, channel_id: int) -> bool:
        return channel_id in self._sessions

    def get_session_state(self, channel_id: int) -> SessionState:
        session = self._sessions.get(channel_id)
        if session is None:
            return SessionState.NO_DOCUMENT
        if session.engine is None or session.engine.phase is QuizPhase.NOT_STARTED:
            return SessionState.READY
        if session.engine.phase is QuizPhase.FINISHED:
            return SessionState.QUIZ_FINISHED
        return SessionState.QUIZ_ACTIVE

    def require_session(self, channel_id: int) -> StudySession:
        session = self._sessions.get(channel_id)
        if session is None:
            raise SessionNotFoundError(f"No study session for channel {channel_id}")
        return session

    def create_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Open a new quiz engine for the channel's study pack.

        An empty question set never reaches the engine: the result carries a
        user message to show instead.

        Returns:
            Dictionary with success flag, the engine on success, and messages
        """
        session = self._sessions.get(channel_id)
        if session is None:
            return {
                'success': False,
                'error': f"No study session for channel {channel_id}",
                'user_message': SessionNotFoundError.default_user_message
            }

        if not session.study.quiz:
            self.logger.warning(f"Study pack for channel {channel_id} has no quiz questions")
            return {
                'success': False,
                'error': "Study pack has no quiz questions",
                'user_message': "Error: no questions were provided for this quiz."
            }

        if session.engine:
            session.engine.stop()

        settings = self.config_manager.get_quiz_settings()
        engine = TimedQuizEngine(session.study.quiz, settings=settings, session_id=str(channel_id))
        session.engine = engine
        session.quiz_message = None

        self.logger.info(
            f"Created quiz for channel {channel_id}: {engine.total_questions} questions, "
            f"{settings.seconds_per_question}s each"
        )
        return {
            'success': True,
            'engine': engine,
            'message': "Quiz created",
            'session_info': {
                'source_name': session.study.source_name,
                'total_questions': engine.total_questions,
                'seconds_per_question': settings.seconds_per_question
            }
        }

    def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """Stop the channel's quiz and drop its engine; the study pack stays."""
        session = self._sessions.get(channel_id)
        if session is None or session.engine is None:
            return {
                'success': False,
                'error': f"No quiz for channel {channel_id}",
                'user_message': "There is no quiz running in this channel."
            }

        engine = session.engine
        engine.stop()
        snapshot = engine.snapshot()
        session.engine = None
        session.quiz_message = None
        self.logger.info(f"Stopped quiz for channel {channel_id} at question {snapshot.question_number}")
        return {
            'success': True,
            'message': "Quiz stopped",
            'session_info': {
                'score': snapshot.score,
                'question_number': snapshot.question_number,
                'total_questions': snapshot.total,
                'phase': snapshot.phase.value
            }
        }

    def clear_session(self, channel_id: int) -> bool:
        session = self._sessions.pop(channel_id, None)
        if session is None:
            return False
        if session.engine:
            session.engine.stop()
        self.logger.info(f"Cleared study session for channel {channel_id}")
        return True

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        session = self._sessions.get(channel_id)
        if session is None:
            return None

        progress = {
            'source_name': session.study.source_name,
            'total_questions': len(session.study.quiz),
            'state': self.get_session_state(channel_id).value,
            'created_at': session.created_at,
        }
        if session.engine:
            snapshot = session.engine.snapshot()
            progress.update({
                'phase': snapshot.phase.value,
                'current_question': snapshot.question_number,
                'score': snapshot.score,
                'remaining_seconds': snapshot.remaining_seconds,
            })
            if snapshot.result:
                progress['percentage'] = snapshot.result.percentage
        return progress

    def get_session_status_summary(self, channel_id: int) -> str:
        progress = self.get_session_progress(channel_id)
        if progress is None:
            return "No document studied in this channel yet."

        lines = [
            f"Document: {progress['source_name'] or 'unnamed'}",
            f"Questions: {progress['total_questions']}",
        ]
        state = progress['state']
        if state == SessionState.READY.value:
            lines.append("Status: Ready - use /quiz to start")
        elif state == SessionState.QUIZ_ACTIVE.value:
            lines.append(
                f"Status: Active - question {progress['current_question']}/{progress['total_questions']}, "
                f"score {progress['score']}, {progress['remaining_seconds']}s left"
            )
        else:
            lines.append(
                f"Status: Finished - {progress['score']}/{progress['total_questions']} "
                f"({progress.get('percentage', 0)}%)"
            )
        return "\n".join(lines)
