"""
Configuration manager for Study Quiz Bot settings and API credentials.
"""
import logging
import os
from typing import Any, Dict, List, Optional

from .models import QuizSettings


class ConfigManager:
    """Manages quiz settings, document limits and external API credentials."""

    # Default configuration values
    DEFAULT_TIMER_DURATION = 15
    DEFAULT_QUESTION_COUNT = 3
    DEFAULT_MAX_FILE_SIZE_MB = 50
    DEFAULT_MAX_TEXT_CHARS = 15000
    DEFAULT_GEMINI_MODEL = "gemini-2.5-pro"

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 10

    # Environment variables take precedence over config.json values
    ENV_KEYS = {
        'gemini_api_key': 'GEMINI_API_KEY',
        'youtube_api_key': 'YOUTUBE_API_KEY',
        'unsplash_access_key': 'UNSPLASH_ACCESS_KEY',
    }

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings(
            seconds_per_question=self.DEFAULT_TIMER_DURATION,
            question_count=self.DEFAULT_QUESTION_COUNT
        )
        self._max_file_size_mb = self.DEFAULT_MAX_FILE_SIZE_MB
        self._max_text_chars = self.DEFAULT_MAX_TEXT_CHARS
        self._gemini_model = self.DEFAULT_GEMINI_MODEL
        self._credentials: Dict[str, Optional[str]] = {name: None for name in self.ENV_KEYS}

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get a copy of the current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            seconds_per_question=self._global_settings.seconds_per_question,
            hold_delay=self._global_settings.hold_delay,
            settle_delay=self._global_settings.settle_delay,
            tick_interval=self._global_settings.tick_interval,
            question_count=self._global_settings.question_count
        )

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown length for each question.

        Args:
            duration: Seconds per question

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(duration, int) or isinstance(duration, bool):
            error_msg = f"Timer duration must be an integer, got {type(duration).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            }

        if duration < self.MIN_TIMER_DURATION:
            error_msg = f"Timer duration must be at least {self.MIN_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIMER_DURATION} seconds"
            }

        if duration > self.MAX_TIMER_DURATION:
            error_msg = f"Timer duration cannot exceed {self.MAX_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIMER_DURATION} seconds ({self.MAX_TIMER_DURATION // 60} minutes)"
            }

        self._global_settings.seconds_per_question = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds per question"
        }

    def get_timer_duration(self) -> int:
        return self._global_settings.seconds_per_question

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set how many questions the AI generates for each document.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(count, int) or isinstance(count, bool):
            error_msg = f"Question count must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            }

        if count < self.MIN_QUESTION_COUNT:
            error_msg = f"Question count must be at least {self.MIN_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            }

        if count > self.MAX_QUESTION_COUNT:
            error_msg = f"Question count cannot exceed {self.MAX_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            }

        self._global_settings.question_count = count
        self.logger.info(f"Question count set to {count}")
        return {
            'success': True,
            'message': f"Question count set to {count}",
            'user_message': f"✅ The next document will get {count} quiz questions"
        }

    def get_question_count(self) -> int:
        return self._global_settings.question_count

    @property
    def max_file_size_mb(self) -> int:
        return self._max_file_size_mb

    @property
    def max_file_size_bytes(self) -> int:
        return self._max_file_size_mb * 1024 * 1024

    @property
    def max_text_chars(self) -> int:
        return self._max_text_chars

    @property
    def gemini_model(self) -> str:
        return self._gemini_model

    def get_credential(self, name: str) -> Optional[str]:
        """
        Get an API credential, preferring the environment over config.json.

        Args:
            name: One of gemini_api_key, youtube_api_key, unsplash_access_key

        Returns:
            The credential, or None if it is missing or still a placeholder
        """
        if name not in self.ENV_KEYS:
            raise KeyError(f"Unknown credential: {name}")
        value = os.getenv(self.ENV_KEYS[name]) or self._credentials.get(name)
        if self._is_placeholder(value):
            return None
        return value

    @staticmethod
    def _is_placeholder(value: Optional[str]) -> bool:
        if not value or not value.strip():
            return True
        upper = value.strip().upper()
        return upper.startswith("YOUR_") and upper.endswith("_HERE")

    def load_from_dict(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply the 'quiz', 'documents' and 'ai' sections of config.json.

        Invalid values are logged and skipped so the defaults stay in effect.

        Returns:
            Dictionary with success flag and the list of problems found
        """
        problems: List[str] = []

        quiz_config = config.get('quiz', {})
        if 'seconds_per_question' in quiz_config:
            result = self.set_timer_duration(quiz_config['seconds_per_question'])
            if not result['success']:
                problems.append(result['error'])
        if 'question_count' in quiz_config:
            result = self.set_question_count(quiz_config['question_count'])
            if not result['success']:
                problems.append(result['error'])

        documents_config = config.get('documents', {})
        max_size = documents_config.get('max_file_size_mb')
        if max_size is not None:
            if isinstance(max_size, int) and not isinstance(max_size, bool) and max_size > 0:
                self._max_file_size_mb = max_size
            else:
                problems.append(f"Invalid max_file_size_mb: {max_size}")
        max_chars = documents_config.get('max_text_chars')
        if max_chars is not None:
            if isinstance(max_chars, int) and not isinstance(max_chars, bool) and max_chars > 0:
                self._max_text_chars = max_chars
            else:
                problems.append(f"Invalid max_text_chars: {max_chars}")

        ai_config = config.get('ai', {})
        if ai_config.get('gemini_model'):
            self._gemini_model = ai_config['gemini_model']
        for name in self.ENV_KEYS:
            if ai_config.get(name):
                self._credentials[name] = ai_config[name]

        for problem in problems:
            self.logger.warning(f"Configuration problem: {problem}")
        self.logger.info("Configuration applied" + (f" with {len(problems)} problem(s)" if problems else ""))
        return {'success': not problems, 'problems': problems}

    def reset_to_defaults(self) -> None:
        """Reset quiz settings and limits to their default values."""
        self._global_settings = QuizSettings(
            seconds_per_question=self.DEFAULT_TIMER_DURATION,
            question_count=self.DEFAULT_QUESTION_COUNT
        )
        self._max_file_size_mb = self.DEFAULT_MAX_FILE_SIZE_MB
        self._max_text_chars = self.DEFAULT_MAX_TEXT_CHARS
        self._gemini_model = self.DEFAULT_GEMINI_MODEL
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        duration = self._global_settings.seconds_per_question
        if (not isinstance(duration, int) or
                duration < self.MIN_TIMER_DURATION or
                duration > self.MAX_TIMER_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid timer duration: {duration}")

        count = self._global_settings.question_count
        if (not isinstance(count, int) or
                count < self.MIN_QUESTION_COUNT or
                count > self.MAX_QUESTION_COUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question count: {count}")

        if self.get_credential('gemini_api_key') is None:
            validation_result["valid"] = False
            validation_result["issues"].append("Gemini API key is not configured")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        def configured(name: str) -> str:
            return "configured" if self.get_credential(name) else "not configured"

        return (
            f"Quiz Settings:\n"
            f"• Timer: {self._global_settings.seconds_per_question} seconds per question\n"
            f"• Questions per document: {self._global_settings.question_count}\n"
            f"• Max file size: {self._max_file_size_mb} MB\n"
            f"• Model: {self._gemini_model}\n"
            f"• YouTube search: {configured('youtube_api_key')}\n"
            f"• Unsplash search: {configured('unsplash_access_key')}"
        )
