"""
Custom application-specific exceptions.
"""


class StudyBotError(Exception):
    """Base exception for the application."""

    default_user_message = "Something went wrong while processing your request."

    def __init__(self, message: str = "", user_message: str = None):
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class DocumentError(StudyBotError):
    """Base exception for uploaded document problems."""
    default_user_message = "The document could not be processed."


class UnsupportedFileError(DocumentError):
    """Raised for file types other than PDF and TXT."""
    default_user_message = "Unsupported file type. Only PDF and TXT files are accepted."


class FileTooLargeError(DocumentError):
    """Raised when an upload exceeds the configured size limit."""
    default_user_message = "The file is too large."


class DocumentReadError(DocumentError):
    """Raised when a PDF cannot be read."""
    default_user_message = "The PDF could not be read. It may be encrypted or corrupted."


class EmptyDocumentError(DocumentError):
    """Raised when no text could be extracted."""
    default_user_message = "No text could be extracted. The file may be empty or image-based."


class AIResponseError(StudyBotError):
    """Raised when the language model call fails or returns unusable output."""
    default_user_message = "The AI returned an invalid result. Please try again."


class QuizEngineError(StudyBotError):
    """Base exception for quiz engine precondition violations."""
    default_user_message = "The quiz could not continue."


class EmptyQuizError(QuizEngineError, ValueError):
    """Raised when a quiz is built from an empty question set."""
    default_user_message = "No questions were provided for the quiz."


class InvalidOptionError(QuizEngineError, ValueError):
    """Raised when an answer is not one of the current question's options."""
    default_user_message = "That answer is not an option for this question."
