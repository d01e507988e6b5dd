"""
Core data models for the Study Quiz Bot.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union


@dataclass(frozen=True)
class QuizQuestion:
    """Represents a single multiple-choice question."""
    question: str
    options: Tuple[str, ...]
    correct_answer: str

    def __post_init__(self):
        # Lists from JSON are frozen into tuples so the question stays immutable
        object.__setattr__(self, 'options', tuple(self.options))

    def is_correct(self, option: str) -> bool:
        """Exact, case-sensitive comparison against the correct answer."""
        return option == self.correct_answer

    @property
    def is_answerable(self) -> bool:
        """Whether any option can ever be scored as correct."""
        return self.correct_answer in self.options


class _NoAnswer:
    """Marker recorded when a question times out without a selection."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_ANSWER"

    def __bool__(self) -> bool:
        return True


NO_ANSWER = _NoAnswer()

Selection = Union[None, str, _NoAnswer]


class QuizPhase(Enum):
    """Position of a quiz run in its state machine."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    AWAITING_ADVANCE = "awaiting_advance"
    FINISHED = "finished"


@dataclass
class QuizSettings:
    """Timing and generation settings for a quiz run."""
    seconds_per_question: int = 15
    hold_delay: float = 1.5
    settle_delay: float = 0.5
    tick_interval: float = 1.0
    question_count: int = 3


@dataclass
class RunState:
    """Mutable per-run record, owned by a single TimedQuizEngine."""
    index: int = 0
    remaining_seconds: int = 0
    score: int = 0
    answered: int = 0
    selected_answer: Selection = None
    phase: QuizPhase = QuizPhase.NOT_STARTED


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like Math.round."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class QuizResult:
    """Final outcome of a finished quiz run."""
    score: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round_half_up(self.score / self.total * 100)


@dataclass(frozen=True)
class QuizSnapshot:
    """Read-only view of engine state handed to the rendering layer."""
    phase: QuizPhase
    index: int
    total: int
    question: Optional[QuizQuestion]
    remaining_seconds: int
    score: int
    selected_answer: Selection
    countdown_running: bool
    result: Optional[QuizResult] = None

    @property
    def answer_locked(self) -> bool:
        return self.selected_answer is not None

    @property
    def timed_out(self) -> bool:
        return self.selected_answer is NO_ANSWER

    @property
    def question_number(self) -> int:
        return self.index + 1


@dataclass(frozen=True)
class MediaSuggestion:
    """A related video or image found for the document's keywords."""
    title: str
    url: str
    thumbnail_url: str = ""


@dataclass
class StudyResult:
    """Everything produced for one uploaded document."""
    summary: str
    quiz: List[QuizQuestion]
    keywords: List[str] = field(default_factory=list)
    mind_map: str = ""
    related_videos: List[MediaSuggestion] = field(default_factory=list)
    related_images: List[MediaSuggestion] = field(default_factory=list)
    source_name: str = ""
