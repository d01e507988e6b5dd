"""
Gemini client that turns document text into a study pack:
summary, multiple-choice quiz, search keywords and a mind map.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from .errors import AIResponseError
from .models import QuizQuestion, StudyResult

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """
You are a smart study assistant. Based on the text provided, do the following:
1. Summarize the main content in 3-5 sentences (key "summary").
2. Create {question_count} multiple-choice questions with exactly 4 options each (key "quiz").
   "correctAnswer" must repeat one of the options word for word.
3. List 3-5 short search keywords for finding related videos and images (key "searchKeywords").
4. Write a mind map of the key concepts as Mermaid "mindmap" syntax (key "mindMap").

You MUST answer with a JSON object and NOTHING ELSE.

Required JSON structure:
{{
  "summary": "string",
  "quiz": [
    {{ "question": "string", "options": ["string", "string", "string", "string"], "correctAnswer": "string" }}
  ],
  "searchKeywords": ["string"],
  "mindMap": "mindmap\\n  root((Topic))\\n    Idea"
}}

---
INPUT TEXT:
{text}
---
"""

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def _log_retry(retry_state) -> None:
    logger.warning(
        f"Retrying Gemini call, attempt {retry_state.attempt_number} "
        f"after {retry_state.seconds_since_start:.2f}s..."
    )


def build_prompt(text: str, question_count: int = 3) -> str:
    return PROMPT_TEMPLATE.format(question_count=question_count, text=text)


def clean_response_text(response_text: str) -> str:
    """Strip Markdown code fences the model sometimes wraps around JSON."""
    return _FENCE_RE.sub('', response_text or '').strip()


def parse_quiz_items(items: Any) -> List[QuizQuestion]:
    """
    Convert raw quiz items into QuizQuestion objects.

    Items with a missing question, fewer than two options or no correct
    answer are dropped. A correct answer that matches no option is kept:
    such a question simply cannot be scored as correct.
    """
    questions: List[QuizQuestion] = []
    if not isinstance(items, list):
        return questions

    for position, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            logger.warning(f"Dropping quiz item {position}: not an object")
            continue
        question = item.get('question')
        options = item.get('options')
        correct = item.get('correctAnswer')
        if not isinstance(question, str) or not question.strip():
            logger.warning(f"Dropping quiz item {position}: missing question text")
            continue
        if not isinstance(options, list) or len(options) < 2 or not all(isinstance(o, str) for o in options):
            logger.warning(f"Dropping quiz item {position}: needs at least two string options")
            continue
        if not isinstance(correct, str):
            logger.warning(f"Dropping quiz item {position}: missing correctAnswer")
            continue
        if correct not in options:
            logger.warning(f"Quiz item {position} has a correctAnswer that matches no option")
        questions.append(QuizQuestion(question=question, options=tuple(options), correct_answer=correct))

    return questions


def parse_study_response(response_text: str) -> StudyResult:
    """
    Parse the model's JSON answer into a StudyResult.

    Raises:
        AIResponseError: If the text is not JSON or lacks summary/quiz
    """
    cleaned = clean_response_text(response_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {e}")
        logger.debug(f"Response text: {cleaned[:500]}")
        raise AIResponseError(f"Model returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise AIResponseError("Model returned JSON that is not an object")

    summary = data.get('summary')
    quiz = data.get('quiz')
    if not summary or not isinstance(summary, str) or not isinstance(quiz, list):
        raise AIResponseError(
            "Model response is missing 'summary' or 'quiz'",
            user_message="The AI response did not have the expected structure. Please try again."
        )

    keywords = [k.strip() for k in data.get('searchKeywords') or [] if isinstance(k, str) and k.strip()]
    mind_map = data.get('mindMap') if isinstance(data.get('mindMap'), str) else ""

    return StudyResult(
        summary=summary.strip(),
        quiz=parse_quiz_items(quiz),
        keywords=keywords,
        mind_map=mind_map.strip()
    )


class GeminiStudyClient:
    """Calls Gemini to build a study pack from document text."""

    def __init__(self, api_key: Optional[str], model_name: str = "gemini-2.5-pro", timeout: float = 120.0):
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self._model = None

    def _ensure_model(self):
        if self._model is not None:
            return self._model
        if not self.api_key:
            raise AIResponseError(
                "Gemini API key is not configured.",
                user_message="The AI service is not configured on this bot."
            )
        genai.configure(api_key=self.api_key)
        self._model = genai.GenerativeModel(self.model_name)
        return self._model

    @retry(
        wait=wait_exponential(multiplier=1, min=2, max=10),
        stop=stop_after_attempt(3),
        retry=retry_if_not_exception_type(AIResponseError),
        before_sleep=_log_retry,
        reraise=True
    )
    async def _generate(self, prompt: str) -> str:
        model = self._ensure_model()
        logger.debug(f"Using {self.model_name} for study pack generation")
        response = await model.generate_content_async(
            prompt,
            request_options={"timeout": self.timeout}
        )
        return response.text

    async def generate_study_pack(self, text: str, question_count: int = 3) -> StudyResult:
        """
        Summarize text and generate quiz, keywords and mind map.

        Raises:
            AIResponseError: If the call fails after retries or the output is unusable
        """
        prompt = build_prompt(text, question_count)
        try:
            response_text = await self._generate(prompt)
        except AIResponseError:
            raise
        except Exception as e:
            logger.error(f"{self.model_name} call failed: {e}", exc_info=True)
            raise AIResponseError(
                f"The AI service failed to process the request: {e}",
                user_message="The AI service is unavailable right now. Please try again later."
            ) from e

        result = parse_study_response(response_text)
        logger.info(
            f"Gemini study pack: {len(result.quiz)} questions, {len(result.keywords)} keywords"
        )
        return result
