"""
Question sources for the trivia game.

Fetches multiple-choice questions from the Open Trivia Database, validates the
payload and normalizes it into immutable Question objects with shuffled options.
"""
import asyncio
import html
import logging
import random
from typing import Any, Dict, List, Optional, Protocol, Sequence

import aiohttp

from .exceptions import FetchError, FetchErrorReason
from .models import Difficulty, Question, QuestionBatch

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://opentdb.com/api.php"
DEFAULT_REQUEST_TIMEOUT = 10.0

# Open Trivia DB response codes other than 0 (success)
RESPONSE_CODE_MESSAGES = {
    1: "Not enough questions for the query",
    2: "Invalid parameter",
    3: "Session token not found",
    4: "Session token exhausted",
    5: "Rate limited",
}


class QuestionSource(Protocol):
    """Anything that can produce a batch of questions."""

    async def fetch_batch(self, difficulty: Difficulty, count: int) -> QuestionBatch:
        ...


def build_options(correct_answer: str, incorrect_answers: Sequence[str]) -> tuple:
    """
    Build the option list for a question.

    Args:
        correct_answer: The right answer
        incorrect_answers: The distractors

    Returns:
        Tuple holding every distractor and the correct answer in random order
    """
    options = list(incorrect_answers) + [correct_answer]
    random.shuffle(options)
    return tuple(options)


def validate_payload(data: Any) -> bool:
    """
    Validate that a successful provider payload has the expected structure.

    Expected structure:
    {
        "response_code": 0,
        "results": [
            {
                "question": str,
                "correct_answer": str,
                "incorrect_answers": [str, ...]
            }
        ]
    }

    Args:
        data: Parsed JSON payload

    Returns:
        True if structure is valid, False otherwise
    """
    if not isinstance(data, dict):
        logger.error("Payload must be a JSON object")
        return False

    results = data.get("results")
    if not isinstance(results, list):
        logger.error("'results' value must be an array")
        return False

    for i, raw in enumerate(results):
        if not isinstance(raw, dict):
            logger.error(f"Result {i} must be an object")
            return False

        for key in ("question", "correct_answer"):
            if not isinstance(raw.get(key), str):
                logger.error(f"Result {i} '{key}' field must be a string")
                return False

        incorrect = raw.get("incorrect_answers")
        if not isinstance(incorrect, list) or not incorrect:
            logger.error(f"Result {i} 'incorrect_answers' field must be a non-empty array")
            return False

        if not all(isinstance(answer, str) for answer in incorrect):
            logger.error(f"Result {i} 'incorrect_answers' must only contain strings")
            return False

        correct = html.unescape(raw["correct_answer"])
        if correct in (html.unescape(answer) for answer in incorrect):
            logger.error(f"Result {i} lists its correct answer among the incorrect answers")
            return False

    return True


def parse_questions(data: Dict[str, Any]) -> List[Question]:
    """
    Parse a validated payload into Question objects.

    Args:
        data: Validated payload dictionary

    Returns:
        List of Question objects
    """
    questions = []

    for raw in data["results"]:
        correct = html.unescape(raw["correct_answer"])
        incorrect = [html.unescape(answer) for answer in raw["incorrect_answers"]]
        questions.append(Question(
            text=html.unescape(raw["question"]),
            correct_answer=correct,
            options=build_options(correct, incorrect),
            category=html.unescape(raw["category"]) if isinstance(raw.get("category"), str) else None,
            difficulty=raw.get("difficulty") if isinstance(raw.get("difficulty"), str) else None,
        ))

    return questions


class OpenTriviaSource:
    """Fetches question batches from the Open Trivia Database HTTP API."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize the source.

        Args:
            api_url: Endpoint of the question provider
            timeout: Total request timeout in seconds
            session: Optional shared HTTP session; it is never closed here
        """
        self.api_url = api_url
        self.timeout = timeout
        self._session = session

    async def fetch_batch(self, difficulty: Difficulty, count: int) -> QuestionBatch:
        """
        Fetch and normalize a batch of questions.

        Args:
            difficulty: Requested question difficulty
            count: Number of questions

        Returns:
            Tuple of Question objects with shuffled options

        Raises:
            FetchError: If the provider is unreachable, rejects the request,
                or returns a payload that does not match the schema
        """
        params = {
            'amount': str(count),
            'difficulty': Difficulty(difficulty).value,
            'type': 'multiple',
        }
        logger.info(f"Fetching {count} {params['difficulty']} questions from {self.api_url}")

        data = await self._get_json(params)

        if not isinstance(data, dict) or not isinstance(data.get("response_code"), int):
            raise FetchError(
                FetchErrorReason.MALFORMED_PAYLOAD,
                "Payload is missing an integer 'response_code'"
            )

        response_code = data["response_code"]
        if response_code != 0:
            description = RESPONSE_CODE_MESSAGES.get(response_code, "Unknown provider error")
            logger.warning(f"Question provider rejected request: code {response_code} ({description})")
            raise FetchError(
                FetchErrorReason.PROVIDER_REJECTED,
                f"Provider returned response code {response_code}: {description}",
                response_code=response_code
            )

        if not validate_payload(data):
            raise FetchError(
                FetchErrorReason.MALFORMED_PAYLOAD,
                "Payload does not match the expected schema"
            )

        questions = parse_questions(data)
        logger.info(f"Fetched {len(questions)} questions")
        return tuple(questions)

    async def _get_json(self, params: Dict[str, str]) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            if self._session is not None:
                return await self._request(self._session, params, timeout)
            async with aiohttp.ClientSession() as session:
                return await self._request(session, params, timeout)
        except FetchError:
            raise
        except asyncio.TimeoutError as e:
            raise FetchError(
                FetchErrorReason.NETWORK,
                f"Request timed out after {self.timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise FetchError(
                FetchErrorReason.NETWORK,
                f"Could not reach question provider: {e}"
            ) from e

    async def _request(
        self,
        session: aiohttp.ClientSession,
        params: Dict[str, str],
        timeout: aiohttp.ClientTimeout
    ) -> Any:
        async with session.get(self.api_url, params=params, timeout=timeout) as response:
            response.raise_for_status()
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise FetchError(
                    FetchErrorReason.MALFORMED_PAYLOAD,
                    f"Response body is not valid JSON: {e}"
                ) from e


FALLBACK_QUESTIONS = (
    {
        "question": "What is the capital of France?",
        "correct_answer": "Paris",
        "incorrect_answers": ["London", "Berlin", "Madrid"],
    },
    {
        "question": "Which planet is known as the Red Planet?",
        "correct_answer": "Mars",
        "incorrect_answers": ["Venus", "Jupiter", "Saturn"],
    },
    {
        "question": "What is 2 + 2?",
        "correct_answer": "4",
        "incorrect_answers": ["3", "5", "6"],
    },
)


class StaticQuestionSource:
    """Serves questions from an in-memory list."""

    def __init__(self, raw_questions: Sequence[Dict[str, Any]] = FALLBACK_QUESTIONS):
        if not validate_payload({"results": list(raw_questions)}):
            raise ValueError("Static questions do not match the expected schema")
        self._raw_questions = list(raw_questions)

    async def fetch_batch(self, difficulty: Difficulty, count: int) -> QuestionBatch:
        # Options are reshuffled on every fetch
        selected = self._raw_questions[:max(count, 0)]
        return tuple(parse_questions({"results": selected}))


class FallbackQuestionSource:
    """Tries a primary source once and serves the fallback set when it fails."""

    def __init__(self, primary: QuestionSource, fallback: Optional[QuestionSource] = None):
        self.primary = primary
        self.fallback = fallback or StaticQuestionSource()
        self.fallback_used = False

    async def fetch_batch(self, difficulty: Difficulty, count: int) -> QuestionBatch:
        try:
            batch = await self.primary.fetch_batch(difficulty, count)
            self.fallback_used = False
            return batch
        except FetchError as e:
            logger.warning(f"Primary question source failed ({e}), using fallback questions")
            self.fallback_used = True
            return await self.fallback.fetch_batch(difficulty, count)
