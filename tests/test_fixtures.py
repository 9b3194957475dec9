"""
Test fixtures and sample data for the trivia game tests.
"""
import asyncio
import copy
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, Mock

import discord

from trivia_game.models import Difficulty, Question


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def create_sample_questions() -> Tuple[Question, ...]:
        """Create sample questions for testing."""
        return (
            Question("What is 2+2?", "4", ("3", "4", "5", "6")),
            Question("What is the capital of France?", "Paris", ("London", "Berlin", "Paris", "Madrid")),
            Question("Which planet is known as the Red Planet?", "Mars", ("Venus", "Mars", "Jupiter", "Saturn")),
            Question("What is the largest planet?", "Jupiter", ("Earth", "Mars", "Jupiter", "Saturn")),
        )

    @staticmethod
    def create_valid_payload() -> Dict[str, Any]:
        """Create a successful provider payload, HTML-encoded like the real API."""
        return copy.deepcopy({
            "response_code": 0,
            "results": [
                {
                    "category": "Science &amp; Nature",
                    "type": "multiple",
                    "difficulty": "medium",
                    "question": "What is the chemical symbol for &quot;gold&quot;?",
                    "correct_answer": "Au",
                    "incorrect_answers": ["Ag", "Gd", "Go"]
                },
                {
                    "category": "Geography",
                    "type": "multiple",
                    "difficulty": "medium",
                    "question": "What is the capital of Japan?",
                    "correct_answer": "Tokyo",
                    "incorrect_answers": ["Kyoto", "Osaka", "Nagoya"]
                },
                {
                    "category": "Entertainment: Video Games",
                    "type": "multiple",
                    "difficulty": "medium",
                    "question": "Which company made &#039;Half-Life&#039;?",
                    "correct_answer": "Valve",
                    "incorrect_answers": ["Id Software", "Epic Games", "Blizzard"]
                }
            ]
        })

    @staticmethod
    def create_invalid_payloads() -> List[Any]:
        """Create payloads with response_code 0 that do not match the schema."""
        return [
            # Missing results
            {"response_code": 0},
            # Results not a list
            {"response_code": 0, "results": "nope"},
            # Result not an object
            {"response_code": 0, "results": ["question"]},
            # Missing correct answer
            {"response_code": 0, "results": [
                {"question": "Q?", "incorrect_answers": ["a", "b", "c"]}
            ]},
            # Incorrect answers not a list
            {"response_code": 0, "results": [
                {"question": "Q?", "correct_answer": "a", "incorrect_answers": "b"}
            ]},
            # No incorrect answers
            {"response_code": 0, "results": [
                {"question": "Q?", "correct_answer": "a", "incorrect_answers": []}
            ]},
            # Non-string option
            {"response_code": 0, "results": [
                {"question": "Q?", "correct_answer": "a", "incorrect_answers": ["b", 3]}
            ]},
            # Correct answer duplicated among the incorrect ones
            {"response_code": 0, "results": [
                {"question": "Q?", "correct_answer": "a", "incorrect_answers": ["b", "a"]}
            ]},
        ]


class FakeQuestionSource:
    """Question source that returns a canned batch or raises a canned error."""

    def __init__(self, batch=None, error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None):
        self.batch = TestFixtures.create_sample_questions() if batch is None else batch
        self.error = error
        self.gate = gate
        self.calls: List[Tuple[Difficulty, int]] = []

    async def fetch_batch(self, difficulty: Difficulty, count: int):
        self.calls.append((difficulty, count))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.batch[:count]


class FakeResponse:
    """Stand-in for aiohttp.ClientResponse."""

    def __init__(self, payload: Any = None, status_error: Optional[Exception] = None,
                 json_error: Optional[Exception] = None):
        self.payload = payload
        self.status_error = status_error
        self.json_error = json_error

    def raise_for_status(self) -> None:
        if self.status_error is not None:
            raise self.status_error

    async def json(self, content_type=None):
        if self.json_error is not None:
            raise self.json_error
        return self.payload


class _FakeRequestContext:
    def __init__(self, session: "FakeClientSession"):
        self.session = session

    async def __aenter__(self):
        if self.session.request_error is not None:
            raise self.session.request_error
        return self.session.response

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeClientSession:
    """Stand-in for aiohttp.ClientSession recording every GET."""

    def __init__(self, response: Optional[FakeResponse] = None, request_error: Optional[Exception] = None):
        self.response = response or FakeResponse(TestFixtures.create_valid_payload())
        self.request_error = request_error
        self.requests: List[Dict[str, Any]] = []

    def get(self, url, params=None, timeout=None):
        self.requests.append({'url': url, 'params': params, 'timeout': timeout})
        return _FakeRequestContext(self)


class MockDiscordObjects:
    """Mock Discord objects for testing bot functionality."""

    @staticmethod
    def create_mock_interaction(user_id: int = 67890, channel=None) -> Mock:
        """Create mock Discord interaction."""
        interaction = Mock(spec=discord.Interaction)
        interaction.user.id = user_id
        interaction.channel = channel or MockDiscordObjects.create_mock_channel()
        interaction.response = Mock()
        interaction.response.is_done.return_value = False
        interaction.response.send_message = AsyncMock()
        interaction.response.defer = AsyncMock()
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        return interaction

    @staticmethod
    def create_mock_channel(channel_id: int = 12345) -> Mock:
        """Create mock Discord channel whose send() returns a mock message."""
        channel = Mock(spec=discord.TextChannel)
        channel.id = channel_id
        channel.send = AsyncMock(return_value=MockDiscordObjects.create_mock_message())
        return channel

    @staticmethod
    def create_mock_message(message_id: int = 11111) -> Mock:
        """Create mock Discord message."""
        message = Mock(spec=discord.Message)
        message.id = message_id
        message.edit = AsyncMock()
        return message


class EventRecorder:
    """Listener that records (event, view) pairs emitted by a GameSession."""

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []

    def __call__(self, event, view):
        self.events.append((event, view))

    def names(self) -> List[str]:
        return [event for event, _ in self.events]


class AsyncTestHelpers:
    """Helper functions for async testing."""

    @staticmethod
    async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.001) -> None:
        """Poll predicate until it holds, failing after timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"Condition not met within {timeout}s")
            await asyncio.sleep(interval)
