"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

from unittest.mock import MagicMock

import pytest

from burner.config import Settings
from burner.models import Question, QuestionDifficulty, QuestionType
from burner.storage import InMemoryRepository
from tests.helpers import FakeClock, RecordingTracker


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with mocked values."""
    return Settings(
        _env_file=None,
        llm_api_keys="key-a, key-b,key-c",
        llm_base_url="https://test.api.local/v1/",
        llm_model="test-model",
        max_attempts=3,
        backoff_seconds=(1.0, 2.0, 4.0),
        default_question_count=5,
        grading_concurrency=1,
    )


# ==============================================================================
# Collaborator Fixtures
# ==============================================================================


@pytest.fixture
def sleeps() -> list[float]:
    """Waits requested by the retry runner."""
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]):
    return sleeps.append


@pytest.fixture
def tracker() -> RecordingTracker:
    return RecordingTracker()


@pytest.fixture
def mock_client() -> MagicMock:
    """Mock the LLM client to avoid actual API calls."""
    client = MagicMock()
    client.model = "test-model"
    client.health_check.return_value = True
    return client


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


# ==============================================================================
# Question Fixtures
# ==============================================================================


@pytest.fixture
def mc_question() -> Question:
    """Multiple choice question whose answer is given by letter."""
    return Question(
        type=QuestionType.MULTIPLE_CHOICE,
        prompt="Which structure gives O(1) average lookup by key?",
        options=("Linked list", "Hash map", "Binary heap", "Stack"),
        correct_answer="B",
        difficulty=QuestionDifficulty.INTERMEDIATE,
    )


@pytest.fixture
def short_question() -> Question:
    return Question(
        type=QuestionType.SHORT_ANSWER,
        prompt="Explain why quicksort degrades to O(n^2).",
        difficulty=QuestionDifficulty.INTERMEDIATE,
    )


@pytest.fixture
def application_question() -> Question:
    return Question(
        type=QuestionType.APPLICATION,
        prompt="Design a cache for an API with skewed key access.",
        difficulty=QuestionDifficulty.ADVANCED,
    )
