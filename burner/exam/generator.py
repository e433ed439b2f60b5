"""
Question generator - turns a topic into a validated exam.

One completion is requested per attempt. The raw text is parsed and
validated against a strict schema; any transport or validation failure
is retried under the fixed attempt budget.
"""

import re
import time
from collections.abc import Callable
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from burner.config import Settings, get_settings
from burner.errors import ValidationFailure
from burner.exam.prompt_builder import PromptBuilder
from burner.llm import (
    AttemptResult,
    Failure,
    FailureKind,
    LLMClient,
    Ok,
    RetryPolicy,
    extract_json_object,
    run_with_retry,
    validate_payload,
)
from burner.models import Question, QuestionDifficulty, QuestionType
from burner.tracing import LLMMetrics, LoguruTracker, TraceScope, Tracker, spanned, traced

MIN_QUESTIONS = 5
MAX_QUESTIONS = 10

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


# ==============================================================================
# Model Output Schema
# ==============================================================================


class GeneratedQuestion(BaseModel):
    """A question as the model returns it."""

    id: str = ""
    type: QuestionType
    question: str = Field(..., min_length=1)
    options: list[str] | None = None
    correct_answer: str | None = None
    difficulty: QuestionDifficulty


class GeneratedExam(BaseModel):
    """Top-level generation payload."""

    questions: list[GeneratedQuestion] = Field(..., min_length=MIN_QUESTIONS, max_length=MAX_QUESTIONS)


def normalize_question_id(raw_id: str, seen: set[str]) -> str:
    """Keep a well-formed, unused UUID; otherwise mint a fresh one."""
    candidate = raw_id.strip().lower()
    if not UUID_PATTERN.match(candidate) or candidate in seen:
        candidate = str(uuid4())
    seen.add(candidate)
    return candidate


def parse_questions(response: str) -> AttemptResult[list[Question]]:
    """
    Parse and validate a generation response.

    Args:
        response: Raw model output, possibly wrapped in a markdown fence.

    Returns:
        ``Ok`` with the validated questions, or a schema ``Failure``.
    """
    extracted = extract_json_object(response)
    if isinstance(extracted, Failure):
        return extracted

    payload = validate_payload(GeneratedExam, extracted.value)
    if isinstance(payload, Failure):
        return payload
    generated = payload.value.questions

    present = {q.type for q in generated}
    missing = [t.value for t in QuestionType if t not in present]
    if missing:
        return Failure(
            FailureKind.SCHEMA, f"Missing required question types: {', '.join(missing)}"
        )

    seen: set[str] = set()
    questions: list[Question] = []
    for item in generated:
        is_choice = item.type == QuestionType.MULTIPLE_CHOICE
        try:
            questions.append(
                Question(
                    id=normalize_question_id(item.id, seen),
                    type=item.type,
                    prompt=item.question.strip(),
                    options=tuple(item.options) if is_choice and item.options is not None else None,
                    correct_answer=item.correct_answer if is_choice else None,
                    difficulty=item.difficulty,
                )
            )
        except ValidationError as e:
            message = e.errors()[0]["msg"] if e.errors() else str(e)
            return Failure(FailureKind.SCHEMA, message)

    return Ok(questions)


# ==============================================================================
# Generator
# ==============================================================================


class QuestionGenerator:
    """
    Generates exam questions for a topic.

    Emits one trace per call and one span per completion attempt.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: LLMClient | None = None,
        tracker: Tracker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the generator.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            client: Completion client. Built from settings if not provided.
            tracker: Observability collaborator. Logs to loguru if not provided.
            sleep: Backoff wait function.
        """
        self._settings = settings or get_settings()
        self._client = client or LLMClient(self._settings)
        self._tracker = tracker or LoguruTracker()
        self._policy = RetryPolicy.from_settings(self._settings)
        self._sleep = sleep

    def generate(self, topic: str, question_count: int | None = None) -> list[Question]:
        """
        Generate a validated question set.

        Args:
            topic: The learning topic.
            question_count: Number of questions (5-10). Uses config default if None.

        Returns:
            Questions covering all three types.

        Raises:
            ValidationFailure: If the topic is empty or the count is out of range.
            MaxRetriesExceeded: If every attempt failed.
        """
        count = question_count if question_count is not None else self._settings.default_question_count
        if not topic or not topic.strip():
            raise ValidationFailure("Topic cannot be empty")
        if not MIN_QUESTIONS <= count <= MAX_QUESTIONS:
            raise ValidationFailure(
                f"Question count must be between {MIN_QUESTIONS} and {MAX_QUESTIONS}"
            )

        topic = topic.strip()
        with traced(
            self._tracker, "exam-generation", {"topic": topic, "question_count": count}
        ) as trace:
            questions = run_with_retry(
                lambda attempt: self._attempt(topic, count, trace, attempt),
                self._policy,
                sleep=self._sleep,
                operation="Question generation",
            )
            trace.output = {"question_count": len(questions)}

        logger.info(f"Generated {len(questions)} questions for '{topic}' (trace {trace.id})")
        return questions

    def _attempt(
        self, topic: str, count: int, trace: TraceScope, attempt: int
    ) -> AttemptResult[list[Question]]:
        """Single completion plus validation."""
        with spanned(trace, "llm-completion", "llm") as span:
            span.output = {"attempt": attempt}
            result = self._client.complete(
                system_prompt=PromptBuilder.GENERATION_SYSTEM_PROMPT,
                user_prompt=PromptBuilder.build_generation_prompt(topic, count),
            )
            if isinstance(result, Failure):
                span.output["failure"] = str(result)
                return result

            completion = result.value
            trace.log_metrics(
                LLMMetrics(
                    latency_ms=completion.latency_ms,
                    model=completion.model,
                    token_count=completion.total_tokens,
                    prompt_version=self._settings.prompt_version,
                )
            )
            logger.debug(
                f"Generation attempt {attempt} completed in {completion.latency_ms}ms, "
                f"tokens: {completion.total_tokens or 'unknown'}"
            )

            parsed = parse_questions(completion.text)
            if isinstance(parsed, Failure):
                span.output["failure"] = str(parsed)
            else:
                span.output["question_count"] = len(parsed.value)
            return parsed
