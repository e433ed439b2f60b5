"""
Answer grader - LLM-as-judge scoring of a single answer.

Empty answers are scored 0 without calling the model. Everything else is
sent to the judge under the same attempt budget as question generation.
"""

import time
from collections.abc import Callable

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from burner.config import Settings, get_settings
from burner.exam.prompt_builder import PromptBuilder
from burner.llm import (
    AttemptResult,
    Failure,
    LLMClient,
    Ok,
    RetryPolicy,
    extract_json_object,
    run_with_retry,
    validate_payload,
)
from burner.models import GradeResult, Question
from burner.tracing import LLMMetrics, LoguruTracker, TraceScope, Tracker, spanned, traced

EMPTY_ANSWER_FEEDBACK = "No answer provided."


class JudgeVerdict(BaseModel):
    """Grading payload as the model returns it."""

    score: int = Field(..., ge=0, le=100, strict=True)
    feedback: str = Field(..., min_length=1)

    @field_validator("feedback")
    @classmethod
    def validate_feedback(cls, v: str) -> str:
        """Reject whitespace-only feedback."""
        if not v.strip():
            raise ValueError("Feedback cannot be empty")
        return v.strip()


def parse_verdict(response: str) -> AttemptResult[JudgeVerdict]:
    """Parse and validate a grading response."""
    extracted = extract_json_object(response)
    if isinstance(extracted, Failure):
        return extracted
    return validate_payload(JudgeVerdict, extracted.value)


class AnswerGrader:
    """Scores one answer against its question."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: LLMClient | None = None,
        tracker: Tracker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._settings = settings or get_settings()
        self._client = client or LLMClient(self._settings)
        self._tracker = tracker or LoguruTracker()
        self._policy = RetryPolicy.from_settings(self._settings)
        self._sleep = sleep

    def grade_answer(
        self, question: Question, answer_text: str, trace: TraceScope | None = None
    ) -> GradeResult:
        """
        Grade an answer.

        Args:
            question: The question answered.
            answer_text: The submitted answer.
            trace: Trace to nest attempt spans under. A new trace is opened if None.

        Returns:
            Score (0-100), feedback, and the span of the successful attempt.

        Raises:
            MaxRetriesExceeded: If every attempt failed.
        """
        if not answer_text or not answer_text.strip():
            return GradeResult(score=0, feedback=EMPTY_ANSWER_FEEDBACK)

        if trace is not None:
            return self._grade(question, answer_text, trace)

        with traced(
            self._tracker,
            "answer-grading",
            {"question_id": question.id, "question_type": question.type.value},
        ) as own_trace:
            result = self._grade(question, answer_text, own_trace)
            own_trace.output = {"score": result.score}
        return result

    def _grade(self, question: Question, answer_text: str, trace: TraceScope) -> GradeResult:
        result = run_with_retry(
            lambda attempt: self._attempt(question, answer_text, trace, attempt),
            self._policy,
            sleep=self._sleep,
            operation=f"Grading question {question.id}",
        )
        logger.debug(f"Graded question {question.id}: score {result.score}")
        return result

    def _attempt(
        self, question: Question, answer_text: str, trace: TraceScope, attempt: int
    ) -> AttemptResult[GradeResult]:
        """Single judge call plus validation."""
        with spanned(trace, f"grade-question-{question.id}", "llm") as span:
            span.output = {"attempt": attempt}
            result = self._client.complete(
                system_prompt=PromptBuilder.GRADING_SYSTEM_PROMPT,
                user_prompt=PromptBuilder.build_grading_prompt(question, answer_text),
            )
            if isinstance(result, Failure):
                span.output["failure"] = str(result)
                return result

            completion = result.value
            verdict = parse_verdict(completion.text)
            if isinstance(verdict, Failure):
                span.output["failure"] = str(verdict)
                return verdict

            score = verdict.value.score
            trace.log_metrics(
                LLMMetrics(
                    latency_ms=completion.latency_ms,
                    model=completion.model,
                    token_count=completion.total_tokens,
                    evaluation_score=score,
                    prompt_version=self._settings.prompt_version,
                )
            )
            span.output["score"] = score
            return Ok(GradeResult(score=score, feedback=verdict.value.feedback, span_id=span.id))
