"""
Shared test helpers: canned model responses and recording collaborators.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from burner.llm import Completion, Ok
from burner.tracing import LLMMetrics, SpanHandle, SpanKind, TraceHandle, Tracker

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


# ==============================================================================
# Helpers
# ==============================================================================


def completion(text: str, tokens: int | None = 120) -> Ok[Completion]:
    """Successful client result carrying ``text``."""
    return Ok(Completion(text=text, model="test-model", total_tokens=tokens, latency_ms=42))


def verdict(score: Any, feedback: str = "Solid reasoning.") -> Ok[Completion]:
    """Judge response with the given score."""
    return completion(json.dumps({"score": score, "feedback": feedback}))


def generation_payload(count: int = 5, **overrides: Any) -> dict[str, Any]:
    """A valid generation payload with every question type present."""
    questions: list[dict[str, Any]] = [
        {
            "id": "3f1c2a7e-5b4d-4c3a-9e8f-1a2b3c4d5e6f",
            "type": "multiple_choice",
            "question": "Which structure gives O(1) average lookup by key?",
            "options": ["Linked list", "Hash map", "Binary heap", "Stack"],
            "correct_answer": "Hash map",
            "difficulty": "intermediate",
        },
        {
            "id": "",
            "type": "short_answer",
            "question": "Explain why quicksort degrades to O(n^2).",
            "difficulty": "intermediate",
        },
        {
            "id": "",
            "type": "application",
            "question": "Design a cache for an API with skewed key access.",
            "difficulty": "advanced",
        },
    ]
    while len(questions) < count:
        questions.append(
            {
                "id": "",
                "type": "short_answer",
                "question": f"Describe trade-off number {len(questions)}.",
                "difficulty": "advanced",
            }
        )
    payload: dict[str, Any] = {"questions": questions}
    payload.update(overrides)
    return payload


# ==============================================================================
# Recording Collaborators
# ==============================================================================


class RecordingTracker(Tracker):
    """Tracker that keeps every call for assertions."""

    def __init__(self) -> None:
        self.traces: list[tuple[TraceHandle, dict[str, Any]]] = []
        self.ended: dict[str, dict[str, Any]] = {}
        self.spans: list[SpanHandle] = []
        self.span_outputs: dict[str, dict[str, Any]] = {}
        self.metrics: list[tuple[str, LLMMetrics]] = []
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def start_trace(self, name: str, input: dict[str, Any]) -> TraceHandle:
        handle = TraceHandle(id=self._next_id("trace"), name=name, started_at=START)
        self.traces.append((handle, input))
        return handle

    def end_trace(self, trace: TraceHandle, output: dict[str, Any]) -> None:
        self.ended[trace.id] = dict(output)

    def start_span(self, trace: TraceHandle, name: str, kind: SpanKind) -> SpanHandle:
        span = SpanHandle(
            id=self._next_id("span"), trace_id=trace.id, name=name, kind=kind, started_at=START
        )
        self.spans.append(span)
        return span

    def end_span(self, span: SpanHandle, output: dict[str, Any]) -> None:
        self.span_outputs[span.id] = dict(output)

    def log_metrics(self, trace_id: str, metrics: LLMMetrics) -> None:
        self.metrics.append((trace_id, metrics))

    @property
    def trace_names(self) -> list[str]:
        return [handle.name for handle, _ in self.traces]


class FakeClock:
    """Settable clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)
