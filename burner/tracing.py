"""
Observability hooks for LLM calls.

A ``Tracker`` receives one trace per logical operation (question
generation, exam grading) and one span per completion attempt. Trackers
are purely informational: the ``traced`` and ``spanned`` helpers log and
swallow any tracker failure so the engine never depends on it.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Literal, NamedTuple

from loguru import logger

from burner.models import new_id, utcnow

SpanKind = Literal["llm", "tool", "general"]


class TraceHandle(NamedTuple):
    """An open trace."""

    id: str
    name: str
    started_at: datetime


class SpanHandle(NamedTuple):
    """An open span within a trace."""

    id: str
    trace_id: str
    name: str
    kind: SpanKind
    started_at: datetime


class LLMMetrics(NamedTuple):
    """Metrics reported for an LLM interaction."""

    latency_ms: int | None = None
    model: str | None = None
    token_count: int | None = None
    evaluation_score: int | None = None
    prompt_version: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self._asdict().items() if v is not None}


class Tracker(ABC):
    """Observability collaborator interface."""

    @abstractmethod
    def start_trace(self, name: str, input: dict[str, Any]) -> TraceHandle: ...

    @abstractmethod
    def end_trace(self, trace: TraceHandle, output: dict[str, Any]) -> None: ...

    @abstractmethod
    def start_span(self, trace: TraceHandle, name: str, kind: SpanKind) -> SpanHandle: ...

    @abstractmethod
    def end_span(self, span: SpanHandle, output: dict[str, Any]) -> None: ...

    @abstractmethod
    def log_metrics(self, trace_id: str, metrics: LLMMetrics) -> None: ...


class LoguruTracker(Tracker):
    """Default tracker: emits trace and span records to the log at DEBUG."""

    def __init__(self, project_name: str = "burner"):
        self.project_name = project_name

    def start_trace(self, name: str, input: dict[str, Any]) -> TraceHandle:
        trace = TraceHandle(id=new_id(), name=name, started_at=utcnow())
        logger.debug(f"[{self.project_name}] trace start {name} id={trace.id} input={input}")
        return trace

    def end_trace(self, trace: TraceHandle, output: dict[str, Any]) -> None:
        elapsed = int((utcnow() - trace.started_at).total_seconds() * 1000)
        logger.debug(
            f"[{self.project_name}] trace end {trace.name} id={trace.id} "
            f"duration_ms={elapsed} output={output}"
        )

    def start_span(self, trace: TraceHandle, name: str, kind: SpanKind) -> SpanHandle:
        span = SpanHandle(
            id=new_id(), trace_id=trace.id, name=name, kind=kind, started_at=utcnow()
        )
        logger.debug(f"[{self.project_name}] span start {name} ({kind}) id={span.id} trace={trace.id}")
        return span

    def end_span(self, span: SpanHandle, output: dict[str, Any]) -> None:
        logger.debug(f"[{self.project_name}] span end {span.name} id={span.id} output={output}")

    def log_metrics(self, trace_id: str, metrics: LLMMetrics) -> None:
        logger.debug(f"[{self.project_name}] metrics trace={trace_id} {metrics.as_dict()}")


class TraceScope:
    """Mutable holder for a trace's output, filled in by the traced block."""

    def __init__(self, tracker: Tracker, handle: TraceHandle | None):
        self.tracker = tracker
        self.handle = handle
        self.output: dict[str, Any] = {}

    @property
    def id(self) -> str | None:
        return self.handle.id if self.handle else None

    def log_metrics(self, metrics: LLMMetrics) -> None:
        if self.handle is None:
            return
        try:
            self.tracker.log_metrics(self.handle.id, metrics)
        except Exception as e:
            logger.warning(f"Tracker failed to log metrics: {e}")


class SpanScope:
    """Mutable holder for a span's output."""

    def __init__(self, handle: SpanHandle | None):
        self.handle = handle
        self.output: dict[str, Any] = {}

    @property
    def id(self) -> str | None:
        return self.handle.id if self.handle else None


@contextmanager
def traced(tracker: Tracker, name: str, input: dict[str, Any]) -> Iterator[TraceScope]:
    """
    Run a block under a trace.

    The trace is closed whether the block succeeds or raises; an exception
    is recorded in the trace output and re-raised.
    """
    try:
        handle: TraceHandle | None = tracker.start_trace(name, input)
    except Exception as e:
        logger.warning(f"Tracker failed to start trace '{name}': {e}")
        handle = None

    scope = TraceScope(tracker, handle)
    try:
        yield scope
    except Exception as e:
        scope.output.setdefault("error", str(e))
        raise
    finally:
        if handle is not None:
            try:
                tracker.end_trace(handle, scope.output)
            except Exception as e:
                logger.warning(f"Tracker failed to end trace '{name}': {e}")


@contextmanager
def spanned(scope: TraceScope, name: str, kind: SpanKind = "llm") -> Iterator[SpanScope]:
    """Run a block under a span nested in ``scope``."""
    handle: SpanHandle | None = None
    if scope.handle is not None:
        try:
            handle = scope.tracker.start_span(scope.handle, name, kind)
        except Exception as e:
            logger.warning(f"Tracker failed to start span '{name}': {e}")

    span = SpanScope(handle)
    try:
        yield span
    except Exception as e:
        span.output.setdefault("error", str(e))
        raise
    finally:
        if handle is not None:
            try:
                scope.tracker.end_span(handle, span.output)
            except Exception as e:
                logger.warning(f"Tracker failed to end span '{name}': {e}")
