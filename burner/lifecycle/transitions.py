"""
Exam state machine.

Exams only move forward along the transitions listed here. Nothing skips
a state or moves backward; ``graded`` and ``grading_failed`` are terminal.
"""

from burner.errors import StructuralFailure
from burner.models import Exam, ExamStatus

# Valid transitions: (from_state, to_state) -> triggering event
_TRANSITIONS: dict[tuple[ExamStatus, ExamStatus], str] = {
    (ExamStatus.PENDING, ExamStatus.IN_PROGRESS): "start",
    (ExamStatus.IN_PROGRESS, ExamStatus.SUBMITTED): "submit",
    (ExamStatus.SUBMITTED, ExamStatus.GRADED): "grade",
    (ExamStatus.SUBMITTED, ExamStatus.GRADING_FAILED): "grade",
}


def valid_transitions(from_state: ExamStatus) -> list[ExamStatus]:
    """Return list of valid target states from given state."""
    return [t for (f, t) in _TRANSITIONS if f == from_state]


def can_transition(from_state: ExamStatus, to_state: ExamStatus) -> bool:
    """Check if ``from_state -> to_state`` is a legal move."""
    return (from_state, to_state) in _TRANSITIONS


def require_transition(exam: Exam, to_state: ExamStatus) -> None:
    """
    Raise unless ``exam`` may move to ``to_state``.

    Raises:
        StructuralFailure: With code ``invalid_status``.
    """
    if can_transition(exam.status, to_state):
        return
    event = next(
        (e for (_, t), e in _TRANSITIONS.items() if t == to_state),
        to_state.value,
    )
    raise StructuralFailure(
        f"Cannot {event} exam with status: {exam.status.value}",
        code="invalid_status",
    )
