"""
Pydantic models for the Burner engine.

These models define the strict schemas for:
- Commitments (the stake) and their creation input
- Exams, their questions, and the answers given to them
- Grading and stake-resolution results

All entities are immutable snapshots. State changes produce a new,
re-validated snapshot through ``evolve`` so that invariants are checked
on every write.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Self
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

MC_OPTION_COUNT = 4
OPTION_LABELS = ("A", "B", "C", "D")


def new_id() -> str:
    """Generate a canonical identifier."""
    return str(uuid4())


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# ==============================================================================
# Enumerations
# ==============================================================================


class QuestionType(str, Enum):
    """Kind of exam item."""

    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_ANSWER = "short_answer"
    APPLICATION = "application"


class QuestionDifficulty(str, Enum):
    """Difficulty floor is intermediate."""

    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class CommitmentStatus(str, Enum):
    """Lifecycle status of a commitment."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


class StakeStatus(str, Enum):
    """Status of the money on the line."""

    AT_RISK = "at_risk"
    SAVED = "saved"
    BURNED = "burned"


class ExamStatus(str, Enum):
    """Lifecycle status of an exam attempt."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"
    GRADING_FAILED = "grading_failed"


class ResolutionAction(str, Enum):
    """What the stake resolver did."""

    SAVED = "saved"
    BURNED = "burned"
    RETRY_ALLOWED = "retry_allowed"
    NO_CHANGE = "no_change"


# Stake status each commitment status may carry.
ALLOWED_STAKE_STATUS: dict[CommitmentStatus, StakeStatus] = {
    CommitmentStatus.ACTIVE: StakeStatus.AT_RISK,
    CommitmentStatus.COMPLETED: StakeStatus.SAVED,
    CommitmentStatus.FAILED: StakeStatus.BURNED,
    CommitmentStatus.EXPIRED: StakeStatus.BURNED,
}

UNRESOLVED_EXAM_STATUSES = frozenset(
    {ExamStatus.PENDING, ExamStatus.IN_PROGRESS, ExamStatus.SUBMITTED}
)


class Entity(BaseModel):
    """Base for immutable stored records."""

    model_config = ConfigDict(frozen=True)

    def evolve(self, **changes: Any) -> Self:
        """Return a re-validated copy with ``changes`` applied."""
        return type(self).model_validate({**self.model_dump(), **changes})


# ==============================================================================
# Commitment Models
# ==============================================================================


class CreateCommitmentInput(BaseModel):
    """Input contract for creating a commitment."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(
        ...,
        min_length=3,
        max_length=200,
        description="What the user commits to learn",
    )

    stake_amount: Decimal = Field(
        ...,
        ge=1,
        le=1000,
        description="Symbolic amount at stake",
    )

    duration_days: int = Field(
        ...,
        ge=1,
        le=90,
        description="Days until the deadline",
    )

    @field_validator("topic", mode="before")
    @classmethod
    def strip_topic(cls, v: Any) -> Any:
        """Trim surrounding whitespace before length checks."""
        return v.strip() if isinstance(v, str) else v

    @field_validator("stake_amount", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        """Convert numeric values to Decimal for precision."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return Decimal(str(v))
        return v


class Commitment(Entity):
    """
    A user's staked pledge to learn a topic by a deadline.

    The stake status is tied to the commitment status: ``at_risk`` only
    while active, ``saved`` only when completed, ``burned`` only when
    failed or expired.
    """

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=3, max_length=200)
    stake_amount: Decimal = Field(..., ge=1, le=1000)
    duration_days: int = Field(..., ge=1, le=90)
    created_at: datetime
    deadline: datetime
    status: CommitmentStatus = CommitmentStatus.ACTIVE
    stake_status: StakeStatus = StakeStatus.AT_RISK
    retry_used: bool = False

    @model_validator(mode="after")
    def validate_stake_status(self) -> "Commitment":
        """Ensure stake status is consistent with status."""
        expected = ALLOWED_STAKE_STATUS[self.status]
        if self.stake_status != expected:
            raise ValueError(
                f"stake_status '{self.stake_status.value}' is not allowed for "
                f"status '{self.status.value}' (expected '{expected.value}')"
            )
        return self

    @classmethod
    def create(cls, user_id: str, data: CreateCommitmentInput, now: datetime) -> "Commitment":
        """Build a fresh active commitment; the deadline is fixed here."""
        return cls(
            user_id=user_id,
            topic=data.topic,
            stake_amount=data.stake_amount,
            duration_days=data.duration_days,
            created_at=now,
            deadline=now + timedelta(days=data.duration_days),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status != CommitmentStatus.ACTIVE

    def deadline_passed(self, now: datetime) -> bool:
        return now > self.deadline


# ==============================================================================
# Exam Models
# ==============================================================================


def correct_option_index(options: tuple[str, ...], correct_answer: str) -> int | None:
    """
    Locate the option a correct answer refers to.

    The answer matches either an option's full text or its letter label
    (``A``-``D``, with or without a trailing ``)`` or ``.``).
    """
    candidate = correct_answer.strip()
    for i, option in enumerate(options):
        if candidate == option.strip():
            return i
    label = candidate.rstrip(").").strip().upper()
    if label in OPTION_LABELS[: len(options)]:
        return OPTION_LABELS.index(label)
    return None


class Question(BaseModel):
    """One exam item. Immutable once generated."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    type: QuestionType
    prompt: str = Field(..., min_length=1)
    options: tuple[str, ...] | None = None
    correct_answer: str | None = None
    difficulty: QuestionDifficulty

    @model_validator(mode="after")
    def validate_choice_fields(self) -> "Question":
        """Multiple choice carries 4 options and an answer drawn from them; others carry neither."""
        if self.type == QuestionType.MULTIPLE_CHOICE:
            if self.options is None or len(self.options) != MC_OPTION_COUNT:
                raise ValueError(
                    f"Multiple choice question '{self.id}' must have exactly "
                    f"{MC_OPTION_COUNT} options"
                )
            if not self.correct_answer:
                raise ValueError(f"Multiple choice question '{self.id}' must have a correct_answer")
            if correct_option_index(self.options, self.correct_answer) is None:
                raise ValueError(
                    f"correct_answer '{self.correct_answer}' of question '{self.id}' "
                    "is not one of its options"
                )
        elif self.options is not None or self.correct_answer is not None:
            raise ValueError(f"{self.type.value} question '{self.id}' must not carry options")
        return self


class Exam(Entity):
    """
    One attempt at proving mastery of a commitment's topic.

    ``overall_score`` and ``passed`` are set together, and only on a
    graded exam.
    """

    id: str = Field(default_factory=new_id)
    commitment_id: str
    questions: tuple[Question, ...] = ()
    status: ExamStatus = ExamStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    overall_score: int | None = Field(default=None, ge=0, le=100)
    passed: bool | None = None
    trace_id: str | None = None

    @model_validator(mode="after")
    def validate_grade_fields(self) -> "Exam":
        """Score and pass flag travel together, and only once graded."""
        if (self.overall_score is None) != (self.passed is None):
            raise ValueError("overall_score and passed must be set together")
        if self.overall_score is not None and self.status != ExamStatus.GRADED:
            raise ValueError("overall_score may only be set on a graded exam")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def question_ids(self) -> tuple[str, ...]:
        """Question identifiers in exam order."""
        return tuple(q.id for q in self.questions)

    @property
    def is_unresolved(self) -> bool:
        return self.status in UNRESOLVED_EXAM_STATUSES

    def question(self, question_id: str) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


class Answer(Entity):
    """A user's response to one question within one exam."""

    id: str = Field(default_factory=new_id)
    exam_id: str
    question_id: str
    answer_text: str
    score: int | None = Field(default=None, ge=0, le=100)
    feedback: str | None = None
    graded_at: datetime | None = None
    span_id: str | None = None

    @model_validator(mode="after")
    def validate_grade_fields(self) -> "Answer":
        """Score and feedback travel together."""
        if (self.score is None) != (self.feedback is None):
            raise ValueError("score and feedback must be set together")
        return self


# ==============================================================================
# Result Models
# ==============================================================================


class GradeResult(BaseModel):
    """Grade of a single answer."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, le=100)
    feedback: str = Field(..., min_length=1)
    span_id: str | None = None


class QuestionGrade(GradeResult):
    """Grade of one question within an exam."""

    question_id: str


class ExamGradeResult(BaseModel):
    """Aggregate grade for an exam."""

    model_config = ConfigDict(frozen=True)

    overall_score: int = Field(..., ge=0, le=100)
    passed: bool
    per_question: tuple[QuestionGrade, ...]
    trace_id: str | None = None


class ResolutionResult(BaseModel):
    """Outcome of resolving a commitment's stake."""

    model_config = ConfigDict(frozen=True)

    commitment: Commitment
    action: ResolutionAction
    previous_status: CommitmentStatus
    previous_stake_status: StakeStatus
    message: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def changed(self) -> bool:
        """Whether the commitment differs from the resolver's input."""
        return self.action != ResolutionAction.NO_CHANGE


class GradingOutcome(BaseModel):
    """Everything written by a successful grading pass."""

    model_config = ConfigDict(frozen=True)

    exam: Exam
    answers: tuple[Answer, ...]
    grade: ExamGradeResult
    resolution: ResolutionResult
