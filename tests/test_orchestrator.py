"""
Integration tests for the lifecycle orchestrator.

Drives commitments and exams end to end against the in-memory repository
with a mocked completion client standing in for the model.
"""

import json
from datetime import timedelta
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock

import pytest

from burner.config import Settings
from burner.errors import (
    AuthorizationFailure,
    MaxRetriesExceeded,
    NotFoundError,
    StructuralFailure,
    ValidationFailure,
)
from burner.exam import AnswerGrader, ExamAggregator, PromptBuilder, QuestionGenerator
from burner.lifecycle import LifecycleOrchestrator
from burner.llm import Failure, FailureKind
from burner.models import (
    Commitment,
    CommitmentStatus,
    Exam,
    ExamStatus,
    ResolutionAction,
    StakeStatus,
)
from burner.storage import InMemoryRepository
from tests.helpers import FakeClock, RecordingTracker, completion, generation_payload, verdict


class FakeModel:
    """Answers generation and grading prompts with canned responses."""

    def __init__(self) -> None:
        self.judge_score: int | None = 80
        self.generation_ok = True
        self.calls: list[str] = []

    def __call__(self, system_prompt: str, user_prompt: str) -> Any:
        if system_prompt == PromptBuilder.GENERATION_SYSTEM_PROMPT:
            self.calls.append("generate")
            if not self.generation_ok:
                return completion("no json here")
            return completion(json.dumps(generation_payload()))
        self.calls.append("grade")
        if self.judge_score is None:
            return Failure(FailureKind.TIMEOUT, "judge timed out")
        return verdict(self.judge_score, f"Scored {self.judge_score}.")


@pytest.fixture
def model(mock_client: MagicMock) -> FakeModel:
    fake = FakeModel()
    mock_client.complete.side_effect = fake
    return fake


@pytest.fixture
def user() -> dict[str, str | None]:
    return {"id": "user-1"}


@pytest.fixture
def orchestrator(
    test_settings: Settings,
    repository: InMemoryRepository,
    mock_client: MagicMock,
    model: FakeModel,
    tracker: RecordingTracker,
    fake_sleep,
    clock: FakeClock,
    user: dict[str, str | None],
) -> LifecycleOrchestrator:
    grader = AnswerGrader(test_settings, client=mock_client, tracker=tracker, sleep=fake_sleep)
    return LifecycleOrchestrator(
        repository,
        current_user=lambda: user["id"],
        generator=QuestionGenerator(test_settings, client=mock_client, tracker=tracker, sleep=fake_sleep),
        aggregator=ExamAggregator(grader, settings=test_settings, tracker=tracker),
        settings=test_settings,
        clock=clock,
    )


@pytest.fixture
def commitment(orchestrator: LifecycleOrchestrator) -> Commitment:
    return orchestrator.create_commitment("Rust ownership", 50, 7)


def _answer_all(orchestrator: LifecycleOrchestrator, exam: Exam) -> None:
    for q in exam.questions:
        orchestrator.submit_answer(exam.id, q.id, f"My answer to {q.id}")


def _submitted_exam(orchestrator: LifecycleOrchestrator, commitment: Commitment) -> Exam:
    exam = orchestrator.generate_exam(commitment.id)
    orchestrator.start_exam(exam.id)
    _answer_all(orchestrator, exam)
    return orchestrator.submit_exam(exam.id)


class TestCommitments:
    """Tests for commitment creation and reads."""

    def test_create(self, orchestrator: LifecycleOrchestrator, clock: FakeClock) -> None:
        """Test a new commitment is active with its stake at risk."""
        commitment = orchestrator.create_commitment("  Rust ownership  ", 50, 7)

        assert commitment.user_id == "user-1"
        assert commitment.topic == "Rust ownership"
        assert commitment.stake_amount == Decimal("50")
        assert commitment.status == CommitmentStatus.ACTIVE
        assert commitment.stake_status == StakeStatus.AT_RISK
        assert commitment.retry_used is False
        assert commitment.created_at == clock.now
        assert commitment.deadline == clock.now + timedelta(days=7)

    @pytest.mark.parametrize(
        "topic, stake, days",
        [
            ("ab", 50, 7),
            ("x" * 201, 50, 7),
            ("Rust", 0, 7),
            ("Rust", 1001, 7),
            ("Rust", 50, 0),
            ("Rust", 50, 91),
        ],
    )
    def test_create_invalid(
        self, orchestrator: LifecycleOrchestrator, topic: str, stake: int, days: int
    ) -> None:
        with pytest.raises(ValidationFailure) as exc_info:
            orchestrator.create_commitment(topic, stake, days)

        assert exc_info.value.code == "invalid_input"
        assert exc_info.value.errors

    def test_signed_out(self, orchestrator: LifecycleOrchestrator, user: dict) -> None:
        user["id"] = None

        with pytest.raises(AuthorizationFailure) as exc_info:
            orchestrator.create_commitment("Rust ownership", 50, 7)

        assert exc_info.value.code == "unauthorized"

    def test_ownership(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, user: dict
    ) -> None:
        """Test another user can neither read nor act on the commitment."""
        user["id"] = "user-2"

        with pytest.raises(AuthorizationFailure) as exc_info:
            orchestrator.get_commitment(commitment.id)
        assert exc_info.value.code == "forbidden"

        with pytest.raises(AuthorizationFailure):
            orchestrator.generate_exam(commitment.id)
        assert orchestrator.list_commitments() == []

    def test_not_found(self, orchestrator: LifecycleOrchestrator) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            orchestrator.get_commitment("missing")

        assert exc_info.value.code == "not_found"

    def test_list_ordering(self, orchestrator: LifecycleOrchestrator, clock: FakeClock) -> None:
        first = orchestrator.create_commitment("Rust ownership", 50, 30)
        clock.advance(hours=1)
        second = orchestrator.create_commitment("Go generics", 20, 3)
        clock.advance(hours=1)
        third = orchestrator.create_commitment("Haskell monads", 10, 10)

        assert [c.id for c in orchestrator.list_commitments()] == [third.id, second.id, first.id]
        assert [c.id for c in orchestrator.list_active_commitments()] == [
            second.id,
            third.id,
            first.id,
        ]

    def test_expire_overdue(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, clock: FakeClock
    ) -> None:
        clock.advance(days=8)

        expired = orchestrator.expire_overdue_commitments()

        assert [c.id for c in expired] == [commitment.id]
        stored = orchestrator.get_commitment(commitment.id)
        assert stored.status == CommitmentStatus.EXPIRED
        assert stored.stake_status == StakeStatus.BURNED
        assert orchestrator.list_active_commitments() == []


class TestExamLifecycle:
    """Tests for the exam state machine."""

    def test_full_lifecycle_pass(
        self,
        orchestrator: LifecycleOrchestrator,
        commitment: Commitment,
        model: FakeModel,
        clock: FakeClock,
        tracker: RecordingTracker,
    ) -> None:
        """Test create, generate, start, answer, submit and grade to a saved stake."""
        exam = orchestrator.generate_exam(commitment.id)
        assert exam.status == ExamStatus.PENDING
        assert len(exam.questions) == 5

        clock.advance(hours=1)
        started = orchestrator.start_exam(exam.id)
        assert started.status == ExamStatus.IN_PROGRESS
        assert started.started_at == clock.now

        _answer_all(orchestrator, exam)
        clock.advance(hours=1)
        submitted = orchestrator.submit_exam(exam.id)
        assert submitted.status == ExamStatus.SUBMITTED
        assert submitted.submitted_at == clock.now

        outcome = orchestrator.grade_exam(exam.id)

        assert outcome.exam.status == ExamStatus.GRADED
        assert outcome.exam.overall_score == 80
        assert outcome.exam.passed is True
        assert outcome.exam.trace_id == outcome.grade.trace_id
        assert outcome.resolution.action == ResolutionAction.SAVED
        assert outcome.resolution.message == "Congratulations! You passed and saved your stake."

        stored = orchestrator.get_commitment(commitment.id)
        assert stored.status == CommitmentStatus.COMPLETED
        assert stored.stake_status == StakeStatus.SAVED
        assert orchestrator.get_exam(exam.id) == outcome.exam

        answers = orchestrator.get_answers(exam.id)
        assert [a.question_id for a in answers] == list(exam.question_ids)
        span_ids = {s.id for s in tracker.spans}
        for answer in answers:
            assert answer.score == 80
            assert answer.feedback == "Scored 80."
            assert answer.graded_at == clock.now
            assert answer.span_id in span_ids

    def test_incomplete_submit(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment
    ) -> None:
        """Test submitting with unanswered questions keeps the exam in progress."""
        exam = orchestrator.generate_exam(commitment.id)
        orchestrator.start_exam(exam.id)
        orchestrator.submit_answer(exam.id, exam.questions[0].id, "Only one answer")

        with pytest.raises(StructuralFailure) as exc_info:
            orchestrator.submit_exam(exam.id)

        assert exc_info.value.code == "incomplete_exam"
        assert exc_info.value.message == "4 question(s) unanswered"
        assert orchestrator.get_exam(exam.id).status == ExamStatus.IN_PROGRESS

    def test_submit_answer_rules(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment
    ) -> None:
        exam = orchestrator.generate_exam(commitment.id)
        question_id = exam.questions[0].id

        with pytest.raises(StructuralFailure) as exc_info:
            orchestrator.submit_answer(exam.id, question_id, "Too early")
        assert exc_info.value.code == "invalid_status"

        orchestrator.start_exam(exam.id)

        with pytest.raises(ValidationFailure):
            orchestrator.submit_answer(exam.id, question_id, "   ")
        with pytest.raises(NotFoundError):
            orchestrator.submit_answer(exam.id, "not-a-question", "Answer")

        first = orchestrator.submit_answer(exam.id, question_id, "  First  ")
        second = orchestrator.submit_answer(exam.id, question_id, "Second")

        assert first.answer_text == "First"
        assert second.id == first.id
        assert [a.answer_text for a in orchestrator.get_answers(exam.id)] == ["Second"]

    def test_illegal_transitions(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment
    ) -> None:
        """Test no state is skipped and no transition repeats."""
        exam = orchestrator.generate_exam(commitment.id)

        with pytest.raises(StructuralFailure):
            orchestrator.submit_exam(exam.id)
        with pytest.raises(StructuralFailure):
            orchestrator.grade_exam(exam.id)

        orchestrator.start_exam(exam.id)
        with pytest.raises(StructuralFailure) as exc_info:
            orchestrator.start_exam(exam.id)
        assert exc_info.value.message == "Cannot start exam with status: in_progress"

    def test_one_unresolved_exam(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, model: FakeModel
    ) -> None:
        orchestrator.generate_exam(commitment.id)

        with pytest.raises(StructuralFailure):
            orchestrator.generate_exam(commitment.id)

        assert model.calls == ["generate"]
        assert len(orchestrator.list_exams(commitment.id)) == 1

    def test_generation_failure_creates_nothing(
        self,
        orchestrator: LifecycleOrchestrator,
        commitment: Commitment,
        model: FakeModel,
        sleeps: list[float],
    ) -> None:
        model.generation_ok = False

        with pytest.raises(MaxRetriesExceeded):
            orchestrator.generate_exam(commitment.id)

        assert sleeps == [1.0, 2.0]
        assert orchestrator.list_exams(commitment.id) == []

    def test_deadline_blocks_new_work(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, clock: FakeClock
    ) -> None:
        exam = orchestrator.generate_exam(commitment.id)
        clock.advance(days=8)

        with pytest.raises(StructuralFailure) as exc_info:
            orchestrator.start_exam(exam.id)
        assert exc_info.value.code == "deadline_passed"

    def test_deadline_blocks_generation(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, clock: FakeClock
    ) -> None:
        clock.advance(days=7, seconds=1)

        with pytest.raises(StructuralFailure) as exc_info:
            orchestrator.generate_exam(commitment.id)
        assert exc_info.value.code == "deadline_passed"


class TestGrading:
    """Tests for grading and stake resolution."""

    def test_retry_then_burn(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, model: FakeModel
    ) -> None:
        """Test a first failure grants a retry and a second one burns the stake."""
        model.judge_score = 40

        first = orchestrator.grade_exam(_submitted_exam(orchestrator, commitment).id)

        assert first.exam.passed is False
        assert first.resolution.action == ResolutionAction.RETRY_ALLOWED
        assert first.resolution.message == "You did not pass. You have one retry remaining."
        stored = orchestrator.get_commitment(commitment.id)
        assert stored.status == CommitmentStatus.ACTIVE
        assert stored.retry_used is True

        second = orchestrator.grade_exam(_submitted_exam(orchestrator, commitment).id)

        assert second.resolution.action == ResolutionAction.BURNED
        stored = orchestrator.get_commitment(commitment.id)
        assert stored.status == CommitmentStatus.FAILED
        assert stored.stake_status == StakeStatus.BURNED

        with pytest.raises(StructuralFailure) as exc_info:
            orchestrator.generate_exam(commitment.id)
        assert exc_info.value.code == "invalid_status"

    def test_retry_then_pass(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, model: FakeModel
    ) -> None:
        model.judge_score = 69
        orchestrator.grade_exam(_submitted_exam(orchestrator, commitment).id)
        model.judge_score = 70

        outcome = orchestrator.grade_exam(_submitted_exam(orchestrator, commitment).id)

        assert outcome.resolution.action == ResolutionAction.SAVED
        assert len(orchestrator.list_exams(commitment.id)) == 2

    def test_grading_failure(
        self,
        orchestrator: LifecycleOrchestrator,
        commitment: Commitment,
        model: FakeModel,
    ) -> None:
        """Test exhausted grading marks the exam failed and leaves the stake alone."""
        exam = _submitted_exam(orchestrator, commitment)
        model.judge_score = None

        with pytest.raises(MaxRetriesExceeded):
            orchestrator.grade_exam(exam.id)

        failed = orchestrator.get_exam(exam.id)
        assert failed.status == ExamStatus.GRADING_FAILED
        assert failed.overall_score is None
        assert all(a.score is None for a in orchestrator.get_answers(exam.id))
        stored = orchestrator.get_commitment(commitment.id)
        assert stored.status == CommitmentStatus.ACTIVE
        assert stored.stake_status == StakeStatus.AT_RISK
        assert stored.retry_used is False

        model.judge_score = 90
        retry_exam = orchestrator.generate_exam(commitment.id)
        assert retry_exam.status == ExamStatus.PENDING

    def test_grade_twice(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment
    ) -> None:
        exam = _submitted_exam(orchestrator, commitment)
        orchestrator.grade_exam(exam.id)

        with pytest.raises(StructuralFailure):
            orchestrator.grade_exam(exam.id)

        assert orchestrator.get_commitment(commitment.id).status == CommitmentStatus.COMPLETED

    def test_late_grading_of_timely_submission(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, clock: FakeClock
    ) -> None:
        exam = _submitted_exam(orchestrator, commitment)
        clock.advance(days=8)

        outcome = orchestrator.grade_exam(exam.id)

        assert outcome.resolution.action == ResolutionAction.SAVED

    def test_grading_after_expiry_is_no_change(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, clock: FakeClock
    ) -> None:
        """Test a late submission graded after the sweep expired its commitment changes nothing."""
        exam = orchestrator.generate_exam(commitment.id)
        orchestrator.start_exam(exam.id)
        _answer_all(orchestrator, exam)
        clock.advance(days=8)
        orchestrator.submit_exam(exam.id)
        orchestrator.expire_overdue_commitments()

        outcome = orchestrator.grade_exam(exam.id)

        assert outcome.exam.status == ExamStatus.GRADED
        assert outcome.resolution.action == ResolutionAction.NO_CHANGE
        assert orchestrator.get_commitment(commitment.id).status == CommitmentStatus.EXPIRED

    def test_sweep_spares_timely_submission(
        self,
        orchestrator: LifecycleOrchestrator,
        commitment: Commitment,
        model: FakeModel,
        clock: FakeClock,
    ) -> None:
        """Test an exam submitted on time keeps its stake savable after the deadline."""
        exam = _submitted_exam(orchestrator, commitment)
        clock.now = commitment.deadline + timedelta(minutes=5)
        model.judge_score = 95

        assert orchestrator.expire_overdue_commitments() == []
        outcome = orchestrator.grade_exam(exam.id)

        assert outcome.exam.passed is True
        assert outcome.resolution.action == ResolutionAction.SAVED
        stored = orchestrator.get_commitment(commitment.id)
        assert stored.status == CommitmentStatus.COMPLETED
        assert stored.stake_status == StakeStatus.SAVED

    def test_foreign_exam(
        self, orchestrator: LifecycleOrchestrator, commitment: Commitment, user: dict
    ) -> None:
        exam = _submitted_exam(orchestrator, commitment)
        user["id"] = "user-2"

        with pytest.raises(AuthorizationFailure):
            orchestrator.grade_exam(exam.id)
        with pytest.raises(AuthorizationFailure):
            orchestrator.get_answers(exam.id)


class TestFromSettings:
    """Tests for default wiring."""

    def test_wires_shared_client(self, test_settings: Settings, repository: InMemoryRepository) -> None:
        orchestrator = LifecycleOrchestrator.from_settings(
            repository, current_user=lambda: "user-1", settings=test_settings
        )

        commitment = orchestrator.create_commitment("Rust ownership", 50, 7)
        assert orchestrator.get_commitment(commitment.id) == commitment
