"""
Lifecycle orchestrator - the commitment and exam state machine.

Every operation is a single unit of work for the current user:
1. Identify the caller and check ownership of the commitment
2. Check the exam transition is legal from the stored state
3. Do any LLM work outside the storage transaction
4. Commit with compare-and-swap writes, so a concurrent request on the
   same exam or commitment cannot also succeed
"""

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from loguru import logger
from pydantic import ValidationError

from burner.config import Settings, get_settings
from burner.errors import (
    AuthorizationFailure,
    ConflictError,
    MaxRetriesExceeded,
    NotFoundError,
    StructuralFailure,
    ValidationFailure,
)
from burner.exam import AnswerGrader, ExamAggregator, QuestionGenerator
from burner.lifecycle.resolver import StakeResolver
from burner.lifecycle.transitions import require_transition
from burner.llm import LLMClient
from burner.models import (
    Answer,
    Commitment,
    CommitmentStatus,
    CreateCommitmentInput,
    Exam,
    ExamStatus,
    GradingOutcome,
    utcnow,
)
from burner.storage import Repository
from burner.tracing import LoguruTracker, Tracker

CurrentUser = Callable[[], str | None]
Clock = Callable[[], datetime]


class LifecycleOrchestrator:
    """
    Drives commitments and exams through their lifecycle.

    Exams move ``pending -> in_progress -> submitted -> graded`` (or
    ``grading_failed``). A graded exam resolves the commitment's stake in
    the same transaction that stores the grades.
    """

    def __init__(
        self,
        repository: Repository,
        current_user: CurrentUser,
        generator: QuestionGenerator,
        aggregator: ExamAggregator,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ):
        """
        Initialize the orchestrator.

        Args:
            repository: Storage collaborator.
            current_user: Returns the caller's identifier, or None when signed out.
            generator: Question generator used to create exams.
            aggregator: Exam grader.
            settings: Configuration settings. Uses global settings if not provided.
            clock: Source of the current time.
        """
        self._repository = repository
        self._current_user = current_user
        self._generator = generator
        self._aggregator = aggregator
        self._settings = settings or get_settings()
        self._clock = clock
        self._resolver = StakeResolver(repository)

    @classmethod
    def from_settings(
        cls,
        repository: Repository,
        current_user: CurrentUser,
        settings: Settings | None = None,
        tracker: Tracker | None = None,
    ) -> "LifecycleOrchestrator":
        """Wire generator, grader and aggregator around one shared LLM client."""
        settings = settings or get_settings()
        tracker = tracker or LoguruTracker()
        client = LLMClient(settings)
        grader = AnswerGrader(settings, client=client, tracker=tracker)
        return cls(
            repository,
            current_user,
            generator=QuestionGenerator(settings, client=client, tracker=tracker),
            aggregator=ExamAggregator(grader, settings=settings, tracker=tracker),
            settings=settings,
        )

    # ==========================================================================
    # Ownership
    # ==========================================================================

    def _require_user(self) -> str:
        user_id = self._current_user()
        if not user_id:
            raise AuthorizationFailure("You must be signed in", code="unauthorized")
        return user_id

    def _owned_commitment(self, commitment_id: str, user_id: str) -> Commitment:
        commitment = self._repository.get_commitment(commitment_id)
        if commitment is None:
            raise NotFoundError("Commitment not found")
        if commitment.user_id != user_id:
            raise AuthorizationFailure("Access denied")
        return commitment

    def _owned_exam(self, exam_id: str, user_id: str) -> tuple[Exam, Commitment]:
        exam = self._repository.get_exam(exam_id)
        if exam is None:
            raise NotFoundError("Exam not found")
        commitment = self._repository.get_commitment(exam.commitment_id)
        if commitment is None:
            raise NotFoundError("Exam not found")
        if commitment.user_id != user_id:
            raise AuthorizationFailure("Access denied")
        return exam, commitment

    def _require_open(self, commitment: Commitment, now: datetime) -> None:
        if commitment.status != CommitmentStatus.ACTIVE:
            raise StructuralFailure(
                f"Commitment is {commitment.status.value}", code="invalid_status"
            )
        if commitment.deadline_passed(now):
            raise StructuralFailure("Deadline has passed", code="deadline_passed")

    # ==========================================================================
    # Commitments
    # ==========================================================================

    def create_commitment(
        self, topic: str, stake_amount: Decimal | int | float, duration_days: int
    ) -> Commitment:
        """
        Create an active commitment with its stake at risk.

        Raises:
            ValidationFailure: If the input is out of contract.
        """
        user_id = self._require_user()
        try:
            data = CreateCommitmentInput(
                topic=topic, stake_amount=stake_amount, duration_days=duration_days
            )
        except ValidationError as e:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise ValidationFailure("Invalid commitment input", errors=errors) from e

        commitment = self._repository.insert_commitment(
            Commitment.create(user_id, data, self._clock())
        )
        logger.info(
            f"Commitment {commitment.id} created: '{commitment.topic}', "
            f"stake {commitment.stake_amount}, deadline {commitment.deadline.isoformat()}"
        )
        return commitment

    def get_commitment(self, commitment_id: str) -> Commitment:
        return self._owned_commitment(commitment_id, self._require_user())

    def list_commitments(self) -> list[Commitment]:
        """All of the caller's commitments, newest first."""
        user_id = self._require_user()
        return sorted(
            self._repository.list_commitments(user_id), key=lambda c: c.created_at, reverse=True
        )

    def list_active_commitments(self) -> list[Commitment]:
        """The caller's active commitments, nearest deadline first."""
        user_id = self._require_user()
        return sorted(
            self._repository.list_commitments(user_id, status=CommitmentStatus.ACTIVE),
            key=lambda c: c.deadline,
        )

    def expire_overdue_commitments(self) -> list[Commitment]:
        """Burn the caller's overdue commitments, except those with an exam submitted on time."""
        return self._resolver.expire_overdue(self._require_user(), self._clock())

    # ==========================================================================
    # Exams
    # ==========================================================================

    def generate_exam(self, commitment_id: str, question_count: int | None = None) -> Exam:
        """
        Generate a new pending exam for a commitment.

        Raises:
            StructuralFailure: If the commitment is not active, its deadline
                has passed, or it already has an unresolved exam.
            MaxRetriesExceeded: If question generation failed; no exam is created.
        """
        user_id = self._require_user()
        commitment = self._owned_commitment(commitment_id, user_id)
        self._require_open(commitment, self._clock())
        self._require_no_unresolved_exam(commitment.id)

        questions = self._generator.generate(commitment.topic, question_count)

        with self._repository.transaction():
            # Re-check: another request may have created an exam while we waited on the LLM
            current = self._repository.get_commitment(commitment.id)
            if current is None or current.status != CommitmentStatus.ACTIVE:
                raise ConflictError("Commitment was resolved while the exam was generated")
            self._require_no_unresolved_exam(commitment.id)
            exam = self._repository.insert_exam(
                Exam(commitment_id=commitment.id, questions=tuple(questions), created_at=self._clock())
            )

        logger.info(f"Exam {exam.id} generated for commitment {commitment.id}")
        return exam

    def _require_no_unresolved_exam(self, commitment_id: str) -> None:
        for exam in self._repository.list_exams(commitment_id):
            if exam.is_unresolved:
                raise StructuralFailure(
                    f"Commitment already has an unresolved exam ({exam.status.value})",
                    code="exam_in_progress",
                )

    def start_exam(self, exam_id: str) -> Exam:
        """Move a pending exam to in_progress."""
        exam, commitment = self._owned_exam(exam_id, self._require_user())
        require_transition(exam, ExamStatus.IN_PROGRESS)
        now = self._clock()
        self._require_open(commitment, now)

        started = exam.evolve(status=ExamStatus.IN_PROGRESS, started_at=now)
        if not self._repository.update_exam(started, expected_status=ExamStatus.PENDING):
            raise ConflictError("Exam was started concurrently")
        logger.info(f"Exam {exam.id} started")
        return started

    def submit_answer(self, exam_id: str, question_id: str, answer_text: str) -> Answer:
        """
        Record the answer to one question, replacing any earlier one.

        Resubmission clears any previous score and feedback.
        """
        exam, _ = self._owned_exam(exam_id, self._require_user())
        text = (answer_text or "").strip()
        if not text:
            raise ValidationFailure("Answer cannot be empty")
        if exam.status != ExamStatus.IN_PROGRESS:
            raise StructuralFailure("Exam is not in progress", code="invalid_status")
        if exam.question(question_id) is None:
            raise NotFoundError("Question not found")

        with self._repository.transaction():
            current = self._repository.get_exam(exam_id)
            if current is None or current.status != ExamStatus.IN_PROGRESS:
                raise ConflictError("Exam is no longer in progress")
            existing = self._repository.get_answer(exam_id, question_id)
            if existing is None:
                answer = Answer(exam_id=exam_id, question_id=question_id, answer_text=text)
            else:
                answer = existing.evolve(
                    answer_text=text, score=None, feedback=None, graded_at=None, span_id=None
                )
            return self._repository.upsert_answer(answer)

    def submit_exam(self, exam_id: str) -> Exam:
        """
        Submit an in-progress exam for grading.

        Raises:
            StructuralFailure: With code ``incomplete_exam`` if any question is unanswered.
        """
        exam, _ = self._owned_exam(exam_id, self._require_user())
        require_transition(exam, ExamStatus.SUBMITTED)

        answered = {a.question_id for a in self._repository.list_answers(exam_id)}
        unanswered = [qid for qid in exam.question_ids if qid not in answered]
        if unanswered:
            raise StructuralFailure(
                f"{len(unanswered)} question(s) unanswered", code="incomplete_exam"
            )

        submitted = exam.evolve(status=ExamStatus.SUBMITTED, submitted_at=self._clock())
        if not self._repository.update_exam(submitted, expected_status=ExamStatus.IN_PROGRESS):
            raise ConflictError("Exam was submitted concurrently")
        logger.info(f"Exam {exam.id} submitted")
        return submitted

    def grade_exam(self, exam_id: str) -> GradingOutcome:
        """
        Grade a submitted exam and resolve the stake.

        On success the exam grade, every answer's grade and the stake
        resolution are written in one transaction. If grading exhausts its
        attempts the exam moves to ``grading_failed`` and the stake is left
        untouched.

        Raises:
            MaxRetriesExceeded: If grading any question failed.
            ConflictError: If another grading pass committed first.
        """
        exam, _ = self._owned_exam(exam_id, self._require_user())
        require_transition(exam, ExamStatus.GRADED)
        answers = self._repository.list_answers(exam_id)

        try:
            grade = self._aggregator.grade_exam(exam, answers)
        except MaxRetriesExceeded:
            failed = exam.evolve(status=ExamStatus.GRADING_FAILED)
            if self._repository.update_exam(failed, expected_status=ExamStatus.SUBMITTED):
                logger.error(f"Grading failed for exam {exam.id}; marked grading_failed")
            raise

        now = self._clock()
        grades = {g.question_id: g for g in grade.per_question}

        with self._repository.transaction():
            graded_answers: list[Answer] = []
            for answer in answers:
                result = grades.get(answer.question_id)
                if result is None:
                    continue
                graded_answers.append(
                    self._repository.upsert_answer(
                        answer.evolve(
                            score=result.score,
                            feedback=result.feedback,
                            graded_at=now,
                            span_id=result.span_id,
                        )
                    )
                )

            graded = exam.evolve(
                status=ExamStatus.GRADED,
                overall_score=grade.overall_score,
                passed=grade.passed,
                trace_id=grade.trace_id,
            )
            if not self._repository.update_exam(graded, expected_status=ExamStatus.SUBMITTED):
                raise ConflictError("Exam was graded concurrently")

            commitment = self._repository.get_commitment(exam.commitment_id)
            if commitment is None:
                raise NotFoundError("Commitment not found")
            resolution = self._resolver.apply(
                commitment, grade.passed, now, submitted_at=exam.submitted_at
            )

        return GradingOutcome(
            exam=graded, answers=tuple(graded_answers), grade=grade, resolution=resolution
        )

    def get_exam(self, exam_id: str) -> Exam:
        exam, _ = self._owned_exam(exam_id, self._require_user())
        return exam

    def list_exams(self, commitment_id: str) -> list[Exam]:
        """The commitment's exams, oldest first."""
        commitment = self._owned_commitment(commitment_id, self._require_user())
        return sorted(self._repository.list_exams(commitment.id), key=lambda e: e.created_at)

    def get_answers(self, exam_id: str) -> list[Answer]:
        """The exam's answers in question order."""
        exam, _ = self._owned_exam(exam_id, self._require_user())
        order = {qid: i for i, qid in enumerate(exam.question_ids)}
        return sorted(
            self._repository.list_answers(exam_id),
            key=lambda a: order.get(a.question_id, len(order)),
        )
