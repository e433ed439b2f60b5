"""
Stake resolver - turns an exam outcome into a commitment outcome.

Rules, evaluated in order:
1. Deadline passed while active -> expired, stake burned.
2. Exam passed -> completed, stake saved.
3. Exam failed, retry unused -> retry granted, nothing else changes.
4. Exam failed, retry used -> failed, stake burned.

Terminal commitments are never touched again, so a duplicate grading
completion resolves to ``no_change``.
"""

from datetime import datetime

from loguru import logger

from burner.errors import ConflictError
from burner.models import (
    Commitment,
    CommitmentStatus,
    ExamStatus,
    ResolutionAction,
    ResolutionResult,
    StakeStatus,
)
from burner.storage import Repository

MESSAGES: dict[str, str] = {
    "expired": "Deadline passed. Stake has been burned.",
    "saved": "Congratulations! You passed and saved your stake.",
    "retry_allowed": "You did not pass. You have one retry remaining.",
    "failed": "You did not pass after retry. Stake has been burned.",
    "no_change": "Commitment is already resolved.",
}


def resolve(
    commitment: Commitment,
    exam_passed: bool,
    now: datetime,
    submitted_at: datetime | None = None,
) -> ResolutionResult:
    """
    Resolve a commitment against an exam outcome. Pure.

    Args:
        commitment: Current commitment snapshot.
        exam_passed: Whether the exam was passed.
        now: Resolution time.
        submitted_at: When the graded exam was submitted. If given, the
            deadline is checked against it instead of ``now``, so grading
            latency never turns a timely submission into an expiry.

    Returns:
        The new commitment snapshot and the action taken.
    """
    previous_status = commitment.status
    previous_stake = commitment.stake_status

    def result(updated: Commitment, action: ResolutionAction, message_key: str) -> ResolutionResult:
        return ResolutionResult(
            commitment=updated,
            action=action,
            previous_status=previous_status,
            previous_stake_status=previous_stake,
            message=MESSAGES[message_key],
        )

    if commitment.is_terminal:
        return result(commitment, ResolutionAction.NO_CHANGE, "no_change")

    reference = submitted_at if submitted_at is not None else now
    if commitment.deadline_passed(reference):
        expired = commitment.evolve(
            status=CommitmentStatus.EXPIRED, stake_status=StakeStatus.BURNED
        )
        return result(expired, ResolutionAction.BURNED, "expired")

    if exam_passed:
        completed = commitment.evolve(
            status=CommitmentStatus.COMPLETED, stake_status=StakeStatus.SAVED
        )
        return result(completed, ResolutionAction.SAVED, "saved")

    if not commitment.retry_used:
        return result(commitment.evolve(retry_used=True), ResolutionAction.RETRY_ALLOWED, "retry_allowed")

    failed = commitment.evolve(status=CommitmentStatus.FAILED, stake_status=StakeStatus.BURNED)
    return result(failed, ResolutionAction.BURNED, "failed")


class StakeResolver:
    """Applies resolutions to stored commitments."""

    def __init__(self, repository: Repository):
        self._repository = repository

    @staticmethod
    def resolve(
        commitment: Commitment,
        exam_passed: bool,
        now: datetime,
        submitted_at: datetime | None = None,
    ) -> ResolutionResult:
        return resolve(commitment, exam_passed, now, submitted_at)

    def apply(
        self,
        commitment: Commitment,
        exam_passed: bool,
        now: datetime,
        submitted_at: datetime | None = None,
    ) -> ResolutionResult:
        """
        Resolve and persist.

        Raises:
            ConflictError: If the commitment stopped being active before the write.
        """
        outcome = resolve(commitment, exam_passed, now, submitted_at)
        if not outcome.changed:
            logger.info(f"Commitment {commitment.id} already {commitment.status.value}; no change")
            return outcome

        if not self._repository.update_commitment(
            outcome.commitment, expected_status=CommitmentStatus.ACTIVE
        ):
            raise ConflictError(f"Commitment {commitment.id} was resolved concurrently")

        logger.info(
            f"Commitment {commitment.id}: {outcome.action.value} "
            f"({outcome.previous_status.value} -> {outcome.commitment.status.value}, "
            f"stake {outcome.commitment.stake_status.value})"
        )
        return outcome

    def expire_overdue(self, user_id: str, now: datetime) -> list[Commitment]:
        """
        Expire every active commitment of ``user_id`` whose deadline has passed.

        Each commitment is re-read inside its own transaction, so a write made
        after the scan (a resolution, a granted retry) is never overwritten.
        A commitment with an exam submitted before the deadline and still
        awaiting its grade is left for grading to resolve.

        Returns:
            The commitments this sweep expired.
        """
        expired: list[Commitment] = []
        for scanned in self._repository.list_commitments(
            user_id, status=CommitmentStatus.ACTIVE, deadline_before=now
        ):
            with self._repository.transaction():
                current = self._repository.get_commitment(scanned.id)
                if (
                    current is None
                    or current.status != CommitmentStatus.ACTIVE
                    or not current.deadline_passed(now)
                ):
                    logger.info(f"Commitment {scanned.id} resolved concurrently; skipping expiry")
                    continue
                if self._awaiting_timely_grade(current):
                    logger.info(f"Commitment {current.id} has an exam submitted on time; skipping expiry")
                    continue

                outcome = resolve(current, exam_passed=False, now=now)
                if not self._repository.update_commitment(
                    outcome.commitment, expected_status=CommitmentStatus.ACTIVE
                ):
                    continue
                expired.append(outcome.commitment)
                logger.info(f"Commitment {current.id} expired; stake burned")
        return expired

    def _awaiting_timely_grade(self, commitment: Commitment) -> bool:
        return any(
            exam.status == ExamStatus.SUBMITTED
            and exam.submitted_at is not None
            and exam.submitted_at <= commitment.deadline
            for exam in self._repository.list_exams(commitment.id)
        )
