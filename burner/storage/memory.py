"""
In-memory repository.

Stores immutable model snapshots behind one re-entrant lock. Every read
and write takes the lock, so a transaction holding it is never observed
half-applied.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from loguru import logger

from burner.errors import ConflictError
from burner.models import Answer, Commitment, CommitmentStatus, Exam, ExamStatus
from burner.storage.base import Repository


class InMemoryRepository(Repository):
    """Thread-safe dictionary-backed repository."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._commitments: dict[str, Commitment] = {}
        self._exams: dict[str, Exam] = {}
        self._answers: dict[tuple[str, str], Answer] = {}

    # Commitments

    def get_commitment(self, commitment_id: str) -> Commitment | None:
        with self._lock:
            return self._commitments.get(commitment_id)

    def insert_commitment(self, commitment: Commitment) -> Commitment:
        with self._lock:
            if commitment.id in self._commitments:
                raise ConflictError(f"Commitment {commitment.id} already exists")
            self._commitments[commitment.id] = commitment
            return commitment

    def update_commitment(self, commitment: Commitment, expected_status: CommitmentStatus) -> bool:
        with self._lock:
            current = self._commitments.get(commitment.id)
            if current is None or current.status != expected_status:
                return False
            self._commitments[commitment.id] = commitment
            return True

    def list_commitments(
        self,
        user_id: str,
        status: CommitmentStatus | None = None,
        deadline_before: datetime | None = None,
    ) -> list[Commitment]:
        with self._lock:
            return [
                c
                for c in self._commitments.values()
                if c.user_id == user_id
                and (status is None or c.status == status)
                and (deadline_before is None or c.deadline < deadline_before)
            ]

    def delete_commitment(self, commitment_id: str) -> bool:
        with self._lock:
            if self._commitments.pop(commitment_id, None) is None:
                return False
            exam_ids = {e.id for e in self._exams.values() if e.commitment_id == commitment_id}
            for exam_id in exam_ids:
                del self._exams[exam_id]
            for key in [k for k in self._answers if k[0] in exam_ids]:
                del self._answers[key]
            logger.info(f"Deleted commitment {commitment_id} with {len(exam_ids)} exam(s)")
            return True

    # Exams

    def get_exam(self, exam_id: str) -> Exam | None:
        with self._lock:
            return self._exams.get(exam_id)

    def insert_exam(self, exam: Exam) -> Exam:
        with self._lock:
            if exam.id in self._exams:
                raise ConflictError(f"Exam {exam.id} already exists")
            self._exams[exam.id] = exam
            return exam

    def update_exam(self, exam: Exam, expected_status: ExamStatus) -> bool:
        with self._lock:
            current = self._exams.get(exam.id)
            if current is None or current.status != expected_status:
                return False
            self._exams[exam.id] = exam
            return True

    def list_exams(self, commitment_id: str) -> list[Exam]:
        with self._lock:
            return [e for e in self._exams.values() if e.commitment_id == commitment_id]

    # Answers

    def get_answer(self, exam_id: str, question_id: str) -> Answer | None:
        with self._lock:
            return self._answers.get((exam_id, question_id))

    def upsert_answer(self, answer: Answer) -> Answer:
        with self._lock:
            key = (answer.exam_id, answer.question_id)
            existing = self._answers.get(key)
            if existing is not None and existing.id != answer.id:
                answer = answer.evolve(id=existing.id)
            self._answers[key] = answer
            return answer

    def list_answers(self, exam_id: str) -> list[Answer]:
        with self._lock:
            return [a for (e, _), a in self._answers.items() if e == exam_id]

    # Transactions

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = (dict(self._commitments), dict(self._exams), dict(self._answers))
            try:
                yield
            except BaseException:
                self._commitments, self._exams, self._answers = snapshot
                logger.debug("Transaction rolled back")
                raise
