"""
Storage port.

The engine reaches persistence only through this interface. Status
changes go through compare-and-swap updates: the write is applied only if
the stored record still has the expected status, so concurrent request
handlers cannot both win the same transition.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime

from burner.models import Answer, Commitment, CommitmentStatus, Exam, ExamStatus


class Repository(ABC):
    """Transactional record store keyed by identifier."""

    # ==========================================================================
    # Commitments
    # ==========================================================================

    @abstractmethod
    def get_commitment(self, commitment_id: str) -> Commitment | None: ...

    @abstractmethod
    def insert_commitment(self, commitment: Commitment) -> Commitment: ...

    @abstractmethod
    def update_commitment(self, commitment: Commitment, expected_status: CommitmentStatus) -> bool:
        """Replace the stored commitment if its status is still ``expected_status``."""

    @abstractmethod
    def list_commitments(
        self,
        user_id: str,
        status: CommitmentStatus | None = None,
        deadline_before: datetime | None = None,
    ) -> list[Commitment]: ...

    @abstractmethod
    def delete_commitment(self, commitment_id: str) -> bool:
        """Delete a commitment with its exams and answers."""

    # ==========================================================================
    # Exams
    # ==========================================================================

    @abstractmethod
    def get_exam(self, exam_id: str) -> Exam | None: ...

    @abstractmethod
    def insert_exam(self, exam: Exam) -> Exam: ...

    @abstractmethod
    def update_exam(self, exam: Exam, expected_status: ExamStatus) -> bool:
        """Replace the stored exam if its status is still ``expected_status``."""

    @abstractmethod
    def list_exams(self, commitment_id: str) -> list[Exam]: ...

    # ==========================================================================
    # Answers
    # ==========================================================================

    @abstractmethod
    def get_answer(self, exam_id: str, question_id: str) -> Answer | None: ...

    @abstractmethod
    def upsert_answer(self, answer: Answer) -> Answer:
        """Store the answer for its (exam, question) pair, replacing any previous one."""

    @abstractmethod
    def list_answers(self, exam_id: str) -> list[Answer]: ...

    # ==========================================================================
    # Transactions
    # ==========================================================================

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """
        Group writes so readers see all of them or none.

        Any exception raised inside the block discards every write made in it.
        """


