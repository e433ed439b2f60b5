"""
Exam aggregator - grades every question and computes the overall result.

All questions are graded under one umbrella trace. A grading failure on
any question aborts the whole aggregate; partial results are never
returned.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import ROUND_HALF_UP, Decimal

from loguru import logger

from burner.config import Settings, get_settings
from burner.errors import StructuralFailure
from burner.exam.grader import AnswerGrader
from burner.models import Answer, Exam, ExamGradeResult, Question, QuestionGrade
from burner.tracing import LoguruTracker, TraceScope, Tracker, traced

PASS_THRESHOLD = 70


def overall_score(scores: list[int]) -> int:
    """Mean of the scores, rounded half up."""
    mean = Decimal(sum(scores)) / Decimal(len(scores))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ExamAggregator:
    """Grades an exam question by question."""

    def __init__(
        self,
        grader: AnswerGrader,
        settings: Settings | None = None,
        tracker: Tracker | None = None,
    ):
        self._grader = grader
        self._settings = settings or get_settings()
        self._tracker = tracker or LoguruTracker()

    def grade_exam(self, exam: Exam, answers: list[Answer]) -> ExamGradeResult:
        """
        Grade all questions of an exam.

        Args:
            exam: The exam, questions in stored order.
            answers: Answers given. A question without an answer scores 0.

        Returns:
            Overall score, pass flag and per-question grades in exam order.

        Raises:
            StructuralFailure: If the exam has no questions or there are no answers.
            MaxRetriesExceeded: If grading any question exhausted its attempts.
        """
        if not exam.questions:
            raise StructuralFailure("Exam has no questions", code="empty_exam")
        if not answers:
            raise StructuralFailure("No answers provided for grading", code="no_answers")

        by_question = {a.question_id: a.answer_text for a in answers}

        with traced(
            self._tracker,
            "exam-grading",
            {"exam_id": exam.id, "question_count": len(exam.questions)},
        ) as trace:
            per_question = self._grade_questions(exam.questions, by_question, trace)

            score = overall_score([g.score for g in per_question])
            passed = score >= PASS_THRESHOLD
            trace.output = {"overall_score": score, "passed": passed}

        logger.info(
            f"Graded exam {exam.id}: overall score {score}, {'passed' if passed else 'failed'}"
        )
        return ExamGradeResult(
            overall_score=score,
            passed=passed,
            per_question=tuple(per_question),
            trace_id=trace.id,
        )

    def _grade_questions(
        self, questions: tuple[Question, ...], by_question: dict[str, str], trace: TraceScope
    ) -> list[QuestionGrade]:
        def grade(question: Question) -> QuestionGrade:
            text = by_question.get(question.id, "")
            result = self._grader.grade_answer(question, text, trace=trace)
            return QuestionGrade(question_id=question.id, **result.model_dump())

        workers = self._settings.grading_concurrency
        if workers <= 1:
            return [grade(q) for q in questions]

        # map() yields in submission order and re-raises the first failure
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(grade, questions))
