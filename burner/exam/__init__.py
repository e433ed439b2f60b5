"""
Exam Module.

AI question generation, LLM-as-judge answer grading and exam aggregation.
"""

from burner.exam.aggregator import PASS_THRESHOLD, ExamAggregator, overall_score
from burner.exam.generator import QuestionGenerator, parse_questions
from burner.exam.grader import EMPTY_ANSWER_FEEDBACK, AnswerGrader, parse_verdict
from burner.exam.prompt_builder import PromptBuilder

__all__ = [
    "EMPTY_ANSWER_FEEDBACK",
    "PASS_THRESHOLD",
    "AnswerGrader",
    "ExamAggregator",
    "PromptBuilder",
    "QuestionGenerator",
    "overall_score",
    "parse_questions",
    "parse_verdict",
]
