"""
Prompt builder for exam generation and grading.

Constructs prompts that enforce:
- A fixed question-type mix and difficulty floor
- LLM-as-judge scoring on a 0-100 scale
- A strict JSON-only output contract
"""

from burner.models import Question, QuestionType


class PromptBuilder:
    """
    Builds the prompts sent to the completion API.

    The prompts are designed to:
    1. Test genuine understanding rather than memorization
    2. Produce output that validates against a strict schema
    3. Keep grading fair but rigorous, with partial credit
    """

    GENERATION_SYSTEM_PROMPT = (
        "You are a rigorous academic examiner. "
        "Always respond with valid JSON only, no markdown formatting."
    )

    GRADING_SYSTEM_PROMPT = (
        "You are a fair but rigorous academic grader. "
        "Always respond with valid JSON only, no markdown formatting."
    )

    @staticmethod
    def build_generation_prompt(topic: str, question_count: int) -> str:
        """
        Build the user prompt for exam generation.

        Args:
            topic: The learning topic to examine.
            question_count: Number of questions to request (5-10).

        Returns:
            The formatted user prompt.
        """
        return f"""Generate {question_count} exam questions to test genuine understanding of: {topic}

REQUIREMENTS:
- Mix of question types: multiple choice, short answer, and application-based
- Include at least one question of EACH type
- Target intermediate to advanced difficulty; nothing easier than intermediate
- Questions must test deep understanding, not surface memorization
- Application questions must require applying concepts to novel scenarios
- Each question must have a unique ID in UUID format

OUTPUT FORMAT (respond with ONLY this JSON, no other text):
{{
  "questions": [
    {{
      "id": "<uuid>",
      "type": "multiple_choice" | "short_answer" | "application",
      "question": "<question text>",
      "options": ["A) <option>", "B) <option>", "C) <option>", "D) <option>"],
      "correct_answer": "A",
      "difficulty": "intermediate" | "advanced"
    }}
  ]
}}

IMPORTANT:
- For multiple_choice: include exactly 4 options and a correct_answer naming one of them
- For short_answer and application: omit the options and correct_answer fields
- Return ONLY valid JSON, no additional text or markdown"""

    @staticmethod
    def build_grading_prompt(question: Question, answer_text: str) -> str:
        """
        Build the user prompt for grading one answer.

        Args:
            question: The question being answered.
            answer_text: The submitted answer.

        Returns:
            The formatted user prompt.
        """
        lines: list[str] = [
            "GRADING TASK",
            "",
            f"Question: {question.prompt}",
            f"Question Type: {question.type.value}",
        ]

        if question.type == QuestionType.MULTIPLE_CHOICE and question.options:
            lines.append("Options:")
            lines.extend(f"  {option}" for option in question.options)

        if question.correct_answer:
            lines.append(f"Correct Answer: {question.correct_answer}")

        lines.extend(
            [
                "",
                "STUDENT ANSWER:",
                "---BEGIN ANSWER---",
                answer_text,
                "---END ANSWER---",
                "",
                "Evaluate based on:",
                "1. Accuracy of information",
                "2. Completeness of response",
                "3. Demonstration of understanding",
                "4. For application questions: quality of reasoning",
                "",
                "OUTPUT FORMAT (respond with ONLY this JSON, no other text):",
                "{",
                '  "score": <integer between 0 and 100>,',
                '  "feedback": "<detailed feedback explaining the score>"',
                "}",
                "",
                "IMPORTANT:",
                "- Score must be an integer between 0 and 100",
                "- Be fair but rigorous: partial credit for partial understanding",
                "- Return ONLY valid JSON, no additional text or markdown",
            ]
        )

        return "\n".join(lines)
