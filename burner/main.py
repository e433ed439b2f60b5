"""
Burner CLI Application.

Provides a command-line interface to the LLM side of the engine:
generating an exam for a topic and grading a single answer.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from burner.config import get_settings
from burner.errors import BurnerError
from burner.exam import PASS_THRESHOLD, AnswerGrader, QuestionGenerator
from burner.llm import LLMClient
from burner.log import configure_logging
from burner.models import GradeResult, Question

# Create Typer app
app = typer.Typer(
    name="burner",
    help="Commitment exams: AI-generated questions graded by an LLM judge",
    add_completion=False,
)

console = Console()


def _fail(error: BurnerError) -> None:
    console.print(f"[red]{error.category.value}:[/red] {escape(error.message)}")
    raise typer.Exit(1)


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Override LOG_LEVEL"),
    ] = None,
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level or get_settings().log_level)


@app.command()
def health() -> None:
    """
    Check if the completion API is reachable.

    Verifies configuration and API connectivity.
    """
    try:
        settings = get_settings()
        console.print("[bold]Burner Health Check[/bold]\n")

        console.print("[dim]Checking configuration...[/dim]")
        console.print(f"  API Base URL: {settings.llm_base_url}")
        console.print(f"  Model: {settings.llm_model}")
        console.print(f"  API Keys: {len(settings.api_key_pool)}")
        console.print(f"  Max Attempts: {settings.max_attempts}")

        console.print("\n[dim]Checking API connectivity...[/dim]")
        if LLMClient(settings).health_check():
            console.print("[green]✓ API is reachable[/green]")
        else:
            console.print("[red]✗ API is not reachable[/red]")
            raise typer.Exit(1)

        console.print("\n[green]All systems operational[/green]")

    except BurnerError as e:
        _fail(e)


@app.command()
def generate(
    topic: Annotated[str, typer.Argument(help="Topic to examine")],
    count: Annotated[
        Optional[int],
        typer.Option("--count", "-n", help="Number of questions (5-10)"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the questions to this JSON file"),
    ] = None,
) -> None:
    """Generate exam questions for a topic."""
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Generating questions... (this may take a moment)", total=None)
            questions = QuestionGenerator().generate(topic, count)

        _display_questions(questions)

        if output:
            payload = TypeAdapter(list[Question]).dump_json(questions, indent=2)
            output.write_bytes(payload)
            console.print(f"\n[green]Questions saved to:[/green] {output}")

    except BurnerError as e:
        _fail(e)


@app.command()
def grade(
    question_file: Annotated[Path, typer.Argument(help="Path to a question JSON file")],
    answer: Annotated[str, typer.Argument(help="The answer to grade")],
) -> None:
    """Grade one answer to one question."""
    if not question_file.exists():
        console.print(f"[red]Error:[/red] Question file not found: {question_file}")
        raise typer.Exit(1)

    try:
        question = Question.model_validate_json(question_file.read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]validation:[/red] Invalid question file: {escape(str(e))}")
        raise typer.Exit(1)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Grading answer...", total=None)
            result = AnswerGrader().grade_answer(question, answer)

        _display_grade(result)

    except BurnerError as e:
        _fail(e)


def _display_questions(questions: list[Question]) -> None:
    """Display generated questions in a table."""
    table = Table(title=f"{len(questions)} Questions")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Difficulty")
    table.add_column("Question")

    for i, q in enumerate(questions, start=1):
        prompt = q.prompt
        if q.options:
            prompt += "\n" + "\n".join(
                f"  {label}) {option}" for label, option in zip("ABCD", q.options)
            )
        table.add_row(str(i), q.type.value, q.difficulty.value, prompt)

    console.print(table)


def _display_grade(result: GradeResult) -> None:
    """Display a single grade."""
    score_color = "green" if result.score >= PASS_THRESHOLD else "yellow" if result.score >= 50 else "red"
    console.print(
        Panel(
            f"[{score_color}][bold]{result.score} / 100[/bold][/{score_color}]",
            title="Score",
        )
    )
    console.print(Panel(result.feedback, title="Feedback"))


if __name__ == "__main__":
    app()
