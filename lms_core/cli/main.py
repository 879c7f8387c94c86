"""
Typer CLI for the lms-core engine.

Commands:
    lms db init                          - Initialize database tables
    lms path progress <enrollment_id>    - Show a learning path enrollment's progress
    lms course recalculate <enrollment_id> - Recompute a course enrollment's percentage
    lms info calculators                 - List progress calculators
    lms info grading-types               - List auto/manual gradable question types

Usage:
    lms --help
    lms path progress 42
"""

from __future__ import annotations

import sys

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from lms_core.bootstrap import build_services
from lms_core.core.exceptions import DomainError
from lms_core.core.logging import configure_logging
from lms_core.db.database import init_db, session_scope
from lms_core.db.models import Enrollment, LearningPathEnrollment
from lms_core.grading import GradingStrategyResolver
from lms_core.learning_path.states import CourseProgressState
from lms_core.progress import ProgressCalculatorFactory

app = typer.Typer(help="lms-core CLI: enrollments, learning paths, progress and grading")
console = Console()

STATE_STYLES = {
    CourseProgressState.LOCKED: "dim",
    CourseProgressState.AVAILABLE: "cyan",
    CourseProgressState.IN_PROGRESS: "yellow",
    CourseProgressState.COMPLETED: "green",
}


# ========================================
# Database Commands
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# Learning Path Commands
# ========================================

path_app = typer.Typer(help="Learning path progress")
app.add_typer(path_app, name="path")


@path_app.command("progress")
def path_progress(
    enrollment_id: int = typer.Argument(..., help="Learning path enrollment id"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON instead of a table"),
) -> None:
    """Show per-course states and the overall percentage of a path enrollment."""
    with session_scope() as session:
        enrollment = session.get(LearningPathEnrollment, enrollment_id)
        if enrollment is None:
            rprint(f"[red]✗[/red] Learning path enrollment {enrollment_id} not found")
            raise typer.Exit(code=1)

        progress = build_services(session).path_progress.get_progress(enrollment)

        if as_json:
            console.print_json(data=progress.to_dict())
            return

        table = Table(title=f"{enrollment.learning_path.title} ({enrollment.state.value})")
        table.add_column("#", justify="right")
        table.add_column("Course")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Note")
        for item in progress.courses:
            style = STATE_STYLES.get(item.state, "")
            table.add_row(
                str(item.position),
                item.title,
                f"[{style}]{item.state.label}[/{style}]",
                f"{item.completion_percentage:.1f}%",
                item.lock_reason or "",
            )
        console.print(table)
        rprint(
            f"Overall: [bold]{progress.overall_percentage:.1f}%[/bold] "
            f"({progress.completed_courses}/{progress.total_courses} courses completed)"
        )
        next_course = progress.next_course()
        if next_course is not None:
            rprint(f"Next up: [cyan]{next_course.title}[/cyan]")


# ========================================
# Course Commands
# ========================================

course_app = typer.Typer(help="Course enrollment maintenance")
app.add_typer(course_app, name="course")


@course_app.command("recalculate")
def course_recalculate(
    enrollment_id: int = typer.Argument(..., help="Course enrollment id"),
) -> None:
    """Recompute a course enrollment's percentage and cascade a completion."""
    with session_scope() as session:
        enrollment = session.get(Enrollment, enrollment_id)
        if enrollment is None:
            rprint(f"[red]✗[/red] Enrollment {enrollment_id} not found")
            raise typer.Exit(code=1)

        previous = enrollment.progress_percentage or 0.0
        try:
            percentage = build_services(session).tracking.recalculate_course_progress(enrollment)
        except DomainError as e:
            logger.error(f"Recalculation failed for enrollment {enrollment_id}: {e}")
            rprint(f"[red]✗[/red] {e}")
            raise typer.Exit(code=1) from e

        rprint(f"[green]✓[/green] Enrollment {enrollment_id}: {previous:.1f}% -> {percentage:.1f}% ({enrollment.status.value})")


# ========================================
# Info Commands
# ========================================

info_app = typer.Typer(help="Engine configuration")
app.add_typer(info_app, name="info")


@info_app.command("calculators")
def info_calculators() -> None:
    """List progress calculators and the configured default."""
    settings = get_settings()
    factory = ProgressCalculatorFactory(settings.progress_calculator)
    default = factory.get_default().name

    table = Table(title="Progress Calculators")
    table.add_column("Name")
    table.add_column("Default", justify="center")
    for name in factory.available_types():
        table.add_row(name, "✓" if name == default else "")
    console.print(table)


@info_app.command("grading-types")
def info_grading_types() -> None:
    """List question types and the strategy grading them."""
    resolver = GradingStrategyResolver.from_settings(get_settings())

    table = Table(title="Grading Strategies")
    table.add_column("Question type")
    table.add_column("Strategy")
    for question_type in resolver.supported_types():
        table.add_row(question_type, resolver.strategy_name(question_type))
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    configure_logging()
    try:
        app()
    except DomainError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
