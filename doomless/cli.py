"""
Doomless CLI.

Terminal front-end for running the content pipeline on local text files.

Usage:
    doomless status
    doomless facts notes.txt --topic science --output facts.json
    doomless quiz notes.txt --topic science
    doomless preferences swipes.json --offline
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.table import Table

from doomless.ai.backend import disabled_probe
from doomless.ai.lifecycle import LifecycleState
from doomless.config import get_settings
from doomless.errors import PipelineFatalError
from doomless.events import (
    ModelDownloadProgress,
    ParseChunkCompleted,
    ParseStarted,
    ProgressBus,
    ProgressEvent,
    QuizProgress,
    QuizStarted,
    StorageCompleted,
    StorageSaveProgress,
)
from doomless.models import Fact, Interaction
from doomless.service import ContentService

app = typer.Typer(
    help="Doomless content pipeline: facts, quizzes, and preferences from your documents",
    no_args_is_help=True,
)

console = Console()

OFFLINE_OPTION = typer.Option(False, "--offline", help="Skip the model and use heuristics only")


# =============================================================================
# Helpers
# =============================================================================


def configure_logging(verbose: bool = False) -> None:
    """Route loguru to stderr (and the configured log file)."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "WARNING",
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")


def build_service(offline: bool) -> ContentService:
    probe = disabled_probe("offline mode requested") if offline else None
    return ContentService(settings=get_settings(), probe=probe)


def read_source(source: Path) -> str:
    if not source.exists():
        console.print(f"[red]Error: Source not found: {source}[/red]")
        raise typer.Exit(1)
    return source.read_text(encoding="utf-8")


def run_pipeline(coro):
    """Run a pipeline coroutine; a fatal extraction error exits with code 1."""
    try:
        return asyncio.run(coro)
    except PipelineFatalError as e:
        console.print(f"[red]Error: Fact extraction failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)


class ProgressReporter:
    """Progress bus listener that drives rich progress bars."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self._tasks: dict[str, TaskID] = {}

    def _task(self, key: str, description: str, total: float) -> TaskID:
        if key not in self._tasks:
            self._tasks[key] = self.progress.add_task(description, total=total)
        return self._tasks[key]

    def __call__(self, event: ProgressEvent) -> None:
        if isinstance(event, ModelDownloadProgress):
            task = self._task("download", "Downloading model", 100)
            self.progress.update(task, completed=event.progress * 100)
        elif isinstance(event, ParseStarted):
            self._task("parse", f"Extracting facts ({event.topic})", event.total_chunks)
        elif isinstance(event, ParseChunkCompleted):
            task = self._task("parse", f"Extracting facts ({event.topic})", event.total_chunks)
            self.progress.update(task, completed=event.chunk_index)
        elif isinstance(event, QuizStarted):
            self._task("quiz", f"Generating quizzes ({event.topic})", max(event.total, 1))
        elif isinstance(event, QuizProgress):
            task = self._task("quiz", f"Generating quizzes ({event.topic})", max(event.total, 1))
            self.progress.update(task, completed=event.current)
        elif isinstance(event, StorageSaveProgress):
            task = self._task("storage", f"Saving facts ({event.topic})", max(event.total, 1))
            self.progress.update(task, completed=event.saved)


def save_facts(bus: ProgressBus, facts: list[Fact], topic: str, output: Path) -> None:
    """Write facts as JSON, reporting storage progress on the bus."""
    records = []
    for fact in facts:
        records.append(fact.to_dict())
        bus.emit(StorageSaveProgress(topic=topic, saved=len(records), total=len(facts)))

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")
    bus.emit(StorageCompleted(topic=topic, total=len(records)))


def _progress() -> Progress:
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed:.0f}/{task.total:.0f}"),
        console=console,
        transient=True,
    )


# =============================================================================
# Commands
# =============================================================================


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    configure_logging(verbose)


@app.command("status")
def status(offline: bool = OFFLINE_OPTION):
    """Initialize the model lifecycle and report its state."""

    async def run():
        service = build_service(offline)
        try:
            state = await service.initialize()
            return state, service.lifecycle.probe_reason
        finally:
            await service.close()

    state, reason = asyncio.run(run())
    color = "green" if state is LifecycleState.READY else "yellow"
    console.print(f"Model: [{color}]{state.value}[/{color}]")
    if reason:
        console.print(f"  Backend: {reason}")


@app.command("facts")
def facts(
    source: Path = typer.Argument(..., help="UTF-8 text file to extract facts from"),
    topic: str = typer.Option("general", "--topic", "-t", help="Topic label for the facts"),
    output: Path = typer.Option(None, "--output", "-o", help="Save facts to JSON"),
    offline: bool = OFFLINE_OPTION,
):
    """Extract short standalone facts from a text file."""
    text = read_source(source)

    async def run():
        service = build_service(offline)
        try:
            with _progress() as progress:
                service.subscribe(ProgressReporter(progress))
                extracted = await service.extract_facts(text, topic)
                if output is not None:
                    save_facts(service.bus, extracted, topic, output)
            return extracted
        finally:
            await service.close()

    extracted = run_pipeline(run())

    table = Table(title=f"Facts: {topic}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Fact")
    for index, fact in enumerate(extracted, 1):
        table.add_row(str(index), escape(fact.content))
    console.print(table)
    console.print(f"[green]{len(extracted)} facts[/green]")
    if output is not None:
        console.print(f"  Saved to {output}")


@app.command("quiz")
def quiz(
    source: Path = typer.Argument(..., help="UTF-8 text file to build quizzes from"),
    topic: str = typer.Option("general", "--topic", "-t", help="Topic label"),
    offline: bool = OFFLINE_OPTION,
):
    """Extract facts from a text file and generate multiple-choice questions."""
    text = read_source(source)

    async def run():
        service = build_service(offline)
        try:
            with _progress() as progress:
                service.subscribe(ProgressReporter(progress))
                extracted = await service.extract_facts(text, topic)
                questions = await service.generate_quizzes(topic, extracted)
            return extracted, questions
        finally:
            await service.close()

    extracted, questions = run_pipeline(run())

    if not questions:
        console.print(f"[yellow]No quiz questions generated from {len(extracted)} facts[/yellow]")
        return

    for index, question in enumerate(questions, 1):
        console.print(f"\n[bold]{index}. {escape(question.question)}[/bold]")
        for option_index, option in enumerate(question.options):
            marker = "[green]*[/green]" if option_index == question.correct_answer else " "
            console.print(f"  {marker} {chr(65 + option_index)}. {escape(option)}")


@app.command("preferences")
def preferences(
    source: Path = typer.Argument(..., help="JSON list of interactions ({\"direction\": ...})"),
    offline: bool = OFFLINE_OPTION,
):
    """Analyze swipe interactions into topic preferences."""
    try:
        records = json.loads(read_source(source))
    except json.JSONDecodeError as e:
        console.print(f"[red]Error: Invalid JSON in {source}: {e}[/red]")
        raise typer.Exit(1)

    if not isinstance(records, list):
        console.print("[red]Error: Expected a JSON list of interactions[/red]")
        raise typer.Exit(1)

    interactions = [Interaction.from_dict(record) for record in records if isinstance(record, dict)]

    async def run():
        service = build_service(offline)
        try:
            return await service.analyze_preferences(interactions)
        finally:
            await service.close()

    analysis = asyncio.run(run())
    console.print_json(analysis.model_dump_json())


def run() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    run()
