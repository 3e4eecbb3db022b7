"""
Yuliao: phrase drill CLI.

A Rich terminal interface for practicing your own English phrase corpus
through AI-generated Chinese scenarios.

Commands:
- yuliao learn        - Drill corpus items one scenario at a time
- yuliao review       - Multi-phrase scenario review
- yuliao add          - Add a phrase (or extract phrases from a text file)
- yuliao list         - Show the corpus
- yuliao stats        - Show mastery statistics
- yuliao purge-cache  - Drop expired (or all) generated content
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import get_settings
from yuliao.core.content import AnswerEvaluation, ContextScenario
from yuliao.core.errors import GenerationError
from yuliao.core.models import CorpusItem, new_corpus_item, now_ms
from yuliao.integrations.generation_client import GenerationClient

from .content_cache import cache_from_settings
from .corpus_store import CorpusStore
from .review import ReviewSession
from .scheduler import corpus_stats
from .session import SessionConfig, SessionController, SessionState


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="yuliao",
    help="Yuliao: adaptive phrase drill",
    no_args_is_help=True,
)
console = Console()

QUIT_WORDS = {"q", ":q", "quit"}

STYLES = {
    "correct": "bold green",
    "incorrect": "bold red",
    "info": "bold cyan",
    "dim": "dim",
}


def mastery_bar(level: int) -> str:
    return "[green]" + "●" * level + "[/green][dim]" + "○" * (5 - level) + "[/dim]"


def get_store() -> CorpusStore:
    return CorpusStore(get_settings().corpus_path)


async def ask(prompt: str, default: str = "") -> str:
    """Prompt without blocking background prefetch."""
    return await asyncio.to_thread(Prompt.ask, prompt, default=default)


async def confirm(prompt: str, default: bool = True) -> bool:
    return await asyncio.to_thread(Confirm.ask, prompt, default=default)


# =============================================================================
# Display Helpers
# =============================================================================

def display_scenario(scenario: ContextScenario, header: str) -> None:
    """Show the Chinese prompt with the phrases to use."""
    content = scenario.chinese_script
    if scenario.chinese_highlights:
        content += "\n\n[dim]Key parts: " + ", ".join(scenario.chinese_highlights) + "[/dim]"

    console.print(Panel(
        content,
        title=header,
        title_align="left",
        border_style="cyan",
        padding=(1, 2),
    ))


def display_reference(scenario: ContextScenario, evaluation: AnswerEvaluation | None = None) -> None:
    """Show the English reference, highlighted phrases and any score."""
    reference = scenario.english_reference
    for highlight in scenario.highlights:
        if highlight.text:
            reference = reference.replace(highlight.text, f"[bold yellow]{highlight.text}[/bold yellow]")

    lines = [reference]
    for highlight in scenario.highlights:
        note = highlight.explanation or highlight.translation or ""
        lines.append(f"  • [bold]{highlight.original or highlight.text}[/bold] {note}")

    border = "white"
    if evaluation is not None:
        border = "green" if evaluation.score >= get_settings().pass_score else "red"
        lines.append(f"\nScore: [bold]{evaluation.score}[/bold]  {evaluation.feedback}")

    console.print(Panel("\n".join(lines), border_style=border, padding=(1, 2)))


def display_error(message: str) -> None:
    console.print(Panel(f"[red]{message}[/red]", title="[bold]Error[/bold]", border_style="red"))


# =============================================================================
# Learn
# =============================================================================

async def run_learn(topic: Optional[str], target: Optional[int], use_ai: bool) -> None:
    client = GenerationClient.from_settings()
    session = SessionController(
        store=get_store(),
        generator=client,
        cache=cache_from_settings(),
        config=SessionConfig.from_settings(topic=topic, target=target),
        scorer=client,
    )

    try:
        with console.status("Preparing session..."):
            state = await session.start()

        while state != SessionState.ERROR:
            if session.is_complete:
                console.print(Panel(
                    f"[bold]Session Complete![/bold]\n\nItems passed: {session.progress}",
                    title="Summary",
                    border_style="green",
                ))
                if not await confirm("Study another set?", default=False):
                    break
                with console.status("Preparing next set..."):
                    state = await session.next_batch()
                continue

            try:
                with console.status("Generating..."):
                    content = await session.current_content()
            except GenerationError as e:
                display_error(str(e))
                if await confirm("Retry?"):
                    continue
                break

            if content is None:
                break

            target_label = session.target if session.target > 0 else "∞"
            display_scenario(content, f"{session.progress}/{target_label}  |  {session.topic}")

            answer = (await ask("Your English (q to quit)")).strip()
            if answer.lower() in QUIT_WORDS:
                break

            evaluation = None
            if use_ai and answer:
                try:
                    with console.status("Scoring..."):
                        evaluation = await session.evaluate(answer, content)
                except GenerationError as e:
                    display_error(f"Scoring unavailable: {e}")

            if evaluation is not None:
                display_reference(content, evaluation)
                success = session.passed(evaluation)
            else:
                session.reveal()
                display_reference(content)
                success = await confirm("Did you get it right?")

            await session.submit_result(success)
            if not success:
                console.print(f"[{STYLES['incorrect']}]Try the same phrase in a new scenario[/]")

        if session.state == SessionState.ERROR:
            display_error(str(session.last_error))
    finally:
        session.close()
        await client.close()


@app.command()
def learn(
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Scenario topic"),
    target: Optional[int] = typer.Option(None, "--target", "-n", help="Successes to complete (0 = whole queue)"),
    ai: bool = typer.Option(False, "--ai", help="Score typed answers with the language model"),
) -> None:
    """Drill corpus items one scenario at a time."""
    asyncio.run(run_learn(topic, target, ai))


# =============================================================================
# Review
# =============================================================================

async def run_review(topic: Optional[str], target: Optional[int]) -> None:
    settings = get_settings()
    client = GenerationClient.from_settings()
    review_session = ReviewSession(
        store=get_store(),
        generator=client,
        cache=cache_from_settings(),
        topic=topic or settings.default_topic,
        target=settings.default_review_target if target is None else target,
        feedback_provider=client,
    )

    try:
        with console.status("Preparing scenario..."):
            state = await review_session.start()

        while state != SessionState.ERROR and review_session.scenario is not None:
            scenario = review_session.scenario
            display_scenario(
                scenario,
                f"Level {review_session.level + 1}  |  {review_session.topic}",
            )
            console.print("[dim]Use: " + ", ".join(review_session.phrases) + "[/dim]")

            answer = (await ask("Your English (q to quit)")).strip()
            if answer.lower() in QUIT_WORDS:
                break

            if answer:
                with console.status("Analysing..."):
                    feedback = await review_session.feedback(answer)
                display_reference(scenario, feedback)
                if feedback.improved_version:
                    console.print(f"[{STYLES['info']}]Improved:[/] {feedback.improved_version}")
            else:
                display_reference(scenario)

            if not await confirm("Next level?"):
                break
            with console.status("Loading next level..."):
                state = await review_session.next_level()

        if review_session.state == SessionState.ERROR:
            display_error(str(review_session.last_error))
    finally:
        review_session.close()
        await client.close()


@app.command()
def review(
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Scenario topic"),
    target: Optional[int] = typer.Option(None, "--target", "-n", help="Phrases per scenario"),
) -> None:
    """Multi-phrase scenario review."""
    asyncio.run(run_review(topic, target))


# =============================================================================
# Corpus Management
# =============================================================================

async def extract_items(text: str) -> list[CorpusItem]:
    client = GenerationClient.from_settings()
    try:
        phrases = await client.extract_corpus(text)
    finally:
        await client.close()

    now = now_ms()
    return [
        new_corpus_item(p.english, p.chinese, now=now, item_type=p.type, tags=p.tags, synonyms=p.synonyms)
        for p in phrases
    ]


@app.command()
def add(
    english: Optional[str] = typer.Argument(None, help="English phrase"),
    chinese: str = typer.Argument("", help="Chinese meaning"),
    item_type: str = typer.Option("phrase", "--type", help="word, phrase or sentence"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", help="Tag (repeatable)"),
    from_file: Optional[Path] = typer.Option(
        None,
        "--from-file", "-f",
        help="Extract phrases from a text file with the language model",
    ),
) -> None:
    """Add a phrase to the corpus."""
    if from_file is not None:
        with console.status("Extracting phrases..."):
            items = asyncio.run(extract_items(from_file.read_text(encoding="utf-8")))
    elif english:
        items = [new_corpus_item(english, chinese, item_type=item_type, tags=tags)]
    else:
        console.print("[red]Give a phrase or --from-file[/red]")
        raise typer.Exit(1)

    added = get_store().add_items(items)
    console.print(f"[green]Added {added} item(s)[/green] ({len(items) - added} already present)")


@app.command("list")
def list_items(
    due_only: bool = typer.Option(False, "--due", help="Only items due for review"),
) -> None:
    """Show the corpus."""
    items = get_store().load()
    now = now_ms()
    if due_only:
        items = [item for item in items if item.is_due(now)]

    if not items:
        console.print("[dim]Corpus is empty.[/dim]")
        return

    table = Table(title=f"{len(items)} items")
    table.add_column("ID", style="dim")
    table.add_column("English")
    table.add_column("Chinese")
    table.add_column("Mastery")
    table.add_column("Status")

    for item in items:
        status = "[yellow]due[/yellow]" if item.is_due(now) else "[green]scheduled[/green]"
        table.add_row(item.id, item.english, item.chinese, mastery_bar(item.mastery_level), status)

    console.print(table)


@app.command()
def stats() -> None:
    """Show mastery statistics."""
    summary = corpus_stats(get_store().load(), now_ms())

    console.print("\n[bold cyan]Corpus Statistics[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Total items", str(summary.total))
    table.add_row("Due now", str(summary.due))
    table.add_row("Mastered", str(summary.mastered))
    table.add_row("Average mastery", f"{summary.average_mastery:.2f}")

    console.print(table)


@app.command("purge-cache")
def purge_cache(
    purge_all: bool = typer.Option(False, "--all", help="Drop every entry, not just expired ones"),
) -> None:
    """Drop expired (or all) generated content."""
    cache = cache_from_settings()
    if purge_all:
        cache.invalidate_all()
        console.print("[green]Content cache cleared.[/green]")
    else:
        removed = cache.purge_expired()
        console.print(f"[green]Removed {removed} expired entries[/green]")


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="5 MB", retention=3)

    app()


if __name__ == "__main__":
    main()
