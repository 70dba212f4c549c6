"""
atelier CLI - drive the creative engine from a terminal.

Commands:
    atelier explore <title> <description>    Explore an idea through concept, style and image
    atelier project <title> <description>    Run the Director pipeline over the agents
    atelier session <title> <task>           Run a collaboration session
    atelier compare <winner> <loser>         Record a pairwise style preference
    atelier report                           Show learned style ratings and preferences
"""

import asyncio
import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .agents.collaborative import CollaborationPattern
from .agents.messages import AgentRole
from .config import EngineConfig
from .engine import create_engine
from .learning.aesthetic import PreferenceEngine
from .learning.store import PreferenceStore
from .security.validators import (
    ValidationError,
    validate_in_choices,
    validate_non_negative_int,
    validate_not_empty,
)

app = typer.Typer(help="Creative-task scheduler and multi-agent art studio")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


# =============================================================================
# EXPLORE
# =============================================================================


@app.command()
def explore(
    title: str = typer.Argument(..., help="Idea title"),
    description: str = typer.Argument(..., help="What the idea is about"),
    style: str = typer.Option("", help="Preferred style"),
    theme: str = typer.Option("", help="Theme"),
    priority: int = typer.Option(1, help="Scheduling priority (higher runs first)"),
    direction: list[str] = typer.Option([], "--direction", "-d", help="Extra exploration direction"),
):
    """Explore an idea: one initial thread plus any extra directions."""
    try:
        validate_not_empty(title, "title")
        validate_not_empty(description, "description")
        validate_non_negative_int(priority, "priority")
    except ValidationError as e:
        _fail(str(e))

    async def run():
        engine = create_engine(EngineConfig.from_env())
        await engine.start()
        idea = engine.scheduler.add_idea(title, description, style=style, theme=theme, priority=priority)
        for d in direction:
            engine.scheduler.create_exploration_thread(idea.id, d, f"Explore the idea with a focus on {d}")
        await engine.scheduler.wait_idle()
        return engine.scheduler.get_idea(idea.id), engine.scheduler.get_threads_for_idea(idea.id)

    idea, threads = asyncio.run(run())

    table = Table(title=f"{idea.title} [{idea.status}]")
    table.add_column("Direction", style="bold")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Concept")
    for thread in threads:
        concept = thread.result_of("concept")
        color = {"completed": "green", "abandoned": "red"}.get(thread.status, "yellow")
        table.add_row(
            thread.direction,
            f"[{color}]{thread.status}[/{color}]",
            f"{thread.progress:.0%}",
            (str(concept.content)[:80] + "...") if concept else "-",
        )
    console.print(table)


# =============================================================================
# PROJECT / SESSION
# =============================================================================


@app.command()
def project(
    title: str = typer.Argument(..., help="Project title"),
    description: str = typer.Argument(..., help="Project description"),
    requirement: list[str] = typer.Option([], "--requirement", "-r", help="Project requirement"),
):
    """Run ideation, styling, refinement and critique through the Director."""
    try:
        validate_not_empty(title, "title")
    except ValidationError as e:
        _fail(str(e))

    async def run():
        engine = create_engine(EngineConfig.from_env())
        await engine.start()
        return await engine.run_project(title, description, requirement)

    outcome = asyncio.run(run())
    if outcome is None:
        _fail("The pipeline stopped before the critique stage (see log)")

    console.print(f"\n[bold green]Project completed:[/bold green] {outcome['project']['title']}\n")
    for stage, result in outcome["results"].items():
        console.print(f"[bold blue]{stage}[/bold blue]")
        console.print_json(json.dumps(result, default=str))


@app.command()
def session(
    title: str = typer.Argument(..., help="Session title"),
    task: str = typer.Argument(..., help="Task description"),
    participant: list[str] = typer.Option([], "--participant", "-p", help="Participating role"),
    pattern: str = typer.Option(None, help="Collaboration pattern (default: chosen by affinity)"),
):
    """Run one collaboration session among the agents."""
    roles = [r.value for r in AgentRole]
    patterns = [p.value for p in CollaborationPattern]
    try:
        validate_not_empty(task, "task")
        for p in participant:
            validate_in_choices(p.lower(), roles, "participant")
        if pattern:
            validate_in_choices(pattern, patterns, "pattern")
    except ValidationError as e:
        _fail(str(e))

    async def run():
        engine = create_engine(EngineConfig.from_env())
        await engine.start()
        participants = participant or engine.coordinator.recommend_collaboration(task)["participants"]
        created = await engine.coordinator.create_session(title, task, participants, pattern)
        result = await engine.coordinator.run_session(created.id, {"description": task})
        return created, result

    created, result = asyncio.run(run())
    console.print(
        f"\n[bold]{created.title}[/bold] ({created.pattern.value}, "
        f"{created.metrics.message_count} messages) "
        f"score [bold]{created.metrics.collaboration_score:.2f}[/bold]\n"
    )
    console.print_json(json.dumps(result, default=str))


# =============================================================================
# PREFERENCES
# =============================================================================


def _preference_engine() -> PreferenceEngine:
    config = EngineConfig.from_env().preference
    return PreferenceEngine(config, store=PreferenceStore(config.data_dir))


@app.command()
def compare(
    winner: str = typer.Argument(..., help="Preferred style id"),
    loser: str = typer.Argument(..., help="Other style id"),
    winner_tags: list[str] = typer.Option([], "--winner-tag", help="Tag of the preferred style"),
    loser_tags: list[str] = typer.Option([], "--loser-tag", help="Tag of the other style"),
):
    """Record that WINNER was preferred over LOSER."""
    if winner == loser:
        _fail("winner and loser must differ")

    async def run():
        engine = _preference_engine()
        await engine.load()
        return await engine.update_ratings(winner, loser, winner_tags, loser_tags)

    new_winner, new_loser = asyncio.run(run())
    console.print(f"[green]{winner}[/green] -> {new_winner:.1f}")
    console.print(f"[red]{loser}[/red] -> {new_loser:.1f}")


@app.command()
def report():
    """Show style ratings and learned tag preferences."""

    async def run():
        engine = _preference_engine()
        await engine.load()
        return engine.generate_report()

    data = asyncio.run(run())
    stats = data["stats"]
    console.print(
        f"\n[bold blue]{stats['count']} rated styles[/bold blue], "
        f"{data['total_comparisons']} comparisons, average {stats['average']:.1f}\n"
    )

    table = Table(title="Top rated")
    table.add_column("Style", style="bold")
    table.add_column("Rating", justify="right")
    for style_id, rating in data["top_rated"]:
        table.add_row(style_id, f"{rating:.1f}")
    console.print(table)

    prefs = Table(title="Learned preferences")
    prefs.add_column("Tag", style="bold")
    prefs.add_column("Weight", justify="right")
    prefs.add_column("Confidence", justify="right")
    for pref in data["top_preferences"]:
        prefs.add_row(pref["attribute"], f"{pref['weight']:+.2f}", f"{pref['confidence']:.2f}")
    console.print(prefs)


if __name__ == "__main__":
    app()
