import asyncio
import logging
import random
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown

from creator_lens.config import get_settings
from creator_lens.core import CreatorLens
from creator_lens.errors import CreatorLensError
from creator_lens.formatter import (
    format_insight_report,
    format_patterns,
    format_persona_summary,
    format_suggestions,
)
from creator_lens.models import (
    CategoryGroup,
    ContentMetrics,
    ContentResult,
    CTAStyle,
    EventMeta,
    EventType,
    FormatType,
    Goal,
    OpeningType,
    Pacing,
    PersonaEvent,
    Platform,
    Tone,
)

load_dotenv()
app = typer.Typer(help="Learn a creator's style and turn results into daily ideas and weekly insights.")
console = Console()

_state: dict = {"db": None, "seed": None}


@app.callback()
def main(
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite file (default: CREATOR_LENS_DB_PATH)"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for exploration sampling"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else get_settings().log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    _state["db"] = db
    _state["seed"] = seed


def _lens() -> CreatorLens:
    settings = get_settings()
    if _state["db"] is not None:
        settings = settings.model_copy(update={"db_path": str(_state["db"])})
    lens = CreatorLens.from_settings(settings)
    if _state["seed"] is not None:
        lens.suggestions.rng = random.Random(_state["seed"])
    return lens


def _run(coro_fn):
    async def _go():
        lens = _lens()
        await lens.init()
        return await coro_fn(lens)

    try:
        return asyncio.run(_go())
    except CreatorLensError as exc:
        console.print(f"[bold red]Error:[/] {exc}")
        raise typer.Exit(1)


@app.command("log-event")
def log_event(
    user: str = typer.Argument(help="User id"),
    event_type: EventType = typer.Argument(help="generation, save, export, ab_test_win, result_added"),
    tone: Optional[Tone] = typer.Option(None, "--tone"),
    opening: Optional[OpeningType] = typer.Option(None, "--opening"),
    format: Optional[FormatType] = typer.Option(None, "--format"),
    cta: Optional[CTAStyle] = typer.Option(None, "--cta"),
    pacing: Optional[Pacing] = typer.Option(None, "--pacing"),
    hook_length: Optional[float] = typer.Option(None, "--hook-length", help="Hook length in words"),
    score: Optional[float] = typer.Option(None, "--score", help="Performance score 0-100"),
):
    """Record a behavioural event and update the persona."""
    event = PersonaEvent(
        user_id=user,
        event_type=event_type,
        meta=EventMeta(
            tone=tone,
            opening_type=opening,
            format=format,
            cta_style=cta,
            pacing=pacing,
            hook_length=hook_length,
            performance_score=score,
        ),
    )
    profile = _run(lambda lens: lens.log_event(event))
    if profile is None:
        console.print("[yellow]Personalization is not enabled for this plan; event ignored.[/]")
        return
    console.print(f"[bold green]✓[/] persona v{profile.version} updated")


@app.command("add-result")
def add_result(
    user: str = typer.Argument(help="User id"),
    platform: Platform = typer.Option(..., "--platform", "-p"),
    views: int = typer.Option(0, "--views"),
    likes: int = typer.Option(0, "--likes"),
    comments: int = typer.Option(0, "--comments"),
    shares: int = typer.Option(0, "--shares"),
    saves: int = typer.Option(0, "--saves"),
    completion: Optional[float] = typer.Option(None, "--completion", help="Completion rate 0-1"),
    tone: Optional[Tone] = typer.Option(None, "--tone"),
    goal: Optional[Goal] = typer.Option(None, "--goal"),
    format: Optional[FormatType] = typer.Option(None, "--format"),
    group: Optional[CategoryGroup] = typer.Option(None, "--group"),
    slug: Optional[str] = typer.Option(None, "--slug", help="Category slug, e.g. lifestyle"),
    preview: Optional[str] = typer.Option(None, "--preview", help="First words of the content"),
    generation: Optional[str] = typer.Option(None, "--generation", help="Id of the generation this came from"),
    posted: Optional[datetime] = typer.Option(None, "--posted", help="When it was posted"),
    result_id: Optional[str] = typer.Option(None, "--id", help="Result id (resubmitting the same id is a no-op)"),
):
    """Record a published result and refresh its pattern."""
    fields = dict(
        user_id=user,
        platform=platform,
        generation_id=generation,
        category_group=group,
        category_slug=slug,
        tone=tone,
        goal=goal,
        format=format,
        content_preview=preview,
        posted_at=posted,
        metrics=ContentMetrics(
            views=views, likes=likes, comments=comments, shares=shares, saves=saves, completion_rate=completion
        ),
    )
    if result_id:
        fields["id"] = result_id
    result, stats = _run(lambda lens: lens.add_result(ContentResult(**fields)))
    console.print(
        f"[bold green]✓[/] {result.id}  engagement {result.engagement_rate:.1f}%  "
        f"score {result.performance_score:.1f}"
    )
    console.print(f"[dim]{stats.pattern_key}: {stats.total_results} results, score {stats.weighted_score:.2f}[/]")


@app.command()
def persona(
    user: str = typer.Argument(help="User id"),
    recalculate: bool = typer.Option(False, "--recalculate", help="Rebuild from the event log first"),
):
    """Show the learned persona."""

    async def _go(lens: CreatorLens):
        if recalculate:
            await lens.personas.recalculate(user)
        return await lens.personas.summary(user)

    summary = _run(_go)
    if summary is None:
        console.print("[yellow]No persona yet. Log a few events first.[/]")
        return
    console.print(Markdown(format_persona_summary(summary)))


@app.command()
def patterns(
    user: str = typer.Argument(help="User id"),
    platform: Optional[Platform] = typer.Option(None, "--platform", "-p"),
    limit: int = typer.Option(10, "--limit", "-n"),
):
    """List the best performing patterns."""
    top = _run(lambda lens: lens.patterns.top_patterns(user, [platform] if platform else None, limit=limit))
    console.print(Markdown(format_patterns(top)))


@app.command()
def suggest(
    user: str = typer.Argument(help="User id"),
    platform: Optional[list[Platform]] = typer.Option(None, "--platform", "-p", help="Repeat for several platforms"),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Defaults to the plan's daily limit"),
    ratio: Optional[float] = typer.Option(None, "--explore", help="Share of experiments, 0-1"),
    locale: str = typer.Option("en", "--locale"),
    regenerate: bool = typer.Option(False, "--regenerate", help="Overwrite today's suggestions"),
):
    """Generate today's content ideas."""
    with console.status("[bold green]Generating ideas..."):
        batch = _run(
            lambda lens: lens.suggestions.generate_daily(
                user, platform or None, count, ratio, locale=locale, regenerate=regenerate
            )
        )
    console.print(Markdown(format_suggestions(batch)))


@app.command()
def insights(
    user: str = typer.Argument(help="User id"),
    start: Optional[datetime] = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="Week start (Monday)"),
    locale: str = typer.Option("en", "--locale"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save report to file instead of printing"),
):
    """Build the weekly performance report."""
    period_start: Optional[date] = start.date() if start else None
    with console.status("[bold green]Aggregating the week..."):
        insight = _run(lambda lens: lens.generate_weekly(user, period_start, None, locale))
    if insight is None:
        console.print("[yellow]Not enough results for this week (or insights not in plan).[/]")
        return

    md = format_insight_report(insight)
    if output:
        output.write_text(md)
        console.print(f"[bold green]✓[/] Report saved to [cyan]{output}[/]")
    else:
        console.print(Markdown(md))


if __name__ == "__main__":
    app()
