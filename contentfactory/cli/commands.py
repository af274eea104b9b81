"""CLI commands for contentfactory using Typer and Rich.

Implements 4 CLI commands:
- posts: Run a content-post job in this process
- video: Run a multi-scene video job in this process
- status: Show a job's snapshot
- list: List posts or videos in a table
"""

import asyncio
import logging
import uuid
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from contentfactory.config import settings
from contentfactory.db import init_database, shutdown
from contentfactory.orchestrator.errors import JobNotFoundError
from contentfactory.orchestrator.wiring import build_orchestrator
from contentfactory.schemas.events import TERMINAL_EVENTS
from contentfactory.schemas.jobs import ContentJobParams, JobKind, JobSnapshot, VideoJobParams

app = typer.Typer(name="contentfactory", help="AI social-media content and video job runner")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def posts(
    count: int = typer.Option(
        settings.pipeline.default_post_count, "--count", "-n", help="Number of posts to create"
    ),
):
    """Create and publish posts, one topic/plan/image/caption/publish cycle each."""
    if not 1 <= count <= settings.pipeline.max_post_count:
        console.print(f"[red]Error:[/red] count must be between 1 and {settings.pipeline.max_post_count}")
        raise typer.Exit(code=1)
    _run(JobKind.CONTENT_POST, ContentJobParams(count=count))


@app.command()
def video(
    prompt: str = typer.Argument(..., help="What the video is about"),
    niche: Optional[str] = typer.Option(None, "--niche", help="Content niche, e.g. Travel"),
    scenes: int = typer.Option(
        settings.pipeline.default_scene_count, "--scenes", "-s", help="Number of scenes"
    ),
    total_duration: int = typer.Option(
        settings.pipeline.default_total_duration, "--total-duration", "-t", help="Total duration in seconds"
    ),
):
    """Storyboard, generate and combine a multi-scene video."""
    if not 1 <= scenes <= settings.pipeline.max_scene_count:
        console.print(f"[red]Error:[/red] scenes must be between 1 and {settings.pipeline.max_scene_count}")
        raise typer.Exit(code=1)
    if not 15 <= total_duration <= 60:
        console.print("[red]Error:[/red] total duration must be between 15 and 60 seconds")
        raise typer.Exit(code=1)
    _run(
        JobKind.VIDEO,
        VideoJobParams(prompt=prompt, niche=niche, scene_count=scenes, total_duration=total_duration),
    )


def _run(kind: JobKind, params) -> None:
    try:
        snapshot = asyncio.run(_run_async(kind, params))
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Interrupted, job cancelled.[/yellow]")
        raise typer.Exit(code=130)

    if snapshot.status.value == "failed":
        console.print(f"[red]✗ Job failed:[/red] {snapshot.error_message}")
        raise typer.Exit(code=1)
    if snapshot.status.value == "cancelled":
        console.print("[yellow]Job cancelled[/yellow]")
        return
    console.print(f"[green]✓[/green] Job complete: {snapshot.completed_units}/{snapshot.total_units} units")
    if snapshot.result:
        for key, value in snapshot.result.items():
            console.print(f"[green]{key}:[/green] {value}")


async def _run_async(kind: JobKind, params) -> JobSnapshot:
    """Start a job and render its events until a terminal one arrives."""
    await init_database()
    orchestrator = build_orchestrator()
    try:
        job_id = await orchestrator.start(kind, params)
        console.print(f"[green]Started {kind.value} job:[/green] {job_id}")
        console.print()

        async with orchestrator.broadcaster.subscribe(job_id=job_id) as subscription:
            with Progress(
                SpinnerColumn(),
                TextColumn("[bold green]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                console=console,
            ) as progress:
                bar = progress.add_task("Starting...", total=100)
                async for event in subscription:
                    _render_event(progress, bar, event)
                    if event.event in TERMINAL_EVENTS:
                        break

        return await orchestrator.wait(job_id)
    finally:
        await orchestrator.shutdown()
        await shutdown()


def _render_event(progress: Progress, bar, event) -> None:
    progress.update(bar, completed=event.progress)
    if event.event == "job_status":
        description = event.current_stage or "Working"
        if event.total_iterations and event.total_iterations > 1:
            description = f"[{event.iteration}/{event.total_iterations}] {description}"
        progress.update(bar, description=description)
    elif event.event == "storyboard_created":
        progress.console.print(f"[blue]Storyboard:[/blue] {event.title} ({len(event.scenes)} scenes)")
    elif event.event == "scene_completed":
        progress.console.print(
            f"[green]✓[/green] Scene {event.scene_number}/{event.total_scenes}: {event.media_url}"
        )
    elif event.event == "post_created":
        progress.console.print(f"[green]✓[/green] Post {event.iteration} ({event.niche}) published")
    elif event.event == "item_failed":
        progress.console.print(
            f"[red]✗[/red] Post {event.iteration} failed at {event.stage}: {event.error}"
        )
    elif event.event in TERMINAL_EVENTS:
        progress.update(bar, description=event.event.replace("job_", "").capitalize())


@app.command()
def status(
    job_id: Optional[str] = typer.Argument(None, help="Job UUID; defaults to the latest running job"),
):
    """Show detailed job status."""
    asyncio.run(_status_async(job_id))


async def _status_async(job_id_str: Optional[str]):
    job_uuid = None
    if job_id_str:
        try:
            job_uuid = uuid.UUID(job_id_str)
        except ValueError:
            console.print(f"[red]Error:[/red] Invalid job UUID: {job_id_str}")
            raise typer.Exit(code=1)

    await init_database()
    orchestrator = build_orchestrator()
    try:
        try:
            snapshot = await orchestrator.get_status(job_uuid)
        except JobNotFoundError:
            console.print(f"[red]Error:[/red] Job not found: {job_uuid}")
            raise typer.Exit(code=1)
    finally:
        await shutdown()

    if snapshot is None:
        console.print("[yellow]No running jobs[/yellow]")
        return

    status_color = _get_status_color(snapshot.status.value)
    info_lines = [
        f"[bold]ID:[/bold] {snapshot.id}",
        f"[bold]Kind:[/bold] {snapshot.kind.value}",
        f"[bold]Status:[/bold] [{status_color}]{snapshot.status.value}[/{status_color}]",
        f"[bold]Progress:[/bold] {snapshot.progress:.0f}%",
        f"[bold]Units:[/bold] {snapshot.completed_units}/{snapshot.total_units}",
    ]
    if snapshot.current_stage:
        info_lines.append(f"[bold]Stage:[/bold] {snapshot.current_stage} ({snapshot.current_agent})")
    if snapshot.created_at:
        info_lines.append(f"[bold]Created:[/bold] {snapshot.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
    if snapshot.started_at and snapshot.completed_at:
        duration = (snapshot.completed_at - snapshot.started_at).total_seconds()
        info_lines.append(f"[bold]Duration:[/bold] {duration:.1f}s")
    if snapshot.error_message:
        info_lines.append(f"[bold]Error:[/bold] [red]{snapshot.error_message}[/red]")

    console.print(Panel("\n".join(info_lines), title="[bold]Job Status[/bold]", border_style="blue"))


@app.command(name="list")
def list_entities(
    kind: JobKind = typer.Option(JobKind.CONTENT_POST, "--kind", "-k", help="content_post or video"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum rows"),
):
    """List posts or videos, newest first."""
    asyncio.run(_list_async(kind, limit))


async def _list_async(kind: JobKind, limit: int):
    await init_database()
    orchestrator = build_orchestrator()
    try:
        records = await orchestrator.list_entities(kind, limit=limit)
    finally:
        await shutdown()

    if not records:
        console.print("[yellow]Nothing found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("Niche")
    if kind is JobKind.CONTENT_POST:
        table.add_column("Caption")
    else:
        table.add_column("Title")
        table.add_column("Scenes")
    table.add_column("Status")
    table.add_column("Created")

    for record in records:
        id_display = str(record.id)[:8] + "..."
        status_color = _get_status_color(record.status)
        status_display = f"[{status_color}]{record.status}[/{status_color}]"
        created_display = record.created_at.strftime("%Y-%m-%d %H:%M") if record.created_at else ""
        if kind is JobKind.CONTENT_POST:
            caption = record.caption or ""
            caption = caption if len(caption) <= 50 else caption[:47] + "..."
            table.add_row(id_display, record.niche or "", caption, status_display, created_display)
        else:
            scenes = f"{record.completed_scenes}/{len(record.scenes)}"
            table.add_row(id_display, record.niche, record.title or "", scenes, status_display, created_display)

    console.print(table)


def _get_status_color(status: str) -> str:
    """Get Rich color for a job or entity status."""
    if status in ("completed", "published"):
        return "green"
    elif status == "failed":
        return "red"
    elif status in ("running", "processing"):
        return "yellow"
    elif status in ("pending", "draft", "cancelled"):
        return "dim"
    else:
        return "white"
