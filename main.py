#!/usr/bin/env python3
"""Journey Circle CLI - start, inspect and drive saved journey circles.

Usage:
    # Create a service area to build a circle for
    python main.py create-area --title "Managed IT" --client 7

    # Open its journey circle (completes steps 1-2 and saves it)
    python main.py start --service-area 1

    # Show where a circle stands and its three-ring model
    python main.py status --service-area 1

    # Run every step validator
    python main.py validate --service-area 1

    # Navigate
    python main.py advance --service-area 1
    python main.py jump 2 --service-area 1
"""

import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from contracts import CommandResult, RingProjection, Step
from config import settings
from providers import list_providers as get_available_providers
from store import JsonFileRepository
from workflow import JourneyCircleSession, validate_all


console = Console()


def open_repository(data_dir: Optional[str]) -> JsonFileRepository:
    return JsonFileRepository(data_dir or settings.data_dir)


def open_session(data_dir: Optional[str], service_area_id: int) -> JourneyCircleSession:
    """Resume the saved session for a service area or exit with an error."""
    session = JourneyCircleSession.resume(open_repository(data_dir), service_area_id, settings=settings)
    if session is None:
        console.print(f"[red]Error: no journey circle saved for service area {service_area_id}[/red]")
        sys.exit(1)
    return session


def render_rings(rings: RingProjection) -> Table:
    table = Table(title=f"Journey Circle ({rings.center_count} offers)")
    table.add_column("#", justify="right")
    table.add_column("Problem")
    table.add_column("Solution")
    for outer, middle in zip(rings.outer_ring, rings.middle_ring):
        problem = "[dim]empty[/dim]" if outer.is_placeholder else outer.title
        if outer.is_primary:
            problem = f"[bold yellow]★[/bold yellow] {problem}"
        solution = "[dim]empty[/dim]" if middle.is_placeholder else middle.title
        table.add_row(str(outer.position + 1), problem, solution)
    return table


def print_result(result: CommandResult) -> None:
    if result.ok:
        console.print(f"[green]OK[/green] - now at step {int(result.view.current_step)} ({result.view.step_label})")
        return
    console.print(f"[red]{result.error.kind.value}:[/red] {result.error.message}")
    for violation in result.error.violations:
        console.print(f"  - {violation.message}")


@click.group()
@click.option(
    "--data-dir", "-d",
    default=None,
    help=f"Data directory of the JSON repository (default: {settings.data_dir})"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Verbose output"
)
@click.pass_context
def main(ctx: click.Context, data_dir: Optional[str], verbose: bool):
    """Journey Circle workflow tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.obj = {"data_dir": data_dir}


@main.command("create-area")
@click.option("--title", "-t", required=True, help="Service area title")
@click.option("--client", "-c", "client_id", type=int, default=None, help="Client id")
@click.pass_context
def create_area(ctx: click.Context, title: str, client_id: Optional[int]):
    """Create a service area to build a journey circle for."""
    repository = open_repository(ctx.obj["data_dir"])
    area = repository.create_service_area(title, client_id=client_id)
    console.print(f"[green]Created service area[/green] {area.id}: {area.title}")


@main.command()
@click.option("--service-area", "-s", "service_area_id", type=int, required=True)
@click.pass_context
def start(ctx: click.Context, service_area_id: int):
    """Open the journey circle of a service area and save it."""
    repository = open_repository(ctx.obj["data_dir"])
    area = repository.get_service_area(service_area_id)
    if area is None:
        console.print(f"[red]Error: service area {service_area_id} does not exist[/red]")
        sys.exit(1)
    if repository.has_circle(service_area_id):
        console.print(f"[red]Error: service area {service_area_id} already has a journey circle[/red]")
        sys.exit(1)

    session = JourneyCircleSession(repository, settings=settings, client_id=area.client_id)
    for command in (session.advance, lambda: session.select_service_area(service_area_id), session.advance):
        result = command()
        if not result.ok:
            print_result(result)
            sys.exit(1)
    print_result(result)


@main.command()
@click.option("--service-area", "-s", "service_area_id", type=int, required=True)
@click.pass_context
def status(ctx: click.Context, service_area_id: int):
    """Show the current step and the three-ring model."""
    session = open_session(ctx.obj["data_dir"], service_area_id)
    view = session.view()
    summary = session.summary()

    console.print(Panel.fit(
        f"[bold]Step {int(view.current_step)}/{int(Step.COMPLETE)}:[/bold] {view.step_label}\n"
        f"[dim]Phase:[/dim] {view.phase.value}   [dim]Progress:[/dim] {view.progress_percent:.0f}%\n"
        f"[dim]Problems:[/dim] {summary.problem_count}   [dim]Solutions:[/dim] {summary.solution_count}   "
        f"[dim]Offers:[/dim] {summary.offer_count}   [dim]Approved assets:[/dim] {summary.approved_asset_count}",
        title=f"Service area {service_area_id}",
    ))
    console.print(render_rings(view.rings))

    if view.violations:
        console.print("\n[yellow]Blocking the next step:[/yellow]")
        for violation in view.violations:
            console.print(f"  - {violation.message}")


@main.command()
@click.option("--service-area", "-s", "service_area_id", type=int, required=True)
@click.pass_context
def validate(ctx: click.Context, service_area_id: int):
    """Run every step validator against the saved circle."""
    session = open_session(ctx.obj["data_dir"], service_area_id)

    table = Table(title="Step validation")
    table.add_column("Step", justify="right")
    table.add_column("Name")
    table.add_column("Result")
    for result in validate_all(session.store.snapshot(), session.settings):
        outcome = "[green]pass[/green]" if result.passed else "[red]" + "; ".join(result.messages) + "[/red]"
        table.add_row(str(int(result.step)), result.step.label, outcome)
    console.print(table)


@main.command()
@click.option("--service-area", "-s", "service_area_id", type=int, required=True)
@click.pass_context
def advance(ctx: click.Context, service_area_id: int):
    """Validate the current step and move to the next one."""
    session = open_session(ctx.obj["data_dir"], service_area_id)
    print_result(session.advance())


@main.command()
@click.option("--service-area", "-s", "service_area_id", type=int, required=True)
@click.pass_context
def retreat(ctx: click.Context, service_area_id: int):
    """Go back one step."""
    session = open_session(ctx.obj["data_dir"], service_area_id)
    result = session.retreat()
    if result.ok:
        session.save()
    print_result(result)


@main.command()
@click.argument("step", type=click.IntRange(1, int(Step.COMPLETE)))
@click.option("--service-area", "-s", "service_area_id", type=int, required=True)
@click.pass_context
def jump(ctx: click.Context, step: int, service_area_id: int):
    """Jump to a previously validated step."""
    session = open_session(ctx.obj["data_dir"], service_area_id)
    result = session.jump_to(step)
    if result.ok:
        session.save()
    print_result(result)


@main.command()
def providers():
    """List LLM providers and whether an API key is configured."""
    console.print("[bold]Available LLM Providers:[/bold]\n")
    for name, available in get_available_providers().items():
        state = "[green]✓ configured[/green]" if available else "[red]✗ no API key[/red]"
        console.print(f"  {name:12} {state}")
    console.print("\n[dim]Set API keys via environment variables:[/dim]")
    console.print("  GEMINI_API_KEY, ANTHROPIC_API_KEY, OPENAI_API_KEY")
    console.print(f"\n[dim]Generation model:[/dim] {settings.default_model}")


if __name__ == "__main__":
    main()
