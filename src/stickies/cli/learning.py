"""stickies learn / domains commands."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from stickies.cli.common import DbOption, UserOption, cli_errors, console, open_service
from stickies.db.models import LearningSticky

domains_app = typer.Typer(
    name="domains",
    help="List, combine and delete learning areas.",
    add_completion=False,
)


def learn_cmd(
    domain: Annotated[str, typer.Argument(help='Area of interest, e.g. "React hooks".')],
    user: UserOption = "local",
    refine: Annotated[
        str | None,
        typer.Option("--refine", help="Narrow an existing area; stickies stay under DOMAIN."),
    ] = None,
    db: DbOption = None,
) -> None:
    """Generate learning stickies for an area of interest."""
    with cli_errors(), open_service(db) as service:
        with console.status("Generating learning stickies..."):
            result = service.generate_stickies(user, domain, refine)
    console.print(f"[bold]{result.domain}[/]  ({len(result.stickies)} new)")
    for sticky in result.stickies:
        console.print(sticky_panel(sticky))


def show_cmd(
    user: UserOption = "local",
    domain: Annotated[
        str | None, typer.Option("--domain", "-d", help="Only stickies in this area.")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", min=1, help="Maximum stickies.")] = 100,
    db: DbOption = None,
) -> None:
    """Show stored learning stickies, newest first."""
    with cli_errors(), open_service(db) as service:
        stickies = service.list_stickies(user, domain=domain, limit=limit)
    if not stickies:
        console.print('[yellow]No learning stickies.[/]\n  Run:  stickies learn "<area>"')
        return
    for sticky in stickies:
        console.print(sticky_panel(sticky))


@domains_app.command("list")
def list_cmd(
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """List learning areas with their sticky counts."""
    with cli_errors(), open_service(db) as service:
        domains = service.get_domains(user)
    if not domains:
        console.print('[yellow]No learning areas yet.[/]\n  Run:  stickies learn "<area>"')
        return
    table = Table(title="Learning areas", show_header=True, header_style="bold")
    table.add_column("Area")
    table.add_column("Stickies", justify="right")
    for d in domains:
        table.add_row(d.domain, str(d.count))
    console.print(table)


@domains_app.command("combine")
def combine_cmd(
    domains: Annotated[list[str], typer.Argument(help="Two or more areas to merge.")],
    into: Annotated[str, typer.Option("--into", help="Name of the combined area.")],
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """Move every sticky from DOMAINS under a single new area."""
    with cli_errors(), open_service(db) as service:
        moved = service.combine_domains(user, domains, into)
    console.print(f"[green]✓[/] Moved {moved} sticky(ies) into [bold]{into}[/]")


@domains_app.command("delete")
def delete_cmd(
    domain: Annotated[str, typer.Argument(help="Area to delete.")],
    user: UserOption = "local",
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
    db: DbOption = None,
) -> None:
    """Delete an area and every sticky in it."""
    if not yes:
        typer.confirm(f"Delete all stickies in '{domain}'?", abort=True)
    with cli_errors(), open_service(db) as service:
        deleted = service.delete_domain(user, domain)
    console.print(f"[green]✓[/] Deleted {deleted} sticky(ies) from [bold]{domain}[/]")


def sticky_panel(sticky: LearningSticky) -> Panel:
    lines = [sticky.definition]
    if sticky.example:
        lines.append(f"\n[italic]e.g.[/] {sticky.example}")
    if sticky.related_terms:
        lines.append(f"\n[dim]Related: {', '.join(sticky.related_terms)}[/]")
    return Panel("\n".join(lines), title=f"[bold]{sticky.concept}[/]", expand=False)
