"""stickies tasks sub-commands: add, list, done, delete."""

from __future__ import annotations

from typing import Annotated

import typer

from stickies.cli.common import DbOption, UserOption, cli_errors, console, open_service
from stickies.cli.errors import err_not_found
from stickies.cli.voice import task_table
from stickies.errors import NotFoundError

tasks_app = typer.Typer(
    name="tasks",
    help="Extract tasks from typed text and manage them.",
    add_completion=False,
)


@tasks_app.command("add")
def add_cmd(
    text: Annotated[str, typer.Argument(help='What to do, e.g. "call mom tomorrow at 3pm".')],
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """Turn typed text into tasks (same extraction as voice notes)."""
    with cli_errors(), open_service(db) as service:
        with console.status("Extracting tasks..."):
            ingestion_id, tasks = service.tasks_from_text(user, text)
    console.print(task_table(tasks, title=f"{len(tasks)} task(s) created"))
    console.print(f"[dim]{ingestion_id}[/]")


@tasks_app.command("list")
def list_cmd(
    user: UserOption = "local",
    done: Annotated[
        bool | None,
        typer.Option("--done/--open", help="Only completed (--done) or open (--open) tasks."),
    ] = None,
    type_: Annotated[
        str | None, typer.Option("--type", help="task | reminder | note")
    ] = None,
    priority: Annotated[
        str | None, typer.Option("--priority", help="low | medium | high")
    ] = None,
    ingestion: Annotated[
        str | None, typer.Option("--ingestion", help="Only tasks from this ingestion.")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", min=1, help="Maximum rows.")] = 50,
    db: DbOption = None,
) -> None:
    """List tasks, newest first."""
    with cli_errors(), open_service(db) as service:
        tasks = service.list_tasks(
            user,
            completed=done,
            type=type_,
            priority=priority,
            ingestion_id=ingestion,
            limit=limit,
        )
    if not tasks:
        console.print('[yellow]No tasks.[/]\n  Run:  stickies tasks add "..."')
        return
    console.print(task_table(tasks))


@tasks_app.command("done")
def done_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id.")],
    user: UserOption = "local",
    undo: Annotated[bool, typer.Option("--undo", help="Mark the task as not done.")] = False,
    db: DbOption = None,
) -> None:
    """Mark a task as completed (or re-open it with --undo)."""
    with cli_errors(), open_service(db) as service:
        try:
            task = service.update_task(user, task_id, completed=not undo)
        except NotFoundError:
            console.print(err_not_found("Task", task_id, "stickies tasks list"))
            raise typer.Exit(1)
    state = "re-opened" if undo else "[green]done[/]"
    console.print(f"{task.title}: {state}")


@tasks_app.command("delete")
def delete_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id.")],
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """Delete a task."""
    with cli_errors(), open_service(db) as service:
        try:
            service.delete_task(user, task_id)
        except NotFoundError:
            console.print(err_not_found("Task", task_id, "stickies tasks list"))
            raise typer.Exit(1)
    console.print(f"[green]✓[/] Deleted task {task_id}")
