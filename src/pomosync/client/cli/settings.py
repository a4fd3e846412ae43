"""Client setup commands for the pomosync CLI.

Commands:
- configure: Save the server URL and token
- settings: Show or change the persisted timer settings
"""

from __future__ import annotations

import sys

import click

from pomosync.client.cli.config import (
    get_timer_file,
    load_config,
    save_config,
)


@click.command()
@click.option(
    "--server",
    required=True,
    help="Server URL (e.g., http://localhost:8000).",
)
@click.option(
    "--token",
    required=True,
    help="Access token from the server admin.",
)
@click.option(
    "--no-verify-ssl",
    is_flag=True,
    help="Do not verify the server's SSL certificate.",
)
@click.option(
    "--skip-check",
    is_flag=True,
    help="Save without contacting the server.",
)
def configure(server: str, token: str, no_verify_ssl: bool, skip_check: bool) -> None:
    """Connect this device to a pomosync server.

    Every device configured with a token of the same user shares one timer.
    """
    import httpx

    server_url = server.rstrip("/")

    if not skip_check:
        click.echo(f"Checking {server_url}...")
        try:
            response = httpx.get(
                f"{server_url}/api/time-entries",
                params={"limit": 1},
                headers={"Authorization": f"Bearer {token}"},
                timeout=10.0,
                verify=not no_verify_ssl,
            )
        except httpx.RequestError as e:
            click.echo(f"Error: Cannot connect to server: {e}", err=True)
            sys.exit(1)
        if response.status_code == 401:
            click.echo("Error: Invalid token.", err=True)
            sys.exit(1)
        if response.status_code != 200:
            click.echo(f"Error: Server returned status {response.status_code}", err=True)
            sys.exit(1)

    config = load_config()
    config["server_url"] = server_url
    config["token"] = token
    config["verify_ssl"] = not no_verify_ssl
    save_config(config)

    click.echo(click.style("Configuration saved.", fg="green"))


@click.command()
@click.option("--work", "-w", type=int, default=None, help="Work phase length in minutes.")
@click.option("--break", "-b", "break_", type=int, default=None, help="Break length in minutes (0 = none).")
@click.option("--repetitions", "-r", type=int, default=None, help="Number of work cycles.")
@click.option("--project", "-p", default=None, help="Project to record time on.")
@click.option("--task", "-t", default=None, help="Task to record time on.")
@click.option("--notes", "-n", default=None, help="Notes for recorded entries.")
@click.option("--tag", "tags", multiple=True, help="Tag for recorded entries (repeatable).")
@click.option("--clear", is_flag=True, help="Clear project, task, notes and tags.")
def settings(
    work: int | None,
    break_: int | None,
    repetitions: int | None,
    project: str | None,
    task: str | None,
    notes: str | None,
    tags: tuple[str, ...],
    clear: bool,
) -> None:
    """Show or change the timer settings.

    Settings persist across runs and are used by 'pomosync run'.
    """
    from pomosync.client.snapshot import SnapshotStore
    from pomosync.client.timer.machine import TimerStateMachine

    store = SnapshotStore(get_timer_file())
    machine = TimerStateMachine(store.load())

    if clear:
        machine.reset()

    rejected = []
    if work is not None and not machine.set_work_duration(work):
        rejected.append("work must be at least 1 minute")
    if break_ is not None and not machine.set_break_duration(break_):
        rejected.append("break cannot be negative")
    if repetitions is not None and not machine.set_repetitions(repetitions):
        rejected.append("repetitions must be at least 1")
    if project is not None:
        machine.set_project_id(project)
    if task is not None:
        machine.set_task_id(task)
    if notes is not None:
        machine.set_notes(notes)
    if tags:
        machine.set_tags(list(tags))

    if rejected:
        for reason in rejected:
            click.echo(f"Error: {reason}", err=True)
        sys.exit(1)

    state = machine.state
    store.save(state)

    click.echo(f"Work:        {state.work_duration_min} min")
    click.echo(f"Break:       {state.break_duration_min} min")
    click.echo(f"Repetitions: {state.repetitions}")
    click.echo(f"Project:     {state.project_id or '-'}")
    click.echo(f"Task:        {state.task_id or '-'}")
    click.echo(f"Notes:       {state.notes or '-'}")
    click.echo(f"Tags:        {', '.join(state.tags) or '-'}")
