"""Cron Watch: command-line entry point.

Commands:
    monitor      Run the polling loop in the foreground until Ctrl-C.
    check        Run one or more polls now and print what they found.
    serve        Run the polling loop behind the diagnostics HTTP API.
    test-source  Verify the record source is reachable.
    test-notify  Send a sample transition to a webhook URL.

Usage:
    uv run cronwatch check -n 2
    uv run cronwatch monitor -vv
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from config import ConfigError, Settings, get_settings
from core.log_setup import configure_logging
from core.monitor import build_service, build_source
from display.tables import render_alerts, render_job_states, render_scheduler, render_transitions
from notify.base import NotificationError
from notify.webhook import WebhookNotifier
from schemas.alert import HealthState, HeuristicKind, StateTransition
from schemas.record import JobStatus
from sources.base import SourceError

app = typer.Typer(
    name="cronwatch",
    help="Detect stuck, failing and missed cron jobs.",
    no_args_is_help=True,
)

console = Console()


def _load_settings(env_file: Optional[str]) -> Settings:
    if env_file:
        load_dotenv(env_file, override=True)
    get_settings.cache_clear()
    try:
        return get_settings()
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(2)


_ENV_FILE = typer.Option(None, "--env-file", help="Load settings from this .env file first")
_VERBOSE = typer.Option(0, "--verbose", "-v", count=True, help="-v info, -vvv debug")


@app.command()
def monitor(
    verbose: int = _VERBOSE,
    env_file: Optional[str] = _ENV_FILE,
):
    """Poll forever, logging alerts and sending notifications."""
    settings = _load_settings(env_file)
    configure_logging(settings, verbose)

    service = build_service(settings)
    try:
        service.start()
    except KeyboardInterrupt:
        service.stop()
        typer.echo("Stopped.", err=True)
    finally:
        service.close()


@app.command()
def check(
    polls: int = typer.Option(1, "--polls", "-n", min=1, help="Number of polls to run"),
    pause: float = typer.Option(0.0, "--pause", min=0.0, help="Seconds to wait between polls"),
    verbose: int = _VERBOSE,
    env_file: Optional[str] = _ENV_FILE,
):
    """Run polls now and print alerts, transitions and job state.

    Exits 1 when any poll raised an alert, 2 when the source failed.
    """
    settings = _load_settings(env_file)
    configure_logging(settings, verbose)

    service = build_service(settings)
    alerted = False
    try:
        console.rule("[bold]Cron Watch[/bold]")
        console.print(f"  source      [cyan]{service.source.description}[/cyan]")
        console.print(f"  debounce    [cyan]{service.engine.mode.value}[/cyan]")

        for i in range(1, polls + 1):
            if i > 1 and pause:
                time.sleep(pause)

            result = service.run_check()
            if result is None:
                console.print(f"\n[bold red]✗  Poll {i}: could not read records.[/bold red]")
                raise typer.Exit(2)

            console.print(
                f"\n[bold]Poll {i}[/bold]  [dim]{result.record_count} records, "
                f"{result.job_count} jobs[/dim]"
            )
            if result.alerts:
                alerted = True
                console.print(render_alerts(result.alerts, title=f"Alerts (poll {i})"))
            if result.transitions:
                console.print(render_transitions(result.transitions, title=f"Transitions (poll {i})"))
            if not result.alerts and not result.transitions:
                console.print("[dim]  nothing to report[/dim]")

        states = service.engine.job_states()
        if states:
            console.print()
            console.print(render_job_states(states))
        console.print(f"\n{render_scheduler(service.engine.scheduler_state())}")

        summary = (
            "[bold red]⚠  Stuck jobs detected[/bold red]"
            if alerted
            else "[bold green]✓  No stuck jobs[/bold green]"
        )
        console.print(f"\n{summary}\n")
    finally:
        service.close()

    if alerted:
        raise typer.Exit(1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default CRONWATCH_API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (default CRONWATCH_API_PORT)"),
    env_file: Optional[str] = _ENV_FILE,
):
    """Run the monitor behind the diagnostics API."""
    import uvicorn

    settings = _load_settings(env_file)
    uvicorn.run("main:app", host=host or settings.api_host, port=port or settings.api_port)


@app.command("test-source")
def test_source(env_file: Optional[str] = _ENV_FILE):
    """Check that the record source is reachable and show what it holds."""
    settings = _load_settings(env_file)
    source = build_source(settings)
    try:
        total = source.total_count()
        recent = source.fetch_recent(settings.lookback_window)
    except SourceError as e:
        typer.echo(f"Source error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        source.close()

    console.print(f"[bold green]✓[/bold green]  {source.description}")
    console.print(f"  total records   [cyan]{total}[/cyan]")
    console.print(f"  in lookback     [cyan]{len(recent)}[/cyan]")
    console.print(f"  distinct jobs   [cyan]{len({r.job_id for r in recent})}[/cyan]")


@app.command("test-notify")
def test_notify(
    url: str = typer.Argument(..., help="Webhook URL to post to"),
    recovery: bool = typer.Option(False, "--recovery", help="Send a recovery instead of an alert"),
    env_file: Optional[str] = _ENV_FILE,
):
    """Post a sample transition to a webhook."""
    settings = _load_settings(env_file)
    notifier = WebhookNotifier([url], timeout=settings.notify_timeout_seconds)
    try:
        notifier.send(sample_transition(recovery))
    except NotificationError as e:
        typer.echo(f"Notification failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        notifier.close()

    kind = "recovery" if recovery else "alert"
    console.print(f"[bold green]✓[/bold green]  Sample {kind} delivered.")


def sample_transition(recovery: bool = False) -> StateTransition:
    """A realistic transition for webhook smoke tests."""
    now = datetime.now(timezone.utc)
    if recovery:
        return StateTransition(
            job_id="indexer_reindex_catalog",
            group="index",
            from_state=HealthState.ALERTING,
            to_state=HealthState.NOT_ALERTING,
            at=now,
            status=JobStatus.SUCCESS,
            stuck_duration=timedelta(minutes=42),
            last_execution=now - timedelta(minutes=3),
        )
    return StateTransition(
        job_id="indexer_reindex_catalog",
        group="index",
        from_state=HealthState.NOT_ALERTING,
        to_state=HealthState.ALERTING,
        at=now,
        status=JobStatus.RUNNING,
        reason="job running longer than max_running_time threshold (45 minutes)",
        kind=HeuristicKind.LONG_RUNNING,
        last_execution=now - timedelta(minutes=45),
        scheduled_at=now - timedelta(minutes=46),
        running_time=timedelta(minutes=45),
        consecutive_stuck=2,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
