"""Rich tables for the CLI.

Pure rendering: each function takes engine output and returns a Table.
The caller decides which console to print it on.
"""

from datetime import datetime

from rich.table import Table

from notify.formatter import alert_evidence, format_time
from schemas.alert import Alert, HealthState, StateTransition
from schemas.state import JobState, SchedulerState
from utils.durations import format_duration


def _short_time(value: datetime | None) -> str:
    return value.strftime("%H:%M:%S") if value else "[dim]—[/dim]"


def render_alerts(alerts: list[Alert], title: str = "Alerts") -> Table:
    table = Table(title=title, show_lines=True, border_style="bright_black")
    table.add_column("Job",      style="bold",  min_width=24)
    table.add_column("Group",    style="dim",   width=14)
    table.add_column("Heuristic",               min_width=20)
    table.add_column("Evidence", width=22)
    table.add_column("Checks",   width=7,       justify="right")
    table.add_column("Reason",   style="dim",   min_width=30)

    for alert in alerts:
        table.add_row(
            alert.job_id,
            alert.group,
            f"[red]{alert.kind.value}[/red]",
            alert_evidence(alert) or "[dim]—[/dim]",
            str(alert.consecutive_stuck),
            alert.reason,
        )
    return table


def render_transitions(transitions: list[StateTransition], title: str = "Transitions") -> Table:
    table = Table(title=title, show_lines=True, border_style="bright_black")
    table.add_column("Job",    style="bold", min_width=24)
    table.add_column("Change",               width=28)
    table.add_column("At",                   width=24)
    table.add_column("Detail", style="dim",  min_width=30)

    for t in transitions:
        if t.is_recovery:
            change = "[green]alerting → not_alerting[/green]"
            detail = f"stuck for {format_duration(t.stuck_duration)}" if t.stuck_duration else ""
        else:
            change = "[red]not_alerting → alerting[/red]"
            detail = t.reason or ""
        table.add_row(t.job_id, change, format_time(t.at), detail)
    return table


def render_job_states(states: dict[str, JobState], title: str = "Tracked Jobs") -> Table:
    """One row per tracked job, sorted by job id."""
    table = Table(title=title, border_style="bright_black")
    table.add_column("Job",         style="bold", min_width=24)
    table.add_column("Group",       style="dim",  width=14)
    table.add_column("Health",                    width=14, justify="center")
    table.add_column("Stuck",                     width=6,  justify="right")
    table.add_column("Last finding",              min_width=20)
    table.add_column("Checked",                   width=10, justify="center")
    table.add_column("Last alert",                width=10, justify="center")

    for job_id in sorted(states):
        state = states[job_id]
        if state.health_state is HealthState.ALERTING:
            health = "[bold red]alerting[/bold red]"
        else:
            health = "[green]ok[/green]"
        stuck_color = "red" if state.consecutive_stuck else "dim"

        table.add_row(
            job_id,
            state.group,
            health,
            f"[{stuck_color}]{state.consecutive_stuck}[/{stuck_color}]",
            state.last_status.value if state.last_status else "[dim]—[/dim]",
            _short_time(state.last_checked),
            _short_time(state.last_alert_time),
        )
    return table


def render_scheduler(state: SchedulerState) -> str:
    if state.consecutive_inactive:
        return (
            f"[bold red]scheduler inactive[/bold red] "
            f"[dim]({state.consecutive_inactive} consecutive checks)[/dim]"
        )
    return "[green]scheduler active[/green]"
