"""Read-only views over state records and logs for the status/logs commands."""

from datetime import datetime
from typing import List, Optional

import click

from setup_runner.state_store import StateRecord, StateStore

STATUS_ICONS = {
    "success": "✓",
    "skipped": "◐",
    "failed": "✗",
}


def format_duration(seconds: float) -> str:
    """Format duration in human-readable form."""
    if seconds < 1:
        return f"{seconds*1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    else:
        mins = int(seconds // 60)
        secs = seconds % 60
        return f"{mins}m {secs:.0f}s"


def record_duration(record: StateRecord) -> Optional[float]:
    """Seconds between started_at and finished_at, or None if unparsable."""
    try:
        start = datetime.fromisoformat(record.started_at)
        end = datetime.fromisoformat(record.finished_at)
        return (end - start).total_seconds()
    except (TypeError, ValueError):
        return None


def describe_record(record: StateRecord) -> List[str]:
    """Detail lines for one record."""
    duration = record_duration(record)
    lines = [
        f"ACTION: {record.action}",
        "-" * 40,
        f"  Status:      {STATUS_ICONS.get(record.status, '?')} {record.status}",
        f"  Exit code:   {record.rc}",
        f"  Started:     {record.started_at}",
        f"  Finished:    {record.finished_at}",
    ]
    if duration is not None:
        lines.append(f"  Duration:    {format_duration(duration)}")
    lines += [
        f"  By:          {record.user}@{record.host}",
        f"  Version:     {record.version}",
        f"  Log:         {record.log_path}",
    ]
    for key, value in record.extras.items():
        lines.append(f"  {key + ':':<12} {value}")
    return lines


def print_status(store: StateStore, action: Optional[str] = None) -> bool:
    """
    Print one action's record, or a table of every recorded action.

    Returns:
        False if a single action was requested and has no readable record.
    """
    if action:
        record = store.read(action)
        if record is None:
            if store.last_error:
                click.echo(f"Unreadable state for {action}: {store.last_error}", err=True)
            else:
                click.echo(f"No state recorded for {action} (never run).")
            return False
        for line in describe_record(record):
            click.echo(line)
        return True

    records = store.list_records()
    if not records:
        click.echo("No state records found.")
        click.echo(f"  (searched: {store.state_root})")
        return True

    click.echo(f"{'ACTION':<40} {'STATUS':<10} {'RC':>4}  {'FINISHED':<25}")
    click.echo("-" * 84)
    for record in records:
        icon = STATUS_ICONS.get(record.status, "?")
        click.echo(
            f"{record.action[:39]:<40} {icon + ' ' + record.status:<10} {record.rc:>4}  {record.finished_at:<25}"
        )
    click.echo()
    click.echo(f"Showing {len(records)} action(s)")
    return True
