"""Terminal rendering of plans, progress events and run summaries."""

import click

from swarm_code.core.orchestrator import ProgressEvent
from swarm_code.core.scheduler import group_by_wave
from swarm_code.models import RunState, WorkPackage

STATUS_COLORS = {
    "pending": "yellow",
    "running": "blue",
    "done": "green",
    "failed": "red",
}

EVENT_STYLES = {
    "wave-start": ("\n~ ", {"fg": "cyan", "bold": True}),
    "wp-start": ("  > ", {"fg": "yellow"}),
    "wp-done": ("  ✓ ", {"fg": "green"}),
    "wp-failed": ("  ✗ ", {"fg": "red"}),
    "wave-done": ("  -- ", {"fg": "cyan"}),
    "all-done": ("\n", {"fg": "green", "bold": True}),
}


def show_plan(packages: list[WorkPackage]) -> None:
    click.secho("\nPlan\n", bold=True)
    for wave, wps in enumerate(group_by_wave(packages), start=1):
        click.secho(f"  Wave {wave}", fg="cyan", bold=True)
        for wp in wps:
            deps = click.style(f" (deps: {', '.join(wp.dependencies)})", dim=True) if wp.dependencies else ""
            click.echo(f"    {wp.id} {wp.name}{deps}")
        click.echo()


def show_progress(event: ProgressEvent) -> None:
    prefix, style = EVENT_STYLES.get(event.type, ("  ", {}))
    click.secho(f"{prefix}{event.message}", **style)


def show_summary(state: RunState) -> None:
    click.secho("\nSummary\n", bold=True)
    click.secho(f"  {'WP':<8} {'Name':<30} {'Status':<10}", underline=True)

    for wp in state.work_packages:
        status = click.style(f"{wp.status:<10}", fg=STATUS_COLORS.get(wp.status))
        click.echo(f"  {wp.id:<8} {wp.name[:30]:<30} {status}")
        if wp.status == "failed" and wp.error:
            click.secho(f"           {wp.error}", fg="red", dim=True)

    counts = state.counts()
    total = len(state.work_packages)
    click.echo()
    passed = click.style(f"{counts['done']} passed", fg="green")
    failed = click.style(f"{counts['failed']} failed", fg="red")
    click.echo(f"  {passed} / {failed} / {total} total")
    if state.duration is not None:
        click.echo(f"  Duration: {state.duration:.1f}s")
    elif state.completed_at is None and state.started_at is not None:
        click.echo(f"  Started: {state.started_at.isoformat()} (not completed)")
    click.echo()
