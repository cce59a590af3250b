"""CLI entry point for swarm-code."""

import asyncio
import dataclasses
import json
import logging
import sys

import click

from swarm_code import display
from swarm_code.config import CONFIG_FILE, get_settings, load_config, save_config
from swarm_code.core.agents import AGENT_TYPES, create_agent
from swarm_code.core.orchestrator import Orchestrator, ProgressEvent
from swarm_code.core.plan import load_plan
from swarm_code.core.scheduler import ConfigurationError
from swarm_code.core.tracker import load_state
from swarm_code.core.worktrees import WorktreeManager
from swarm_code.integrations import slack as slack_mod
from swarm_code.integrations.git import GitError
from swarm_code.models import SwarmConfig


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log progress details to stderr")
def main(verbose):
    """swarm-code - run work packages in parallel with coding agents"""
    settings = get_settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ── Setup ─────────────────────────────────────────────────────────────────────


@main.command("init")
@click.option("--agent", "agent_type", type=click.Choice(AGENT_TYPES), default=None, help="Agent type")
@click.option("--max-concurrent", type=int, default=None, help="Max concurrent agents")
@click.option("--branch", default=None, help="Target branch for merges")
@click.option("--command", "agent_command", default=None, help="Command template for the custom agent")
@click.option("--force", is_flag=True, help="Overwrite an existing config")
def init_config(agent_type, max_concurrent, branch, agent_command, force):
    """Write .swarmrc.json for this repository."""
    settings = get_settings()
    if load_config(settings.repo_path) and not force:
        click.echo(f"{CONFIG_FILE} already exists (use --force to overwrite).", err=True)
        sys.exit(1)

    if agent_type is None:
        agent_type = click.prompt("Agent type", type=click.Choice(AGENT_TYPES), default="codex")
    if max_concurrent is None:
        max_concurrent = click.prompt("Max concurrent agents", type=click.IntRange(min=1), default=4)
    if branch is None:
        branch = click.prompt("Target branch", default="main")
    if agent_type == "custom" and not agent_command:
        agent_command = click.prompt("Agent command ({prompt} and {workdir} are substituted)")

    config = SwarmConfig(
        branch=branch,
        model=agent_type,
        max_concurrent=max_concurrent,
        agent_command=agent_command,
    )
    path = save_config(config, settings.repo_path)
    click.echo(f"Wrote {path}")


# ── Planning & Execution ──────────────────────────────────────────────────────


@main.command("plan")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
def plan_command(plan_file):
    """Validate a plan file and show its waves."""
    try:
        packages = load_plan(plan_file)
        display.show_plan(packages)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command("run")
@click.argument("plan_file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.option("--agent", "agent_type", type=click.Choice(AGENT_TYPES), default=None, help="Override agent type")
@click.option("--max-concurrent", type=click.IntRange(min=1), default=None, help="Override max concurrency")
@click.option("--branch", default=None, help="Override target branch")
@click.option("--timeout", type=float, default=None, help="Per-attempt agent timeout in seconds")
@click.option("--notify", default=None, help="Slack channel for progress notifications")
def run_command(plan_file, yes, agent_type, max_concurrent, branch, timeout, notify):
    """Execute a plan wave by wave."""
    settings = get_settings()
    repo_path = settings.repo_path

    config = load_config(repo_path)
    if not config:
        click.echo(f"Error: {CONFIG_FILE} not found. Run `swarm-code init` first.", err=True)
        sys.exit(1)

    overrides = {}
    if agent_type:
        overrides["model"] = agent_type
    if max_concurrent:
        overrides["max_concurrent"] = max_concurrent
    if branch:
        overrides["branch"] = branch
    if timeout or settings.agent_timeout:
        overrides["timeout"] = timeout or settings.agent_timeout
    config = dataclasses.replace(config, **overrides)

    try:
        packages = load_plan(plan_file) if plan_file else list(config.work_packages)
        if not packages:
            click.echo("Error: no work packages. Pass a plan file or add workPackages to the config.", err=True)
            sys.exit(1)
        display.show_plan(packages)
        agent = create_agent(config.model, config.agent_command)
    except (ConfigurationError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not yes and not click.confirm("Proceed?", default=False):
        click.echo("Aborted.")
        return

    if not asyncio.run(agent.is_available()):
        click.echo(f"Error: agent '{agent.name}' is not installed or not on PATH.", err=True)
        sys.exit(1)

    handlers = [display.show_progress]
    channel = notify or settings.slack_channel
    project = repo_path.resolve().name
    if channel:
        handlers.append(slack_mod.make_progress_notifier(settings.slack_bot_token, channel, project))

    def on_progress(event: ProgressEvent) -> None:
        for handler in handlers:
            handler(event)

    orchestrator = Orchestrator(
        config,
        packages,
        repo_path,
        agent=agent,
        worktrees=WorktreeManager(settings.worktree_base),
        on_progress=on_progress,
    )
    try:
        state = asyncio.run(orchestrator.run())
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    display.show_summary(state)
    if orchestrator.persist_failures:
        click.echo(f"Warning: run state could not be saved {orchestrator.persist_failures} time(s).", err=True)

    if channel:
        try:
            slack_mod.send_message(
                settings.slack_bot_token,
                channel,
                f"Swarm run finished: {project}",
                slack_mod.format_run_summary(state, project),
            )
        except Exception as e:
            click.echo(f"Slack summary failed: {e}", err=True)

    if state.counts()["failed"]:
        sys.exit(1)


# ── Status & Maintenance ──────────────────────────────────────────────────────


@main.command("status")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def status_command(json_output):
    """Show the state of the last run."""
    settings = get_settings()
    state = load_state(settings.repo_path)
    if not state:
        click.echo("No swarm state found. Run `swarm-code run` first.")
        return

    if json_output:
        click.echo(json.dumps(state.to_dict(), indent=2))
        return
    display.show_summary(state)


@main.command("cleanup")
def cleanup_command():
    """Remove all swarm worktrees and branches left by crashed runs."""
    settings = get_settings()
    manager = WorktreeManager(settings.worktree_base)
    try:
        removed = asyncio.run(manager.cleanup_all_worktrees(settings.repo_path))
    except GitError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not removed:
        click.echo("No swarm worktrees to clean up.")
        return
    for wt in removed:
        click.echo(f"  Removed: {wt.branch} at {wt.path}")


@main.command("agents")
def agents_command():
    """List agent types and whether they are installed."""
    config = load_config(get_settings().repo_path)
    for agent_type in AGENT_TYPES:
        if agent_type == "custom":
            command = config.agent_command if config else None
            if not command:
                click.echo("  custom: not configured")
                continue
            agent = create_agent(agent_type, command)
        else:
            agent = create_agent(agent_type)
        available = asyncio.run(agent.is_available())
        mark = click.style("available", fg="green") if available else click.style("missing", fg="red")
        click.echo(f"  {agent_type}: {mark}")


# ── Dashboard Command ────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8787, type=int, help="Port to listen on")
@click.option("--open/--no-open", default=True, help="Open browser automatically")
def ui_command(host, port, open):
    """Launch the run status dashboard."""
    import webbrowser

    from swarm_code.web.app import run_server

    url = f"http://{host}:{port}"
    click.echo(f"Starting dashboard at {url}")
    if open:
        webbrowser.open(url)
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from swarm_code.mcp.server import mcp

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
