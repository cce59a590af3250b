"""MCP server exposing swarm run status and worktree maintenance."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from swarm_code.config import Settings, get_settings, load_config
from swarm_code.core.agents import AGENT_TYPES, create_agent
from swarm_code.core.plan import DECOMPOSE_PROMPT, parse_work_packages
from swarm_code.core.scheduler import ConfigurationError, assign_waves
from swarm_code.core.summary import run_summary, wave_listing
from swarm_code.core.tracker import load_state
from swarm_code.core.worktrees import BRANCH_PREFIX, WorktreeManager
from swarm_code.integrations.git import GitError


@dataclass
class AppContext:
    settings: Settings
    worktrees: WorktreeManager


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    settings = get_settings()
    yield AppContext(settings=settings, worktrees=WorktreeManager(settings.worktree_base))


mcp = FastMCP("swarm-code", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


# ── Run Status Tools ──────────────────────────────────────────────────────────


@mcp.tool()
def get_run_status(ctx: Context) -> dict:
    """Summary of the last swarm run: counts, progress, failed work packages."""
    state = load_state(_ctx(ctx).settings.repo_path)
    if not state:
        return {"error": "No swarm state found"}
    return run_summary(state)


@mcp.tool()
def get_work_package(ctx: Context, wp_id: str) -> dict:
    """Full record of one work package from the last run."""
    state = load_state(_ctx(ctx).settings.repo_path)
    if not state:
        return {"error": "No swarm state found"}
    wp = state.get(wp_id)
    if not wp:
        return {"error": f"Work package not found: {wp_id}"}
    return wp.to_dict()


@mcp.tool()
def get_waves(ctx: Context) -> list[dict]:
    """Work packages of the last run grouped by wave."""
    state = load_state(_ctx(ctx).settings.repo_path)
    if not state:
        return []
    return wave_listing(state)


@mcp.tool()
def validate_plan(plan_json: str) -> dict:
    """Validate a JSON work package plan and return its wave assignment."""
    try:
        packages = parse_work_packages(plan_json)
    except ConfigurationError as e:
        return {"valid": False, "error": str(e)}
    return {"valid": True, "waves": assign_waves(packages)}


# ── Worktree Tools ────────────────────────────────────────────────────────────


@mcp.tool()
async def list_worktrees(ctx: Context) -> list[dict]:
    """List swarm worktrees currently present in the repository."""
    app = _ctx(ctx)
    try:
        wts = await app.worktrees.list_worktrees(app.settings.repo_path)
    except GitError as e:
        return [{"error": str(e)}]
    return [
        {"path": wt.path, "branch": wt.branch, "head": wt.head}
        for wt in wts
        if wt.branch.startswith(BRANCH_PREFIX)
    ]


@mcp.tool()
async def cleanup_worktrees(ctx: Context) -> dict:
    """Remove every swarm worktree and branch left behind by crashed runs."""
    app = _ctx(ctx)
    try:
        removed = await app.worktrees.cleanup_all_worktrees(app.settings.repo_path)
    except GitError as e:
        return {"error": str(e)}
    return {"removed": [{"path": wt.path, "branch": wt.branch} for wt in removed]}


@mcp.tool()
async def check_agents(ctx: Context) -> dict:
    """Report which agent types are installed."""
    config = load_config(_ctx(ctx).settings.repo_path)
    result = {}
    for agent_type in AGENT_TYPES:
        command = config.agent_command if config else None
        if agent_type == "custom" and not command:
            result[agent_type] = False
            continue
        agent = create_agent(agent_type, command)
        result[agent_type] = await agent.is_available()
    return result


# ── Prompts ───────────────────────────────────────────────────────────────────


@mcp.prompt()
def decompose_task(goal: str) -> str:
    """Prompt an LLM to split a goal into a JSON work package plan."""
    return (
        f"{DECOMPOSE_PROMPT}\n"
        f"## Task\n{goal}\n\n"
        "Output JSON only. Then call validate_plan with the JSON to check it."
    )
