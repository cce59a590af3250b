"""Web dashboard API for swarm run status."""

from pathlib import Path

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from swarm_code.config import get_settings
from swarm_code.core.summary import run_summary, wave_listing
from swarm_code.core.tracker import load_state
from swarm_code.core.worktrees import BRANCH_PREFIX, WorktreeManager
from swarm_code.integrations.git import GitError
from swarm_code.web.dashboard import get_dashboard_html

NO_STATE = {"error": "No swarm state found"}


def create_app(repo_path: str | Path | None = None) -> Starlette:
    repo = Path(repo_path) if repo_path else get_settings().repo_path

    # ── Handlers ──────────────────────────────────────────────────────────────

    async def index(request: Request):
        return HTMLResponse(get_dashboard_html())

    async def api_state(request: Request):
        state = load_state(repo)
        if not state:
            return JSONResponse(NO_STATE, status_code=404)
        data = state.to_dict()
        status_filter = request.query_params.get("status")
        if status_filter:
            data["workPackages"] = [wp for wp in data["workPackages"] if wp["status"] == status_filter]
        return JSONResponse(data)

    async def api_summary(request: Request):
        state = load_state(repo)
        if not state:
            return JSONResponse(NO_STATE, status_code=404)
        return JSONResponse(run_summary(state))

    async def api_waves(request: Request):
        state = load_state(repo)
        if not state:
            return JSONResponse(NO_STATE, status_code=404)
        return JSONResponse(wave_listing(state))

    async def api_worktrees(request: Request):
        try:
            wts = await WorktreeManager().list_worktrees(repo)
        except GitError:
            return JSONResponse([])
        return JSONResponse([
            {"path": wt.path, "branch": wt.branch, "head": wt.head}
            for wt in wts
            if wt.branch.startswith(BRANCH_PREFIX)
        ])

    routes = [
        Route("/", index),
        Route("/api/state", api_state),
        Route("/api/summary", api_summary),
        Route("/api/waves", api_waves),
        Route("/api/worktrees", api_worktrees),
    ]
    return Starlette(routes=routes)


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
