"""Read-only views of a run state for the dashboard and MCP tools."""

from swarm_code.core.scheduler import ConfigurationError, assign_waves
from swarm_code.models import RunState


def run_summary(state: RunState) -> dict:
    counts = state.counts()
    total = len(state.work_packages)
    progress = (counts["done"] / total * 100) if total > 0 else 0
    return {
        "target_branch": state.config.branch,
        "agent": state.config.model,
        "max_concurrent": state.config.max_concurrent,
        "counts": counts,
        "total": total,
        "progress_pct": round(progress, 1),
        "started_at": state.started_at.isoformat() if state.started_at else None,
        "completed_at": state.completed_at.isoformat() if state.completed_at else None,
        "duration": state.duration,
        "failed": [
            {"id": wp.id, "name": wp.name, "error": wp.error}
            for wp in state.work_packages
            if wp.status == "failed"
        ],
    }


def wave_listing(state: RunState) -> list[dict]:
    """Work packages grouped by recomputed wave number."""
    try:
        waves = assign_waves(state.work_packages)
    except ConfigurationError:
        return []
    result: dict[int, list[dict]] = {}
    for wp in state.work_packages:
        result.setdefault(waves[wp.id], []).append(
            {"id": wp.id, "name": wp.name, "status": wp.status, "dependencies": wp.dependencies}
        )
    return [{"wave": wave, "work_packages": result[wave]} for wave in sorted(result)]
