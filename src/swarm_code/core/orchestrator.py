"""Wave-by-wave execution of work packages with bounded retries."""

import asyncio
import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from swarm_code.core.agents import CodingAgent, create_agent
from swarm_code.core.limiter import ConcurrencyLimiter
from swarm_code.core.scheduler import assign_waves, group_by_wave, validate_packages
from swarm_code.core.tracker import StateTracker
from swarm_code.core.worktrees import WorktreeManager
from swarm_code.models import RunState, SwarmConfig, WorkPackage

logger = logging.getLogger(__name__)

MAX_RETRIES = 2

EVENT_TYPES = ("wave-start", "wp-start", "wp-done", "wp-failed", "wave-done", "all-done")


@dataclass
class ProgressEvent:
    type: str
    message: str
    wave: int | None = None
    wp: WorkPackage | None = None


ProgressCallback = Callable[[ProgressEvent], None]


def build_agent_prompt(wp: WorkPackage, worktree_path: str | Path) -> str:
    """The agent's prompt: the task text, where to work, and how to finish."""
    return (
        f"{wp.description}\n\n"
        f"Working dir: {worktree_path}. "
        f"After done: git add -A && git commit -m 'WP-{wp.id}: {wp.name}'"
    )


class Orchestrator:
    """Runs a plan of work packages against one repository.

    The orchestrator owns the run state; every status change happens here and
    is followed by a full snapshot through the tracker.
    """

    def __init__(
        self,
        config: SwarmConfig,
        packages: list[WorkPackage],
        repo_path: str | Path,
        agent: CodingAgent | None = None,
        worktrees: WorktreeManager | None = None,
        tracker: StateTracker | None = None,
        on_progress: ProgressCallback | None = None,
        project: str | None = None,
    ):
        self.config = config
        self.repo_path = Path(repo_path)
        self.project = project or self.repo_path.resolve().name
        self.agent = agent or create_agent(config.model, config.agent_command)
        self.worktrees = worktrees or WorktreeManager()
        self.tracker = tracker or StateTracker(self.repo_path)
        self.on_progress = on_progress
        self.limiter = ConcurrencyLimiter(config.max_concurrent)
        self.persist_failures = 0

        # Callers keep their own copies untouched
        self.packages = [copy.deepcopy(wp) for wp in packages]
        self._by_id = {wp.id: wp for wp in self.packages}
        self.state: RunState | None = None

    async def run(self) -> RunState:
        validate_packages(self.packages)
        waves = assign_waves(self.packages)
        groups = group_by_wave(self.packages, waves)

        self.state = RunState(
            config=self.config,
            work_packages=self.packages,
            started_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Starting run: %d work packages in %d waves (max %d concurrent)",
            len(self.packages), len(groups), self.config.max_concurrent,
        )
        self._persist()

        for wave, wps in enumerate(groups, start=1):
            self._emit("wave-start", f"Wave {wave}: {len(wps)} work packages", wave=wave)
            results = await asyncio.gather(
                *(self._run_package(wave, wp) for wp in wps),
                return_exceptions=True,
            )
            for wp, result in zip(wps, results):
                if isinstance(result, BaseException):
                    logger.error("WP %s crashed: %r", wp.id, result)
                    wp.error = wp.error or f"Internal error: {result}"
                if not wp.settled:
                    wp.status = "failed"
            self._emit("wave-done", f"Wave {wave} complete", wave=wave)
            self._persist()

        self.state.completed_at = datetime.now(timezone.utc)
        self._emit("all-done", "All waves complete")
        self._persist()
        return self.state

    async def _run_package(self, wave: int, wp: WorkPackage) -> None:
        failed_deps = [d for d in wp.dependencies if self._by_id[d].status == "failed"]
        if failed_deps:
            wp.status = "failed"
            wp.error = "Dependency failed"
            logger.info("WP %s skipped: dependency %s failed", wp.id, ", ".join(failed_deps))
            self._emit("wp-failed", f"WP {wp.id}: dependency failed", wave=wave, wp=wp)
            self._persist()
            return

        success = False
        attempts = 0
        while attempts <= MAX_RETRIES and not success:
            attempts += 1
            success = await self._attempt(wave, wp, attempts)

        if success:
            wp.status = "done"
            wp.error = None
            self._emit("wp-done", f"WP {wp.id}: done", wave=wave, wp=wp)
        else:
            wp.status = "failed"
            self._emit("wp-failed", f"WP {wp.id}: failed after {attempts} attempts", wave=wave, wp=wp)
        self._persist()

    async def _attempt(self, wave: int, wp: WorkPackage, attempt: int) -> bool:
        """One slot-bounded attempt: worktree, agent, merge, cleanup."""
        async with self.limiter.slot():
            wp.status = "running"
            wp.attempts = attempt
            wp.agent = self.agent.name
            self._emit("wp-start", f"WP {wp.id}: starting (attempt {attempt})", wave=wave, wp=wp)

            try:
                info = await self.worktrees.create_worktree(
                    self.repo_path, self.project, wp.id, wp.name, base=self.config.branch
                )
                prompt = build_agent_prompt(wp, info.path)
                result = await self.agent.spawn(info.path, prompt, timeout=self.config.timeout)

                if not result.success:
                    wp.error = f"Agent exited {result.exit_code}"
                    logger.warning("WP %s agent failed: %s", wp.id, wp.error)
                    return False

                merge = await self.worktrees.merge_worktree(
                    self.repo_path, wp.id, wp.name, self.config.branch
                )
                if merge.success:
                    return True
                if merge.conflicts:
                    wp.error = f"Merge conflicts: {', '.join(merge.conflicts)}"
                else:
                    wp.error = f"Merge failed: {merge.reason}"
                logger.warning("WP %s merge failed: %s", wp.id, wp.error)
                return False
            except Exception as e:
                wp.error = str(e) or type(e).__name__
                logger.warning("WP %s attempt %d failed: %s", wp.id, attempt, wp.error)
                return False
            finally:
                try:
                    await self.worktrees.remove_worktree(self.repo_path, self.project, wp.id, wp.name)
                except Exception:
                    logger.exception("Worktree cleanup failed for %s", wp.id)

    def _persist(self) -> None:
        try:
            self.tracker.save(self.state)
        except Exception:
            self.persist_failures += 1
            logger.exception("Failed to persist run state to %s", self.tracker.path)

    def _emit(
        self,
        event_type: str,
        message: str,
        wave: int | None = None,
        wp: WorkPackage | None = None,
    ) -> None:
        if not self.on_progress:
            return
        try:
            self.on_progress(ProgressEvent(type=event_type, message=message, wave=wave, wp=wp))
        except Exception:
            logger.exception("Progress handler failed on %s event", event_type)


async def orchestrate(
    config: SwarmConfig,
    packages: list[WorkPackage],
    repo_path: str | Path,
    on_progress: ProgressCallback | None = None,
    **kwargs,
) -> RunState:
    """Run a plan to completion and return the final state."""
    orchestrator = Orchestrator(config, packages, repo_path, on_progress=on_progress, **kwargs)
    return await orchestrator.run()
