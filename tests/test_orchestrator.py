"""Tests for wave execution, retries and state tracking."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from swarm_code.core.agents import AgentResult, CodingAgent, CustomAgent
from swarm_code.core.orchestrator import MAX_RETRIES, Orchestrator, build_agent_prompt, orchestrate
from swarm_code.core.scheduler import CyclicDependencyError
from swarm_code.core.tracker import StateTracker, load_state
from swarm_code.core.worktrees import MergeResult, WorktreeManager
from swarm_code.integrations.git import GitError, GitResult, WorktreeInfo
from swarm_code.models import SwarmConfig, WorkPackage

from conftest import git


class FakeAgent(CodingAgent):
    """Records prompts; fails for ids listed in `fail`."""

    name = "fake"

    def __init__(self, fail=(), delay=0.0):
        self.fail = set(fail)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.peak = 0

    async def spawn(self, workdir, prompt, timeout=None, env=None):
        wp_id = Path(workdir).name
        self.calls.append(wp_id)
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(self.delay)
        self.active -= 1
        ok = wp_id not in self.fail
        return AgentResult(success=ok, exit_code=0 if ok else 1, output="", duration=self.delay)

    async def is_available(self):
        return True


class FakeWorktrees:
    """Stands in for WorktreeManager without touching git."""

    def __init__(self, merge_results=None, create_errors=None):
        self.merge_results = merge_results or {}
        self.create_errors = create_errors or {}
        self.created = []
        self.merged = []
        self.removed = []

    async def create_worktree(self, repo_dir, project, wp_id, name, base=None):
        self.created.append(wp_id)
        errors = self.create_errors.get(wp_id)
        if errors:
            raise errors.pop(0)
        return WorktreeInfo(path=f"/tmp/fake/{project}/{wp_id}", branch=f"swarm/{wp_id}/x", head="abc")

    async def merge_worktree(self, repo_dir, wp_id, name, target_branch="main"):
        self.merged.append((wp_id, target_branch))
        results = self.merge_results.get(wp_id)
        if results:
            return results.pop(0)
        return MergeResult(success=True)

    async def remove_worktree(self, repo_dir, project, wp_id, name):
        self.removed.append(wp_id)


def wp(wp_id, deps=None):
    return WorkPackage(
        id=wp_id,
        name=f"Package {wp_id}",
        description=f"Implement {wp_id}",
        branch=f"swarm/{wp_id}/x",
        dependencies=deps or [],
    )


def run(packages, tmp_path, agent=None, worktrees=None, max_concurrent=4, events=None):
    config = SwarmConfig(branch="main", model="custom", max_concurrent=max_concurrent)
    orchestrator = Orchestrator(
        config,
        packages,
        tmp_path,
        agent=agent or FakeAgent(),
        worktrees=worktrees or FakeWorktrees(),
        on_progress=events.append if events is not None else None,
        project="demo",
    )
    state = asyncio.run(orchestrator.run())
    return orchestrator, state


def test_build_agent_prompt():
    prompt = build_agent_prompt(wp("wp-1"), "/tmp/wt")
    assert prompt == (
        "Implement wp-1\n\n"
        "Working dir: /tmp/wt. After done: git add -A && git commit -m 'WP-wp-1: Package wp-1'"
    )


class TestHappyPath:
    def test_all_done_in_wave_order(self, tmp_path):
        agent = FakeAgent()
        packages = [wp("wp-3", ["wp-1", "wp-2"]), wp("wp-1"), wp("wp-2")]
        _, state = run(packages, tmp_path, agent=agent)

        assert [p.status for p in state.work_packages] == ["done", "done", "done"]
        assert sorted(agent.calls[:2]) == ["wp-1", "wp-2"]
        assert agent.calls[2] == "wp-3"
        assert all(p.attempts == 1 and p.agent == "fake" for p in state.work_packages)
        assert state.started_at is not None
        assert state.completed_at is not None
        assert state.completed_at >= state.started_at

    def test_events(self, tmp_path):
        events = []
        run([wp("wp-1"), wp("wp-2", ["wp-1"])], tmp_path, events=events)
        types = [e.type for e in events]
        assert types == [
            "wave-start", "wp-start", "wp-done", "wave-done",
            "wave-start", "wp-start", "wp-done", "wave-done",
            "all-done",
        ]
        assert events[0].message == "Wave 1: 1 work packages"
        assert events[-1].message == "All waves complete"

    def test_state_persisted(self, tmp_path):
        _, state = run([wp("wp-1")], tmp_path)
        saved = load_state(tmp_path)
        assert saved is not None
        assert saved.get("wp-1").status == "done"
        assert saved.completed_at == state.completed_at

    def test_caller_packages_untouched(self, tmp_path):
        packages = [wp("wp-1")]
        run(packages, tmp_path)
        assert packages[0].status == "pending"
        assert packages[0].attempts == 0

    def test_merges_into_target_branch(self, tmp_path):
        worktrees = FakeWorktrees()
        run([wp("wp-1")], tmp_path, worktrees=worktrees)
        assert worktrees.merged == [("wp-1", "main")]

    def test_orchestrate_helper(self, tmp_path):
        config = SwarmConfig(model="custom", max_concurrent=1)
        state = asyncio.run(orchestrate(
            config, [wp("wp-1")], tmp_path,
            agent=FakeAgent(), worktrees=FakeWorktrees(), project="demo",
        ))
        assert state.get("wp-1").status == "done"


class TestFailures:
    def test_agent_failure_retries_then_fails(self, tmp_path):
        agent = FakeAgent(fail={"wp-1"})
        worktrees = FakeWorktrees()
        _, state = run([wp("wp-1")], tmp_path, agent=agent, worktrees=worktrees)

        failed = state.get("wp-1")
        assert failed.status == "failed"
        assert failed.attempts == MAX_RETRIES + 1
        assert failed.error == "Agent exited 1"
        assert agent.calls == ["wp-1"] * 3
        assert worktrees.created == ["wp-1"] * 3
        assert worktrees.removed == ["wp-1"] * 3
        assert worktrees.merged == []

    def test_failed_dependency_skips_dependents(self, tmp_path):
        agent = FakeAgent(fail={"wp-1"})
        events = []
        _, state = run(
            [wp("wp-1"), wp("wp-2", ["wp-1"]), wp("wp-3", ["wp-2"])],
            tmp_path, agent=agent, events=events,
        )
        for wp_id in ("wp-2", "wp-3"):
            skipped = state.get(wp_id)
            assert skipped.status == "failed"
            assert skipped.error == "Dependency failed"
            assert skipped.attempts == 0
        assert set(agent.calls) == {"wp-1"}
        assert "WP wp-2: dependency failed" in [e.message for e in events]

    def test_independent_packages_continue_after_failure(self, tmp_path):
        agent = FakeAgent(fail={"wp-1"})
        _, state = run([wp("wp-1"), wp("wp-2"), wp("wp-3", ["wp-2"])], tmp_path, agent=agent)
        assert state.get("wp-1").status == "failed"
        assert state.get("wp-2").status == "done"
        assert state.get("wp-3").status == "done"

    def test_merge_conflict_then_success(self, tmp_path):
        worktrees = FakeWorktrees(
            merge_results={"wp-1": [MergeResult(success=False, conflicts=["a.py", "b.py"])]}
        )
        events = []
        _, state = run([wp("wp-1")], tmp_path, worktrees=worktrees, events=events)

        done = state.get("wp-1")
        assert done.status == "done"
        assert done.attempts == 2
        assert done.error is None
        assert worktrees.removed == ["wp-1", "wp-1"]
        starts = [e.message for e in events if e.type == "wp-start"]
        assert starts == ["WP wp-1: starting (attempt 1)", "WP wp-1: starting (attempt 2)"]

    def test_persistent_conflict_reports_paths(self, tmp_path):
        conflict = MergeResult(success=False, conflicts=["a.py", "b.py"])
        worktrees = FakeWorktrees(merge_results={"wp-1": [conflict] * 3})
        _, state = run([wp("wp-1")], tmp_path, worktrees=worktrees)
        assert state.get("wp-1").error == "Merge conflicts: a.py, b.py"

    def test_non_conflict_merge_failure_reports_git_output(self, tmp_path):
        refusal = MergeResult(
            success=False,
            reason="error: The following untracked working tree files would be overwritten by merge",
        )
        worktrees = FakeWorktrees(merge_results={"wp-1": [refusal] * 3})
        _, state = run([wp("wp-1")], tmp_path, worktrees=worktrees)
        failed = state.get("wp-1")
        assert failed.status == "failed"
        assert failed.error.startswith("Merge failed: error: The following untracked")

    def test_conflict_retry_with_worktree_manager(self, tmp_path, worktree_base):
        ok = GitResult(stdout="", stderr="", exit_code=0)
        conflict = GitResult(stdout="CONFLICT (content): Merge conflict in a.ts", stderr="", exit_code=1)
        merge_abort = AsyncMock(return_value=ok)
        git_doubles = {
            "branch_exists": AsyncMock(return_value=False),
            "worktree_add": AsyncMock(return_value=""),
            "rev_parse": AsyncMock(return_value="abc123"),
            "checkout": AsyncMock(return_value=""),
            "merge_no_edit": AsyncMock(side_effect=[conflict, ok]),
            "conflicted_files": AsyncMock(return_value=["a.ts"]),
            "merge_in_progress": AsyncMock(return_value=True),
            "merge_abort": merge_abort,
            "worktree_remove": AsyncMock(return_value=ok),
            "delete_branch": AsyncMock(return_value=ok),
        }
        patches = [patch(f"swarm_code.integrations.git.{name}", new=double)
                   for name, double in git_doubles.items()]
        for p in patches:
            p.start()
        try:
            _, state = run([wp("wp-1")], tmp_path, worktrees=WorktreeManager(worktree_base))
        finally:
            for p in patches:
                p.stop()

        done = state.get("wp-1")
        assert done.status == "done"
        assert done.attempts == 2
        assert merge_abort.await_count == 1
        assert git_doubles["worktree_remove"].await_count == 2

    def test_worktree_error_counts_as_attempt(self, tmp_path):
        worktrees = FakeWorktrees(create_errors={"wp-1": [GitError("disk full")]})
        agent = FakeAgent()
        _, state = run([wp("wp-1")], tmp_path, agent=agent, worktrees=worktrees)
        assert state.get("wp-1").status == "done"
        assert state.get("wp-1").attempts == 2
        assert agent.calls == ["wp-1"]
        assert worktrees.removed == ["wp-1", "wp-1"]

    def test_cycle_rejected_before_any_work(self, tmp_path):
        agent = FakeAgent()
        with pytest.raises(CyclicDependencyError):
            run([wp("a", ["b"]), wp("b", ["a"])], tmp_path, agent=agent)
        assert agent.calls == []
        assert load_state(tmp_path) is None

    def test_failing_progress_handler_is_ignored(self, tmp_path):
        def handler(event):
            raise RuntimeError("display broke")

        config = SwarmConfig(model="custom")
        orchestrator = Orchestrator(
            config, [wp("wp-1")], tmp_path,
            agent=FakeAgent(), worktrees=FakeWorktrees(), on_progress=handler, project="demo",
        )
        state = asyncio.run(orchestrator.run())
        assert state.get("wp-1").status == "done"

    def test_persist_failure_does_not_stop_run(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config = SwarmConfig(model="custom")
        orchestrator = Orchestrator(
            config, [wp("wp-1")], tmp_path,
            agent=FakeAgent(), worktrees=FakeWorktrees(),
            tracker=StateTracker(blocker), project="demo",
        )
        state = asyncio.run(orchestrator.run())
        assert state.get("wp-1").status == "done"
        assert orchestrator.persist_failures > 0


class TestConcurrency:
    def test_max_concurrent_bound(self, tmp_path):
        agent = FakeAgent(delay=0.02)
        orchestrator, state = run(
            [wp(f"wp-{i}") for i in range(6)], tmp_path, agent=agent, max_concurrent=2
        )
        assert state.counts()["done"] == 6
        assert agent.peak == 2
        assert orchestrator.limiter.peak == 2

    def test_sequential_when_limit_is_one(self, tmp_path):
        agent = FakeAgent(delay=0.01)
        run([wp(f"wp-{i}") for i in range(3)], tmp_path, agent=agent, max_concurrent=1)
        assert agent.peak == 1


class TestEndToEnd:
    def test_custom_agent_commits_are_merged(self, git_repo, worktree_base):
        agent = CustomAgent(
            'touch "$(basename {workdir}).txt" && git add -A && git commit -q -m {prompt}'
        )
        config = SwarmConfig(branch="main", model="custom", max_concurrent=2)
        packages = [wp("wp-1"), wp("wp-2"), wp("wp-3", ["wp-1"])]
        orchestrator = Orchestrator(
            config, packages, git_repo,
            agent=agent, worktrees=WorktreeManager(worktree_base), project="demo",
        )
        state = asyncio.run(orchestrator.run())

        assert [p.status for p in state.work_packages] == ["done", "done", "done"], [
            p.error for p in state.work_packages
        ]
        for wp_id in ("wp-1", "wp-2", "wp-3"):
            assert (git_repo / f"{wp_id}.txt").exists()
        assert git(git_repo, "branch", "--list", "swarm/*") == ""
        assert not any((worktree_base / "demo").iterdir())
        assert load_state(git_repo).get("wp-3").status == "done"
