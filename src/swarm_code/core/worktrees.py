"""Git worktree lifecycle for work packages: create, merge, remove, sweep."""

import asyncio
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from swarm_code.integrations import git
from swarm_code.integrations.git import GitError, WorktreeInfo

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "swarm/"


def default_base_dir() -> Path:
    if base := os.environ.get("SWARM_WORKTREE_BASE"):
        return Path(base)
    return Path(tempfile.gettempdir()) / "swarm-code"


def slugify(title: str) -> str:
    """Convert a title to a ref-safe slug."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60] or "wp"


@dataclass
class MergeResult:
    success: bool
    conflicts: list[str] = field(default_factory=list)
    # git's output when the merge failed
    reason: str = ""


class WorktreeManager:
    """Gives each work package its own worktree and branch.

    Merges go through the single checkout of the main repository, so they are
    serialized with one lock per manager.
    """

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir) if base_dir else default_base_dir()
        self._merge_lock = asyncio.Lock()

    def worktree_path(self, project: str, wp_id: str) -> Path:
        return self.base_dir / project / wp_id

    def branch_name(self, wp_id: str, name: str) -> str:
        return f"{BRANCH_PREFIX}{wp_id}/{slugify(name)}"

    async def create_worktree(
        self,
        repo_dir: str | Path,
        project: str,
        wp_id: str,
        name: str,
        base: str | None = None,
    ) -> WorktreeInfo:
        """Create a fresh branch and worktree for a work package, starting at `base` (default HEAD)."""
        wt_path = self.worktree_path(project, wp_id)
        branch = self.branch_name(wp_id, name)

        # Leftovers from a crashed run would make `worktree add` fail. Only
        # paths this repository registered as worktrees are ours to delete.
        if wt_path.exists():
            if not await self._is_worktree_of(repo_dir, wt_path):
                raise GitError(
                    f"Failed to create worktree for {wp_id}: {wt_path} exists and is not a worktree of {repo_dir}"
                )
            logger.warning("Removing stale worktree %s (%s)", wt_path, branch)
            await self._remove(repo_dir, wt_path, branch)
        elif await git.branch_exists(repo_dir, branch):
            logger.warning("Deleting stale branch %s", branch)
            await git.worktree_prune(repo_dir)
            await git.delete_branch(repo_dir, branch)

        wt_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Creating worktree %s on branch %s", wt_path, branch)
        try:
            await git.worktree_add(repo_dir, wt_path, branch, base)
        except GitError as e:
            raise GitError(f"Failed to create worktree for {wp_id}: {e}") from e

        head = await git.rev_parse(wt_path)
        return WorktreeInfo(path=str(wt_path), branch=branch, head=head)

    async def list_worktrees(self, repo_dir: str | Path) -> list[WorktreeInfo]:
        return await git.worktree_list(repo_dir)

    async def merge_worktree(
        self,
        repo_dir: str | Path,
        wp_id: str,
        name: str,
        target_branch: str = "main",
    ) -> MergeResult:
        """Merge a work package branch into the target branch.

        On conflict the merge is aborted, leaving the target branch at its
        pre-merge commit, and the conflicted paths are returned. Any other
        failure comes back with git's output as `reason`.
        """
        branch = self.branch_name(wp_id, name)
        async with self._merge_lock:
            logger.info("Merging %s into %s", branch, target_branch)
            try:
                await git.checkout(repo_dir, target_branch)
            except GitError as e:
                raise GitError(f"Failed to checkout {target_branch}: {e}") from e

            result = await git.merge_no_edit(repo_dir, branch)
            if result.ok:
                return MergeResult(success=True)

            reason = result.stderr.strip() or result.stdout.strip()
            conflicts = await git.conflicted_files(repo_dir)
            # Refusals such as untracked files in the way never start a merge
            if conflicts or await git.merge_in_progress(repo_dir):
                abort = await git.merge_abort(repo_dir)
                if not abort.ok:
                    logger.error("git merge --abort failed in %s: %s", repo_dir, abort.stderr.strip())
            if not conflicts:
                logger.warning("Merge of %s failed without conflicts: %s", branch, reason)
            return MergeResult(success=False, conflicts=conflicts, reason=reason)

    async def remove_worktree(
        self,
        repo_dir: str | Path,
        project: str,
        wp_id: str,
        name: str,
    ) -> None:
        """Force-remove a work package's worktree and branch."""
        wt_path = self.worktree_path(project, wp_id)
        branch = self.branch_name(wp_id, name)
        logger.info("Removing worktree %s and branch %s", wt_path, branch)
        await self._remove(repo_dir, wt_path, branch)

    async def cleanup_all_worktrees(self, repo_dir: str | Path) -> list[WorktreeInfo]:
        """Remove every swarm worktree and branch, then prune worktree metadata."""
        removed = []
        for wt in await self.list_worktrees(repo_dir):
            if not wt.branch.startswith(BRANCH_PREFIX):
                continue
            logger.info("Cleaning up %s (%s)", wt.path, wt.branch)
            await self._remove(repo_dir, Path(wt.path), wt.branch)
            removed.append(wt)
        await git.worktree_prune(repo_dir)
        return removed

    async def _remove(self, repo_dir: str | Path, wt_path: Path, branch: str) -> None:
        result = await git.worktree_remove(repo_dir, wt_path)
        if not result.ok:
            logger.debug("worktree remove %s: %s", wt_path, result.stderr.strip())
            if wt_path.exists() and await self._is_worktree_of(repo_dir, wt_path):
                shutil.rmtree(wt_path, ignore_errors=True)
            await git.worktree_prune(repo_dir)

        result = await git.delete_branch(repo_dir, branch)
        if not result.ok:
            logger.debug("branch -D %s: %s", branch, result.stderr.strip())

    async def _is_worktree_of(self, repo_dir: str | Path, wt_path: Path) -> bool:
        """Whether `repo_dir` lists `wt_path` as one of its worktrees."""
        try:
            wts = await git.worktree_list(repo_dir)
        except GitError:
            return False
        target = wt_path.resolve()
        return any(Path(wt.path).resolve() == target for wt in wts)
