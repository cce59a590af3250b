"""Async git subprocess wrappers for worktree, branch and merge operations."""

import asyncio
from dataclasses import dataclass
from pathlib import Path

# Generous read limit for large porcelain/diff output
STREAM_LIMIT = 10 * 1024 * 1024


class GitError(Exception):
    """Raised when a git command fails."""


@dataclass
class GitResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class WorktreeInfo:
    path: str
    branch: str
    head: str
    is_bare: bool = False


async def run_git(args: list[str], cwd: str | Path | None = None) -> GitResult:
    """Run a git command and return its output and exit code. Never raises on exit status."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )
    except OSError as e:
        return GitResult(stdout="", stderr=str(e), exit_code=127)
    stdout, stderr = await proc.communicate()
    return GitResult(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        exit_code=proc.returncode if proc.returncode is not None else 1,
    )


async def check_git(args: list[str], cwd: str | Path | None = None) -> str:
    """Run a git command and return stripped stdout. Raises GitError on failure."""
    result = await run_git(args, cwd=cwd)
    if not result.ok:
        raise GitError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
    return result.stdout.strip()


async def worktree_add(
    repo_path: str | Path,
    worktree_path: str | Path,
    branch: str,
    base: str | None = None,
) -> str:
    """Create a new worktree on a new branch."""
    args = ["worktree", "add", "-b", branch, str(worktree_path)]
    if base:
        args.append(base)
    return await check_git(args, cwd=repo_path)


def parse_worktree_list(output: str) -> list[WorktreeInfo]:
    """Parse `git worktree list --porcelain` output."""
    worktrees = []
    current: dict = {}

    for line in output.split("\n"):
        if not line:
            if current:
                worktrees.append(_to_worktree_info(current))
                current = {}
            continue

        if line.startswith("worktree "):
            current["worktree"] = line[len("worktree "):]
        elif line.startswith("HEAD "):
            current["HEAD"] = line[len("HEAD "):]
        elif line.startswith("branch "):
            current["branch"] = line[len("branch "):]
        elif line == "bare":
            current["bare"] = True

    if current:
        worktrees.append(_to_worktree_info(current))

    return worktrees


def _to_worktree_info(entry: dict) -> WorktreeInfo:
    return WorktreeInfo(
        path=entry.get("worktree", ""),
        branch=entry.get("branch", "").replace("refs/heads/", ""),
        head=entry.get("HEAD", ""),
        is_bare=entry.get("bare", False),
    )


async def worktree_list(repo_path: str | Path) -> list[WorktreeInfo]:
    """List all worktrees of a repository."""
    result = await run_git(["worktree", "list", "--porcelain"], cwd=repo_path)
    if not result.ok:
        raise GitError(f"Failed to list worktrees: {result.stderr.strip()}")
    return parse_worktree_list(result.stdout)


async def worktree_remove(repo_path: str | Path, worktree_path: str | Path) -> GitResult:
    """Force-remove a worktree."""
    return await run_git(["worktree", "remove", "--force", str(worktree_path)], cwd=repo_path)


async def worktree_prune(repo_path: str | Path) -> GitResult:
    return await run_git(["worktree", "prune"], cwd=repo_path)


async def branch_exists(repo_path: str | Path, branch: str) -> bool:
    """Check if a branch exists."""
    result = await run_git(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=repo_path)
    return result.ok


async def delete_branch(repo_path: str | Path, branch: str) -> GitResult:
    """Force-delete a branch."""
    return await run_git(["branch", "-D", branch], cwd=repo_path)


async def checkout(repo_path: str | Path, branch: str) -> str:
    return await check_git(["checkout", branch], cwd=repo_path)


async def merge_no_edit(repo_path: str | Path, branch: str) -> GitResult:
    return await run_git(["merge", "--no-edit", branch], cwd=repo_path)


async def merge_abort(repo_path: str | Path) -> GitResult:
    return await run_git(["merge", "--abort"], cwd=repo_path)


async def conflicted_files(repo_path: str | Path) -> list[str]:
    """List paths with unmerged entries in the index."""
    result = await run_git(["diff", "--name-only", "--diff-filter=U"], cwd=repo_path)
    return [line for line in result.stdout.strip().split("\n") if line]


async def rev_parse(repo_path: str | Path, ref: str = "HEAD") -> str:
    return await check_git(["rev-parse", ref], cwd=repo_path)


async def merge_in_progress(repo_path: str | Path) -> bool:
    """True while MERGE_HEAD exists, i.e. a merge stopped and can be aborted."""
    result = await run_git(["rev-parse", "-q", "--verify", "MERGE_HEAD"], cwd=repo_path)
    return result.ok
