import os
import subprocess
import tempfile
from pathlib import Path

import pytest

GIT_IDENTITY = {
    "GIT_AUTHOR_NAME": "Test",
    "GIT_AUTHOR_EMAIL": "test@test.com",
    "GIT_COMMITTER_NAME": "Test",
    "GIT_COMMITTER_EMAIL": "test@test.com",
}


@pytest.fixture(autouse=True)
def git_identity(monkeypatch):
    """Commits made by git subprocesses (agents, merges) need an identity."""
    for k, v in GIT_IDENTITY.items():
        monkeypatch.setenv(k, v)


def git(cwd, *args) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        check=True,
        text=True,
        env={**os.environ, **GIT_IDENTITY},
    )
    return result.stdout.strip()


def commit_file(cwd, name: str, content: str, message: str = "change") -> None:
    (Path(cwd) / name).write_text(content)
    git(cwd, "add", "-A")
    git(cwd, "commit", "-m", message)


@pytest.fixture
def git_repo():
    """Create a temporary git repo on `main` with an initial commit."""
    with tempfile.TemporaryDirectory() as tmp:
        repo = Path(tmp) / "repo"
        repo.mkdir()
        git(repo, "init")
        git(repo, "checkout", "-b", "main")
        commit_file(repo, "README.md", "# Test\n", "init")
        yield repo


@pytest.fixture
def worktree_base():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)
