"""Persisted run state: one JSON snapshot per repository."""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from swarm_code.models import RunState

logger = logging.getLogger(__name__)

STATE_DIR = ".swarm-code"
STATE_FILE = "state.json"


def state_path(repo_path: str | Path) -> Path:
    return Path(repo_path) / STATE_DIR / STATE_FILE


class StateTracker:
    """Writes and reads the run state file. One writer at a time."""

    def __init__(self, repo_path: str | Path):
        self.repo_path = Path(repo_path)
        self.path = state_path(repo_path)
        self._lock = threading.Lock()

    def save(self, state: RunState) -> None:
        """Overwrite the state file with a full snapshot."""
        text = json.dumps(state.to_dict(), indent=2) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise

    def load(self) -> RunState | None:
        """Read the last snapshot. Missing or corrupt state yields None."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return RunState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError, RecursionError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return None


def save_state(repo_path: str | Path, state: RunState) -> None:
    StateTracker(repo_path).save(state)


def load_state(repo_path: str | Path) -> RunState | None:
    return StateTracker(repo_path).load()
