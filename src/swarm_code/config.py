"""Configuration: process settings from the environment, run config from .swarmrc.json."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from swarm_code.models import SwarmConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = ".swarmrc.json"


@dataclass
class Settings:
    repo_path: Path = field(default_factory=lambda: Path.cwd())
    worktree_base: Path | None = None
    agent_timeout: float | None = None
    slack_bot_token: str | None = None
    slack_channel: str | None = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls()

        if repo := os.environ.get("SWARM_REPO_PATH"):
            settings.repo_path = Path(repo)

        if base := os.environ.get("SWARM_WORKTREE_BASE"):
            settings.worktree_base = Path(base)

        if timeout := os.environ.get("SWARM_AGENT_TIMEOUT"):
            settings.agent_timeout = float(timeout)

        settings.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        settings.slack_channel = os.environ.get("SWARM_SLACK_CHANNEL")

        if level := os.environ.get("SWARM_LOG_LEVEL"):
            settings.log_level = level.upper()

        return settings


def get_settings() -> Settings:
    return Settings.from_env()


def config_path(directory: str | Path | None = None) -> Path:
    return Path(directory or Path.cwd()) / CONFIG_FILE


def load_config(directory: str | Path | None = None) -> SwarmConfig | None:
    """Read .swarmrc.json. Returns None if it is missing or invalid."""
    path = config_path(directory)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Cannot read %s: %s", path, e)
        return None
    try:
        return SwarmConfig.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning("Invalid config in %s: %s", path, e)
        return None


def save_config(config: SwarmConfig, directory: str | Path | None = None) -> Path:
    path = config_path(directory)
    path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
    return path
