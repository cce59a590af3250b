"""Data models for swarm runs."""

from dataclasses import dataclass, field
from datetime import datetime

WP_STATUSES = ("pending", "running", "done", "failed")
TERMINAL_STATUSES = ("done", "failed")


@dataclass
class WorkPackage:
    id: str
    name: str
    description: str
    branch: str
    dependencies: list[str] = field(default_factory=list)
    status: str = "pending"
    error: str | None = None
    agent: str | None = None
    attempts: int = 0

    @property
    def settled(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "branch": self.branch,
            "dependencies": list(self.dependencies),
            "status": self.status,
            "error": self.error,
            "agent": self.agent,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkPackage":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data["description"],
            branch=data["branch"],
            dependencies=list(data.get("dependencies") or []),
            status=data.get("status") or "pending",
            error=data.get("error"),
            agent=data.get("agent"),
            attempts=int(data.get("attempts") or 0),
        )


@dataclass
class SwarmConfig:
    repo: str = ""
    branch: str = "main"
    model: str = "codex"
    max_concurrent: int = 4
    agent_command: str | None = None
    timeout: float = 30 * 60
    work_packages: list[WorkPackage] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "repo": self.repo,
            "branch": self.branch,
            "model": self.model,
            "maxConcurrent": self.max_concurrent,
            "agentCommand": self.agent_command,
            "timeout": self.timeout,
            "workPackages": [wp.to_dict() for wp in self.work_packages],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SwarmConfig":
        return cls(
            repo=data.get("repo", ""),
            branch=data.get("branch") or "main",
            model=data.get("model") or "codex",
            max_concurrent=int(data.get("maxConcurrent", 4)),
            agent_command=data.get("agentCommand"),
            timeout=float(data.get("timeout", 30 * 60)),
            work_packages=[WorkPackage.from_dict(wp) for wp in data.get("workPackages") or []],
        )


@dataclass
class RunState:
    config: SwarmConfig
    work_packages: list[WorkPackage] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def counts(self) -> dict[str, int]:
        counts = {s: 0 for s in WP_STATUSES}
        for wp in self.work_packages:
            counts[wp.status] = counts.get(wp.status, 0) + 1
        return counts

    def get(self, wp_id: str) -> WorkPackage | None:
        for wp in self.work_packages:
            if wp.id == wp_id:
                return wp
        return None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "config": self.config.to_dict(),
            "workPackages": [wp.to_dict() for wp in self.work_packages],
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RunState":
        return cls(
            config=SwarmConfig.from_dict(data.get("config") or {}),
            work_packages=[WorkPackage.from_dict(wp) for wp in data.get("workPackages") or []],
            started_at=_parse_dt(data.get("startedAt")),
            completed_at=_parse_dt(data.get("completedAt")),
        )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
