"""Loading and validating decomposer output into work packages."""

import json
import re
from pathlib import Path

from swarm_code.core.scheduler import REQUIRED_FIELDS, ConfigurationError, validate_packages
from swarm_code.models import WorkPackage

DECOMPOSE_PROMPT = """\
You are a senior engineering manager decomposing a task into parallelizable work packages for autonomous coding agents.

Break the task into the smallest set of independent work packages (WPs) that can be implemented in parallel where possible.

Rules:
- Output ONLY a valid JSON array. No markdown fences, no explanation, no comments.
- Each element must look like:
  {
    "id": "wp-<n>",
    "name": "<short name>",
    "description": "<detailed mini-PRD: what to change, acceptance criteria, file paths, edge cases>",
    "branch": "swarm/wp-<n>/<slug>",
    "dependencies": [],
    "status": "pending"
  }
- WPs with no dependencies form wave 1, WPs depending only on wave-1 items form wave 2, and so on.
- Prefer many small independent WPs over fewer sequential ones.
- Each description must be detailed enough for an agent with no other context.
- Keep the total number of WPs reasonable (typically 3-8).
- Dependencies must reference ids from the same array and must not form cycles.
"""

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


class PlanError(ConfigurationError):
    """Raised when decomposer output cannot be turned into work packages."""


def strip_fences(raw: str) -> str:
    """Remove a markdown code fence wrapped around JSON output."""
    cleaned = raw.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    return _FENCE_CLOSE.sub("", cleaned)


def parse_work_packages(raw: str | list) -> list[WorkPackage]:
    """Validate and normalize a decomposer's package list.

    Every package starts `pending`; missing dependencies default to empty.
    """
    if isinstance(raw, str):
        try:
            data = json.loads(strip_fences(raw))
        except json.JSONDecodeError as e:
            raise PlanError(f"Failed to parse plan as JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, list):
        raise PlanError("Plan is not a JSON array")

    packages = []
    for item in data:
        if not isinstance(item, dict):
            raise PlanError(f"Invalid work package: {item!r}")
        missing = [f for f in REQUIRED_FIELDS if not item.get(f)]
        if missing:
            raise PlanError(
                f"Invalid work package: missing {', '.join(missing)} in {json.dumps(item)}"
            )
        packages.append(
            WorkPackage(
                id=str(item["id"]),
                name=str(item["name"]),
                description=str(item["description"]),
                branch=str(item["branch"]),
                dependencies=[str(d) for d in item.get("dependencies") or []],
            )
        )

    validate_packages(packages)
    return packages


def load_plan(path: str | Path) -> list[WorkPackage]:
    """Read a plan file (JSON array, optionally fenced)."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise PlanError(f"Cannot read plan {path}: {e}") from e
    return parse_work_packages(text)
