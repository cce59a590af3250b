"""Dependency validation and wave assignment for work packages."""

from swarm_code.models import WorkPackage

REQUIRED_FIELDS = ("id", "name", "description", "branch")


class ConfigurationError(ValueError):
    """A plan that cannot be executed: malformed packages or bad dependencies."""


class CyclicDependencyError(ConfigurationError):
    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cyclic dependency: {' -> '.join(cycle)}")


def validate_packages(packages: list[WorkPackage]) -> None:
    """Fail fast on missing fields, duplicate ids or unknown dependency ids."""
    seen: set[str] = set()
    for wp in packages:
        missing = [f for f in REQUIRED_FIELDS if not getattr(wp, f, None)]
        if missing:
            raise ConfigurationError(
                f"Work package {getattr(wp, 'id', None) or '?'} is missing required fields: {', '.join(missing)}"
            )
        if wp.id in seen:
            raise ConfigurationError(f"Duplicate work package id: {wp.id}")
        seen.add(wp.id)

    for wp in packages:
        unknown = [d for d in wp.dependencies if d not in seen]
        if unknown:
            raise ConfigurationError(
                f"Work package {wp.id} depends on unknown ids: {', '.join(unknown)}"
            )


def assign_waves(packages: list[WorkPackage]) -> dict[str, int]:
    """Map each package id to its wave: 1 without dependencies, else 1 + max(dependency waves)."""
    by_id = {wp.id: wp for wp in packages}
    waves: dict[str, int] = {}
    in_progress: list[str] = []

    def wave_of(wp_id: str) -> int:
        if wp_id in waves:
            return waves[wp_id]
        if wp_id in in_progress:
            start = in_progress.index(wp_id)
            raise CyclicDependencyError(in_progress[start:] + [wp_id])

        wp = by_id.get(wp_id)
        if wp is None:
            raise ConfigurationError(f"Unknown work package id: {wp_id}")
        if not wp.dependencies:
            waves[wp_id] = 1
            return 1

        in_progress.append(wp_id)
        wave = 1 + max(wave_of(dep) for dep in wp.dependencies)
        in_progress.pop()
        waves[wp_id] = wave
        return wave

    for wp in packages:
        wave_of(wp.id)
    return waves


def group_by_wave(
    packages: list[WorkPackage],
    waves: dict[str, int] | None = None,
) -> list[list[WorkPackage]]:
    """Packages grouped into waves in increasing order, preserving input order within a wave."""
    if waves is None:
        waves = assign_waves(packages)
    max_wave = max(waves.values(), default=0)
    return [
        [wp for wp in packages if waves[wp.id] == wave]
        for wave in range(1, max_wave + 1)
    ]
