"""Idempotency guard: run an effect only when its marker is absent."""

import logging
import shlex
from dataclasses import dataclass
from typing import Any, Callable

from .errors import GuardCheckError, HostUnreachableError, KubestrapError
from .models import Host, StepStatus

logger = logging.getLogger("kubestrap.guard")


@dataclass(frozen=True)
class Marker:
    """A durable, host-local indicator that an effect already holds."""
    name: str
    check: Callable[[Any, Host], bool]

    def holds(self, executor, host: Host) -> bool:
        return bool(self.check(executor, host))


def path_exists(path: str) -> Marker:
    """Marker satisfied when a path exists on the host."""
    return Marker(f"exists:{path}", lambda executor, host: executor.file_exists(host, path))


def file_content(path: str, content: str) -> Marker:
    """Marker satisfied when a file exists with exactly the given content."""
    return Marker(f"content:{path}", lambda executor, host: executor.read_file(host, path) == content)


def command_succeeds(command: str) -> Marker:
    """Marker satisfied when a command exits zero on the host."""
    return Marker(f"command:{command}", lambda executor, host: executor.run(host, command).ok)


def files_identical(src: str, dst: str) -> Marker:
    return command_succeeds(f"cmp -s {shlex.quote(src)} {shlex.quote(dst)}")


def all_of(*markers: Marker) -> Marker:
    """Marker satisfied only when every given marker holds, checked in order."""
    return Marker(
        '+'.join(m.name for m in markers),
        lambda executor, host: all(m.holds(executor, host) for m in markers),
    )


class IdempotencyGuard:
    """Executes irreversible effects at most once per host.

    The guard never caches marker results: every call re-evaluates the
    marker on the host, so the host itself stays the source of truth
    across runs.
    """

    def __init__(self, executor):
        self.executor = executor

    def is_satisfied(self, host: Host, marker: Marker) -> bool:
        """Evaluate a marker on a host.

        Raises:
            GuardCheckError: If the marker cannot be evaluated
        """
        try:
            return marker.holds(self.executor, host)
        except (HostUnreachableError, KubestrapError, OSError) as e:
            raise GuardCheckError(host.name, marker.name, e) from e

    def ensure(self, host: Host, step: str, marker: Marker, effect: Callable[[], Any]) -> StepStatus:
        """Run effect unless marker already holds on host.

        Args:
            host: Target host
            step: Step name, for logging
            marker: Existence check for the effect
            effect: Callable performing the effect; exceptions propagate

        Returns:
            StepStatus: ALREADY_SATISFIED if skipped, APPLIED if the effect ran
        """
        if self.is_satisfied(host, marker):
            logger.debug("[%s] %s: already satisfied (%s)", host.name, step, marker.name)
            return StepStatus.ALREADY_SATISFIED

        logger.debug("[%s] %s: applying", host.name, step)
        effect()
        return StepStatus.APPLIED
