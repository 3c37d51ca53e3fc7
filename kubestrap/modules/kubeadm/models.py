"""Data models for kubeadm cluster bootstrap."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import StepFailedError


class HostRole(str, Enum):
    """Role a host plays in the cluster."""
    ANY = 'any'
    MASTER = 'master'
    WORKER = 'worker'


class HostGroup(str, Enum):
    """Inventory groups a phase can target."""
    ALL = 'all'
    MASTER = 'master'
    WORKERS = 'workers'


class PhaseName(str, Enum):
    """Phases of the bootstrap, in execution order."""
    PREPARATION = 'preparation'
    CONTROL_PLANE_BOOTSTRAP = 'control_plane_bootstrap'
    WORKER_JOIN = 'worker_join'


class StepStatus(str, Enum):
    """Outcome of a single step on a single host."""
    APPLIED = 'applied'
    ALREADY_SATISFIED = 'already_satisfied'
    FAILED = 'failed'


class RunOutcome(str, Enum):
    """Overall outcome of an orchestration run."""
    SUCCEEDED = 'succeeded'
    PARTIAL = 'partial'
    ABORTED = 'aborted'


@dataclass(frozen=True)
class Host:
    """A host from the static inventory."""
    name: str
    address: str
    role: HostRole = HostRole.ANY
    hostname: Optional[str] = None
    ssh_user: str = 'root'
    ssh_key_path: Optional[str] = None
    port: int = 22

    @property
    def node_name(self) -> str:
        """Name the node registers with in the cluster."""
        return self.hostname or self.name


@dataclass
class CommandResult:
    """Result of a command run on a remote host."""
    host: str
    command: str
    exit_status: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def check(self) -> 'CommandResult':
        """Raise StepFailedError if the command exited non-zero."""
        if self.exit_status != 0:
            raise StepFailedError(self.host, self.command, self.exit_status, self.stderr)
        return self


@dataclass
class StepContext:
    """Everything a step action needs to act on one host."""
    host: Host
    executor: Any
    collaborators: Any
    guard: Any
    channel: Any
    vars: Any
    run_id: str


@dataclass(frozen=True)
class Step:
    """A single idempotent action against a target host."""
    name: str
    action: Callable[[StepContext], StepStatus]
    description: str = ''


@dataclass(frozen=True)
class Phase:
    """An ordered stage of the orchestration targeting one host group."""
    name: PhaseName
    target: HostGroup
    steps: Tuple[Step, ...]
    requires: Tuple[str, ...] = ()
    fatal: bool = False


@dataclass
class StepResult:
    """Outcome of one step on one host."""
    host: str
    phase: PhaseName
    step: str
    status: StepStatus
    message: str = ''
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'phase': self.phase.value,
            'step': self.step,
            'status': self.status.value,
            'message': self.message,
            'duration': round(self.duration, 3),
        }


@dataclass
class PhaseResult:
    """Outcome of a phase across all of its targeted hosts."""
    phase: PhaseName
    hosts: List[str] = field(default_factory=list)
    results: Dict[str, List[StepResult]] = field(default_factory=dict)
    failed_hosts: List[str] = field(default_factory=list)
    skipped_hosts: List[str] = field(default_factory=list)
    aborted: bool = False
    abort_reason: Optional[str] = None

    def record(self, result: StepResult) -> None:
        """Record a step result, marking the host failed when the step failed."""
        self.results.setdefault(result.host, []).append(result)
        if result.status == StepStatus.FAILED and result.host not in self.failed_hosts:
            self.failed_hosts.append(result.host)

    def abort(self, reason: str) -> None:
        self.aborted = True
        self.abort_reason = reason

    @property
    def completed_hosts(self) -> List[str]:
        if self.aborted:
            return []
        return [h for h in self.hosts if h not in self.failed_hosts and h not in self.skipped_hosts]

    @property
    def succeeded(self) -> bool:
        return (
            not self.aborted
            and bool(self.hosts)
            and not self.failed_hosts
            and not self.skipped_hosts
        )

    def step_results(self) -> List[StepResult]:
        return [r for host in self.hosts for r in self.results.get(host, [])]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase': self.phase.value,
            'hosts': list(self.hosts),
            'completed_hosts': self.completed_hosts,
            'failed_hosts': list(self.failed_hosts),
            'skipped_hosts': list(self.skipped_hosts),
            'aborted': self.aborted,
            'abort_reason': self.abort_reason,
            'steps': [r.to_dict() for r in self.step_results()],
        }


@dataclass
class RunSummary:
    """Run-level report: which hosts completed which phases."""
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    phases: List[PhaseResult] = field(default_factory=list)

    def phase(self, name: PhaseName) -> Optional[PhaseResult]:
        return next((p for p in self.phases if p.phase == name), None)

    def results_for(self, host: str) -> List[StepResult]:
        return [r for p in self.phases for r in p.results.get(host, [])]

    def count(self, status: StepStatus) -> int:
        return sum(1 for p in self.phases for r in p.step_results() if r.status == status)

    def applied_count(self) -> int:
        return self.count(StepStatus.APPLIED)

    def completed_phases(self) -> Dict[str, List[str]]:
        """Map each host to the phases it completed."""
        completed: Dict[str, List[str]] = {}
        for phase in self.phases:
            for host in phase.hosts:
                completed.setdefault(host, [])
            for host in phase.completed_hosts:
                completed[host].append(phase.phase.value)
        return completed

    @property
    def outcome(self) -> RunOutcome:
        if any(p.aborted for p in self.phases):
            return RunOutcome.ABORTED
        if any(p.failed_hosts or p.skipped_hosts for p in self.phases):
            return RunOutcome.PARTIAL
        return RunOutcome.SUCCEEDED

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'outcome': self.outcome.value,
            'duration': round(self.duration, 3),
            'completed_phases': self.completed_phases(),
            'phases': [p.to_dict() for p in self.phases],
        }
